"""FailureDetector 测试

Feature: failure-keywords
Property 10: SSE 流检测
Property 11: 规则开关
"""

import json
import logging
from unittest.mock import MagicMock

import pytest
from hypothesis import given, settings, strategies as st

from failure_keywords.config import ConfigError, ConfigStore, FailureKeywordRule
from failure_keywords.detector import FailureDetector, StreamMatch, parse_sse_data
from failure_keywords.extractors import Provider
from failure_keywords.keyword_matcher import NO_MATCH, MatchResult


def sse(data: dict | str) -> str:
    """构造 SSE 数据行"""
    if isinstance(data, dict):
        data = json.dumps(data)
    return f"data: {data}"


def openai_delta(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def create_detector(
    keywords: list[str],
    provider: Provider = Provider.OPENAI,
    case_sensitive: bool = False,
    enabled: bool = True,
    **kwargs,
) -> FailureDetector:
    """创建测试用的检测器"""
    rule = FailureKeywordRule(keywords=keywords, case_sensitive=case_sensitive, enabled=enabled)
    return FailureDetector(rule, provider, channel="test", **kwargs)


CLAUDE_STREAM = [
    "event: message_start",
    sse({"type": "message_start", "message": {"id": "msg_1", "content": []}}),
    "",
    "event: content_block_start",
    sse({"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}),
    "",
    "event: ping",
    sse({"type": "ping"}),
    "",
    "event: content_block_delta",
    sse({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Sorry, "}}),
    "",
    "event: content_block_delta",
    sse({"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "server Overloaded"}}),
    "",
    "event: message_stop",
    sse({"type": "message_stop"}),
]


# ============================================================================
# SSE 行解析
# ============================================================================

class TestParseSseData:
    """SSE 数据行解析"""

    @pytest.mark.parametrize(
        "line, expected",
        [
            ('data: {"a":1}', '{"a":1}'),
            ('data:{"a":1}', '{"a":1}'),
            ('  data: {"a":1}  \n', '{"a":1}'),
            ("data: [DONE]", None),
            ("data:", None),
            ("", None),
            ("event: message_start", None),
            ("id: 42", None),
            ("retry: 1000", None),
            (": keep-alive", None),
            ('{"a":1}', None),
        ],
    )
    def test_parse(self, line: str, expected: str | None):
        assert parse_sse_data(line) == expected


# ============================================================================
# Property 10: SSE 流检测
# ============================================================================

class TestProperty10SseScan:
    """Property 10: SSE 流检测

    *For any* SSE 流，scan_sse 应返回第一个匹配行的结果和序号。
    """

    def test_claude_stream_match(self):
        """Claude 流中检测到关键字"""
        detector = create_detector(["overloaded"], Provider.CLAUDE)

        match = detector.scan_sse(CLAUDE_STREAM)

        assert match == StreamMatch(result=MatchResult(True, "overloaded"), index=13)
        assert match.keyword == "overloaded"

    def test_claude_stream_case_sensitive_no_match(self):
        """大小写敏感时不匹配"""
        detector = create_detector(["overloaded"], Provider.CLAUDE, case_sensitive=True)
        assert detector.scan_sse(CLAUDE_STREAM) is None

    def test_keyword_split_across_lines_not_detected(self):
        """关键字跨行拆分时不检测"""
        detector = create_detector(["Sorry, server"], Provider.CLAUDE)
        assert detector.scan_sse(CLAUDE_STREAM) is None

    @given(
        clean=st.lists(st.text(alphabet="abc ", max_size=10), max_size=10),
        position=st.integers(min_value=0),
    )
    @settings(max_examples=100)
    def test_reports_first_matching_line(self, clean: list[str], position: int):
        """返回第一个匹配行的序号"""
        lines = [sse(openai_delta(text)) for text in clean]
        index = position % (len(lines) + 1)
        lines.insert(index, sse(openai_delta("quota exceeded")))
        lines.append(sse(openai_delta("quota again")))

        match = create_detector(["quota"]).scan_sse(lines)

        assert match is not None
        assert match.index == index
        assert match.keyword == "quota"

    def test_stops_at_first_match(self):
        """首次匹配后停止读取"""
        consumed = []

        def lines():
            for text in ["ok", "boom", "never"]:
                consumed.append(text)
                yield sse(openai_delta(text))

        match = create_detector(["boom"]).scan_sse(lines())

        assert match.index == 1
        assert consumed == ["ok", "boom"]

    @pytest.mark.parametrize(
        "line",
        ["data: [DONE]", "event: error", ": ping", "", "data: not json", "boom"],
    )
    def test_non_content_lines_never_match(self, line: str):
        """非内容行不匹配"""
        detector = create_detector(["boom", "DONE", "error", "ping", "json"])
        assert detector.check_sse_line(line) == NO_MATCH

    def test_gemini_sse_line(self):
        """Gemini 数据行"""
        detector = create_detector(["RESOURCE_EXHAUSTED"], Provider.GEMINI)
        line = sse({"candidates": [{"content": {"parts": [{"text": "resource_exhausted: quota"}]}}]})
        assert detector.check_sse_line(line) == (True, "RESOURCE_EXHAUSTED")

    def test_empty_stream(self):
        """空流没有匹配"""
        assert create_detector(["boom"]).scan_sse([]) is None

    def test_parse_error_hook_forwarded(self):
        """诊断回调传递给检测入口"""
        hook = MagicMock()
        detector = create_detector(["boom"], Provider.GEMINI, on_parse_error=hook)

        assert detector.check_sse_line("data: {broken") == NO_MATCH

        hook.assert_called_once()
        assert hook.call_args.args[0] is Provider.GEMINI

    def test_match_logged_as_warning(self, caplog):
        """检测到关键字记录 WARNING 日志"""
        detector = create_detector(["boom"])
        with caplog.at_level(logging.WARNING, logger="failure_keywords.detector"):
            detector.check_chunk(json.dumps(openai_delta("boom")))

        assert any(
            record.levelno == logging.WARNING and "keyword=boom" in record.getMessage()
            for record in caplog.records
        )


class TestChunkAndBody:
    """响应块和响应体检测"""

    def test_check_chunk(self):
        detector = create_detector(["limit"], Provider.OPENAI)
        assert detector.check_chunk(json.dumps(openai_delta("Rate LIMIT"))) == (True, "limit")

    def test_check_body_uses_raw_text(self):
        """响应体按原始文本检测，包括 JSON 字段名"""
        detector = create_detector(["insufficient_quota"], Provider.OPENAI)
        body = '{"error": {"code": "insufficient_quota", "message": "..."}}'
        assert detector.check_body(body) == (True, "insufficient_quota")

    def test_check_chunk_ignores_raw_json(self):
        """响应块只检测提取出的文本"""
        detector = create_detector(["insufficient_quota"], Provider.OPENAI)
        chunk = '{"error": {"code": "insufficient_quota"}}'
        assert detector.check_chunk(chunk) == NO_MATCH


# ============================================================================
# Property 11: 规则开关
# ============================================================================

class TestProperty11RuleSwitch:
    """Property 11: 规则开关

    规则关闭时所有检测都返回未匹配。
    """

    @given(text=st.text(max_size=30))
    @settings(max_examples=100)
    def test_disabled_rule_never_matches(self, text: str):
        detector = create_detector(["a", "boom"], enabled=False)
        payload = json.dumps(openai_delta(f"boom {text}"))

        assert detector.enabled is False
        assert detector.check_body(f"boom {text}") == NO_MATCH
        assert detector.check_chunk(payload) == NO_MATCH
        assert detector.check_sse_line(f"data: {payload}") == NO_MATCH
        assert detector.scan_sse([f"data: {payload}"]) is None


class TestFromConfig:
    """从配置创建检测器"""

    @pytest.fixture
    def store(self) -> ConfigStore:
        store = ConfigStore()
        store.load_from_dict(
            {
                "defaults": {"keywords": ["quota"]},
                "channels": [
                    {
                        "name": "claude-main",
                        "provider": "claude",
                        "keywords": ["Overloaded"],
                        "case_sensitive": True,
                        "models": {"claude-3-haiku": {"keywords": ["refuse"]}},
                    },
                    {"name": "gemini-main", "provider": "gemini"},
                ],
            }
        )
        return store

    def test_channel_rule_and_provider(self, store: ConfigStore):
        detector = FailureDetector.from_config(store, "claude-main")

        assert detector.provider is Provider.CLAUDE
        assert detector.check_chunk('{"delta": {"text": "Overloaded"}}') == (True, "Overloaded")
        assert detector.check_chunk('{"delta": {"text": "overloaded"}}') == NO_MATCH

    def test_model_override(self, store: ConfigStore):
        detector = FailureDetector.from_config(store, "claude-main", "claude-3-haiku")

        assert detector.check_chunk('{"delta": {"text": "I refuse"}}') == (True, "refuse")
        assert detector.check_chunk('{"delta": {"text": "Overloaded"}}') == NO_MATCH

    def test_defaults_inherited(self, store: ConfigStore):
        detector = FailureDetector.from_config(store, "gemini-main")
        chunk = '{"candidates": [{"content": {"parts": [{"text": "Quota hit"}]}}]}'
        assert detector.check_chunk(chunk) == (True, "quota")

    def test_unknown_channel(self, store: ConfigStore):
        with pytest.raises(ConfigError):
            FailureDetector.from_config(store, "nope")
