"""流式响应失败检测模块

将失败关键字规则与上游提供商绑定，对完整响应体、单个 JSON 响应块
以及 SSE 数据行进行检测。
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from failure_keywords.config import ConfigStore, FailureKeywordRule
from failure_keywords.extractors import Provider
from failure_keywords.failure_check import ParseErrorHook, check_failure_keywords_in_content
from failure_keywords.keyword_matcher import NO_MATCH, KeywordMatcher, MatchResult

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


@dataclass(frozen=True)
class StreamMatch:
    """流式检测结果"""

    result: MatchResult
    index: int  # 首次匹配的行（或响应块）序号，从 0 开始

    @property
    def keyword(self) -> str:
        return self.result.keyword


def parse_sse_data(line: str) -> str | None:
    """提取 SSE 数据行中的数据

    Returns:
        data 字段内容；空行、非 data 字段、注释行和 [DONE] 返回 None
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    data = line[len(SSE_DATA_PREFIX):].strip()
    if not data or data == SSE_DONE:
        return None
    return data


class FailureDetector:
    """失败检测器

    负责：
    - 持有某个渠道（及模型）解析后的失败关键字规则
    - 按渠道的提供商格式提取流式响应文本并检测
    - 规则关闭时所有检测均返回未匹配
    """

    def __init__(
        self,
        rule: FailureKeywordRule,
        provider: Provider,
        channel: str = "",
        on_parse_error: ParseErrorHook | None = None,
    ) -> None:
        """初始化失败检测器

        Args:
            rule: 失败关键字规则
            provider: 上游提供商
            channel: 渠道名称，仅用于日志
            on_parse_error: 响应块解析失败时的诊断回调（可选）
        """
        self._rule = rule
        self._provider = Provider(provider)
        self._channel = channel
        self._on_parse_error = on_parse_error
        self._matcher = KeywordMatcher(rule.keywords, rule.case_sensitive)

    @classmethod
    def from_config(
        cls,
        config: ConfigStore,
        channel: str,
        model: str | None = None,
        on_parse_error: ParseErrorHook | None = None,
    ) -> "FailureDetector":
        """根据配置创建检测器

        Raises:
            ConfigError: 配置未加载或渠道不存在
        """
        channel_config = config.get_channel(channel)
        return cls(
            rule=channel_config.get_rule(model),
            provider=channel_config.provider,
            channel=channel,
            on_parse_error=on_parse_error,
        )

    @property
    def enabled(self) -> bool:
        return self._rule.enabled

    @property
    def provider(self) -> Provider:
        return self._provider

    def _report(self, result: MatchResult, source: str) -> MatchResult:
        if result.matched:
            logger.warning(
                f"检测到失败关键字: channel={self._channel}, "
                f"provider={self._provider.value}, keyword={result.keyword}, source={source}"
            )
        return result

    def check_body(self, body: str) -> MatchResult:
        """检测完整响应体（非流式响应）"""
        if not self.enabled:
            return NO_MATCH
        return self._report(self._matcher.match(body), "body")

    def check_chunk(self, payload: str) -> MatchResult:
        """检测单个流式响应块的 JSON 字符串"""
        if not self.enabled:
            return NO_MATCH
        result = check_failure_keywords_in_content(
            self._provider,
            payload,
            self._matcher.keywords,
            self._matcher.case_sensitive,
            self._on_parse_error,
        )
        return self._report(result, "chunk")

    def check_sse_line(self, line: str) -> MatchResult:
        """检测一行 SSE 数据

        只检测 data 字段；event/id/retry 字段、注释、空行和 [DONE] 直接跳过。
        """
        if not self.enabled:
            return NO_MATCH
        data = parse_sse_data(line)
        if data is None:
            return NO_MATCH
        return self.check_chunk(data)

    def scan_sse(self, lines: Iterable[str]) -> StreamMatch | None:
        """逐行检测 SSE 流，在首次匹配时停止

        Args:
            lines: SSE 行序列

        Returns:
            首次匹配结果，未匹配时返回 None
        """
        if not self.enabled:
            return None
        for index, line in enumerate(lines):
            result = self.check_sse_line(line)
            if result.matched:
                return StreamMatch(result=result, index=index)
        return None
