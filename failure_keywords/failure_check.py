"""失败关键字检测入口

对外提供按提供商格式检测流式响应内容的函数。
响应数据无法按预期格式解析时不视为错误：记录 DEBUG 日志、
调用可选的诊断回调，然后返回未匹配。
"""

import logging
from typing import Callable

from failure_keywords.extractors import PayloadShapeError, Provider, extract_text
from failure_keywords.keyword_matcher import NO_MATCH, MatchResult, check_failure_keywords

logger = logging.getLogger(__name__)

# 诊断回调：(提供商, 原始数据, 解析错误)
ParseErrorHook = Callable[[Provider, str, PayloadShapeError], None]

__all__ = [
    "ParseErrorHook",
    "check_failure_keywords",
    "check_failure_keywords_in_claude_content",
    "check_failure_keywords_in_content",
    "check_failure_keywords_in_gemini_content",
    "check_failure_keywords_in_stream_content",
]


def check_failure_keywords_in_content(
    provider: Provider,
    payload: str,
    keywords: list[str],
    case_sensitive: bool,
    on_parse_error: ParseErrorHook | None = None,
) -> MatchResult:
    """按提供商格式检测响应内容是否包含失败关键字

    Args:
        provider: 上游提供商
        payload: 单个流式响应块的 JSON 字符串
        keywords: 失败关键字列表，按优先级排序
        case_sensitive: 是否区分大小写
        on_parse_error: 解析失败时的诊断回调（可选），不影响返回值

    Returns:
        匹配结果；解析失败或没有可提取的文本时为 NO_MATCH
    """
    if not keywords or not payload:
        return NO_MATCH

    provider = Provider(provider)
    try:
        content = extract_text(provider, payload)
    except PayloadShapeError as e:
        # 可能不是内容块（控制帧等），不进行检测
        logger.debug(f"响应数据解析失败，跳过检测: provider={provider.value}, error={e}")
        if on_parse_error is not None:
            on_parse_error(provider, payload, e)
        return NO_MATCH

    if not content:
        return NO_MATCH

    return check_failure_keywords(content, keywords, case_sensitive)


def check_failure_keywords_in_stream_content(
    payload: str,
    keywords: list[str],
    case_sensitive: bool,
    on_parse_error: ParseErrorHook | None = None,
) -> MatchResult:
    """检测通用流式响应的 choices[].delta 内容是否包含失败关键字"""
    return check_failure_keywords_in_content(
        Provider.OPENAI, payload, keywords, case_sensitive, on_parse_error
    )


def check_failure_keywords_in_claude_content(
    payload: str,
    keywords: list[str],
    case_sensitive: bool,
    on_parse_error: ParseErrorHook | None = None,
) -> MatchResult:
    """检测 Claude 流式响应的 delta / content_block / content 文本是否包含失败关键字"""
    return check_failure_keywords_in_content(
        Provider.CLAUDE, payload, keywords, case_sensitive, on_parse_error
    )


def check_failure_keywords_in_gemini_content(
    payload: str,
    keywords: list[str],
    case_sensitive: bool,
    on_parse_error: ParseErrorHook | None = None,
) -> MatchResult:
    """检测 Gemini 响应的 candidates[].content.parts[].text 是否包含失败关键字"""
    return check_failure_keywords_in_content(
        Provider.GEMINI, payload, keywords, case_sensitive, on_parse_error
    )
