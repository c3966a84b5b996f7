"""关键字匹配模块

实现失败关键字的子串匹配逻辑，支持大小写敏感开关和多匹配优先级处理。
"""

from typing import NamedTuple


class MatchResult(NamedTuple):
    """匹配结果

    可以像二元组一样解包: ``matched, keyword = result``
    """

    matched: bool  # 是否匹配到失败关键字
    keyword: str = ""  # 匹配到的原始关键字，未匹配时为空字符串


NO_MATCH = MatchResult(False, "")


def check_failure_keywords(
    text: str, keywords: list[str], case_sensitive: bool
) -> MatchResult:
    """检测文本是否包含失败关键字

    匹配规则：
    - 关键字列表为空或文本为空时直接返回未匹配
    - 跳过空字符串关键字
    - 按配置顺序检查，返回第一个出现在文本中的关键字
    - 大小写不敏感时双方统一转为小写比较，返回的仍是原始关键字

    Args:
        text: 响应文本
        keywords: 失败关键字列表，按优先级排序
        case_sensitive: 是否区分大小写

    Returns:
        匹配结果
    """
    if not keywords or not text:
        return NO_MATCH

    text_to_check = text if case_sensitive else text.lower()

    for keyword in keywords:
        if not keyword:
            continue

        keyword_to_check = keyword if case_sensitive else keyword.lower()
        if keyword_to_check in text_to_check:
            return MatchResult(True, keyword)

    return NO_MATCH


class KeywordMatcher:
    """关键字匹配器

    持有一组按优先级排序的失败关键字，对任意文本进行子串匹配。
    """

    def __init__(self, keywords: list[str], case_sensitive: bool = False) -> None:
        """初始化关键字匹配器

        Args:
            keywords: 失败关键字列表，按优先级排序
            case_sensitive: 是否区分大小写
        """
        self._keywords = list(keywords)
        self._case_sensitive = case_sensitive

    @property
    def keywords(self) -> list[str]:
        return self._keywords.copy()

    @property
    def case_sensitive(self) -> bool:
        return self._case_sensitive

    def match(self, text: str) -> MatchResult:
        """匹配失败关键字

        如果匹配多个关键字，返回配置顺序中的第一个。

        Args:
            text: 响应文本

        Returns:
            匹配结果，无匹配时为 NO_MATCH
        """
        return check_failure_keywords(text, self._keywords, self._case_sensitive)
