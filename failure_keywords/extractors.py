"""响应文本提取模块

将各上游提供商的流式 JSON 响应展平为纯文本，供关键字匹配使用。
每个提供商对应一个提取函数，通过 Provider 枚举分发。
"""

import json
from enum import Enum
from typing import Any, Callable


class PayloadShapeError(ValueError):
    """响应数据不是预期的 JSON 结构"""

    pass


class Provider(str, Enum):
    """上游提供商类型"""

    OPENAI = "openai"  # 通用 choices[].delta 流式格式
    CLAUDE = "claude"
    GEMINI = "gemini"


def _reject_constant(name: str) -> Any:
    # 标准 JSON 不允许 NaN / Infinity / -Infinity
    raise PayloadShapeError(f"不支持的 JSON 常量: {name}")


# 字段名按大小写精确匹配，"Choices" 之类的键视为未知字段
def _get_object(data: dict[str, Any], key: str, path: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise PayloadShapeError(f"{path}.{key} 必须是对象，实际为 {type(value).__name__}")
    return value


def _get_list(data: dict[str, Any], key: str, path: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadShapeError(f"{path}.{key} 必须是数组，实际为 {type(value).__name__}")
    return value


def _get_text(data: dict[str, Any] | None, key: str, path: str) -> str | None:
    if data is None:
        return None
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PayloadShapeError(f"{path}.{key} 必须是字符串，实际为 {type(value).__name__}")
    return value


def _as_object(value: Any, path: str) -> dict[str, Any] | None:
    # JSON null 视为空结构
    if value is None:
        return None
    if not isinstance(value, dict):
        raise PayloadShapeError(f"{path} 必须是对象，实际为 {type(value).__name__}")
    return value


def extract_stream_text(data: Any) -> str:
    """提取通用流式响应中的文本

    按顺序拼接每个 choice 的 delta.content 和推理内容
    （优先 delta.reasoning_content，其次 delta.reasoning）。
    """
    root = _as_object(data, "$")
    if root is None:
        return ""

    parts: list[str] = []
    for i, choice in enumerate(_get_list(root, "choices", "$")):
        choice = _as_object(choice, f"$.choices[{i}]")
        if choice is None:
            continue
        delta = _get_object(choice, "delta", f"$.choices[{i}]")
        delta_path = f"$.choices[{i}].delta"

        content = _get_text(delta, "content", delta_path)
        reasoning_content = _get_text(delta, "reasoning_content", delta_path)
        reasoning = _get_text(delta, "reasoning", delta_path)

        if content:
            parts.append(content)
        if reasoning_content is not None:
            parts.append(reasoning_content)
        elif reasoning:
            parts.append(reasoning)
    return "".join(parts)


def extract_claude_text(data: Any) -> str:
    """提取 Claude 格式响应中的文本

    拼接顺序：delta.text、delta.thinking、content_block.text、content[].text
    """
    root = _as_object(data, "$")
    if root is None:
        return ""

    parts: list[str] = []

    delta = _get_object(root, "delta", "$")
    for key in ("text", "thinking"):
        text = _get_text(delta, key, "$.delta")
        if text:
            parts.append(text)

    content_block = _get_object(root, "content_block", "$")
    text = _get_text(content_block, "text", "$.content_block")
    if text:
        parts.append(text)

    for i, item in enumerate(_get_list(root, "content", "$")):
        path = f"$.content[{i}]"
        text = _get_text(_as_object(item, path), "text", path)
        if text:
            parts.append(text)

    return "".join(parts)


def extract_gemini_text(data: Any) -> str:
    """提取 Gemini 格式响应中的文本

    按顺序拼接所有 candidates[].content.parts[].text 中的非空文本。
    """
    root = _as_object(data, "$")
    if root is None:
        return ""

    parts: list[str] = []
    for i, candidate in enumerate(_get_list(root, "candidates", "$")):
        candidate_path = f"$.candidates[{i}]"
        candidate = _as_object(candidate, candidate_path)
        if candidate is None:
            continue
        content = _get_object(candidate, "content", candidate_path)
        if content is None:
            continue
        for j, part in enumerate(_get_list(content, "parts", f"{candidate_path}.content")):
            part_path = f"{candidate_path}.content.parts[{j}]"
            text = _get_text(_as_object(part, part_path), "text", part_path)
            if text:
                parts.append(text)
    return "".join(parts)


EXTRACTORS: dict[Provider, Callable[[Any], str]] = {
    Provider.OPENAI: extract_stream_text,
    Provider.CLAUDE: extract_claude_text,
    Provider.GEMINI: extract_gemini_text,
}


def extract_text_from_data(provider: Provider, data: Any) -> str:
    """从已解析的 JSON 数据中提取文本

    Raises:
        PayloadShapeError: 数据结构与提供商格式不符
    """
    return EXTRACTORS[Provider(provider)](data)


def extract_text(provider: Provider, payload: str | bytes) -> str:
    """解析 JSON 字符串并按提供商格式提取文本

    Args:
        provider: 上游提供商
        payload: 原始 JSON 字符串

    Returns:
        拼接后的文本，没有可提取内容时为空字符串

    Raises:
        PayloadShapeError: JSON 格式错误或结构不符
    """
    try:
        data = json.loads(payload, parse_constant=_reject_constant)
    except PayloadShapeError:
        raise
    except (ValueError, RecursionError) as e:
        # ValueError 包括 JSONDecodeError、UnicodeDecodeError 和超长整数
        raise PayloadShapeError(f"JSON 解析失败: {e}") from e
    return extract_text_from_data(provider, data)
