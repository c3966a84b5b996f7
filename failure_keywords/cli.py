"""命令行工具模块

对抓取的上游响应文件执行失败关键字检测，用于排查关键字配置。
"""

import argparse
import logging
import sys

from failure_keywords.config import ConfigError, ConfigStore
from failure_keywords.detector import FailureDetector, parse_sse_data

logger = logging.getLogger(__name__)

EXIT_NO_MATCH = 0
EXIT_MATCH = 1
EXIT_ERROR = 2


def setup_logging(level: int = logging.INFO) -> None:
    """配置日志

    Args:
        level: 日志级别
    """
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=level,
        stream=sys.stderr,
    )


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def scan(
    detector: FailureDetector, content: str, raw: bool = False
) -> tuple[bool, str, int | None]:
    """检测一段抓取内容

    Args:
        detector: 失败检测器
        content: 文件内容
        raw: 是否按原始响应体检测

    Returns:
        (是否匹配, 匹配的关键字, 匹配行号（从 1 开始，整体检测时为 None）)
    """
    if raw:
        result = detector.check_body(content)
        return result.matched, result.keyword, None

    lines = content.splitlines()
    if any(parse_sse_data(line) is not None for line in lines):
        match = detector.scan_sse(lines)
        if match is None:
            return False, "", None
        return True, match.keyword, match.index + 1

    # 不是 SSE 格式，整体作为一个响应块检测
    result = detector.check_chunk(content.strip())
    return result.matched, result.keyword, None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="failure-keywords",
        description="Failure keyword scanner for upstream responses",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="检测抓取的响应文件")
    scan_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="配置文件路径 (默认: config.yaml)",
    )
    scan_parser.add_argument("--channel", required=True, help="渠道名称")
    scan_parser.add_argument("--model", default=None, help="模型名称（可选）")
    scan_parser.add_argument(
        "--raw",
        action="store_true",
        help="按原始响应体检测，不解析 SSE/JSON",
    )
    scan_parser.add_argument("file", help="响应文件路径，- 表示标准输入")
    scan_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="启用详细日志",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """主入口函数"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # 配置日志
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(log_level)

    try:
        config = ConfigStore()
        config.load(args.config)
        detector = FailureDetector.from_config(config, args.channel, args.model)
        content = _read_input(args.file)
    except ConfigError as e:
        logger.error(f"配置错误: {e}")
        return EXIT_ERROR
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"读取文件失败: {e}")
        return EXIT_ERROR

    matched, keyword, line_no = scan(detector, content, raw=args.raw)
    if not matched:
        print("NO MATCH")
        return EXIT_NO_MATCH

    if line_no is None:
        print(f"MATCH {keyword}")
    else:
        print(f"MATCH {keyword} (line {line_no})")
    return EXIT_MATCH


if __name__ == "__main__":
    sys.exit(main())
