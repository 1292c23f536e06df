"""
通用工具函数
"""
import re
from typing import Iterable
from urllib.parse import urlsplit, unquote_plus


_INVALID_PERCENT_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')
_HEADER_UNSAFE_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def is_absolute_http_url(url: str) -> bool:
    """
    判断是否为可代理的绝对 URL（http/https 且包含主机名）
    """
    if not url:
        return False
    try:
        parts = urlsplit(url)
        # 访问 port 会校验端口是否合法
        parts.port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def decode_referer(raw: str) -> str:
    """
    解码 referer 查询参数

    与查询字符串解码规则一致：%XX 转义，"+" 表示空格

    解码结果会作为上游请求的 Referer/Origin 头，只接受可打印 ASCII

    Raises:
        ValueError: 存在非法的 % 转义、非 UTF-8 字节序列、非 ASCII 字符或控制字符
    """
    if _INVALID_PERCENT_ESCAPE.search(raw):
        raise ValueError(f"invalid percent-escape in {raw!r}")
    decoded = unquote_plus(raw, errors="strict")
    if not decoded.isascii() or _HEADER_UNSAFE_CHARS.search(decoded):
        raise ValueError(f"referer is not a valid header value: {raw!r}")
    return decoded


def has_suffix(value: str, suffixes: Iterable[str]) -> bool:
    """判断字符串是否以任意一个后缀结尾"""
    return any(value.endswith(suffix) for suffix in suffixes)

