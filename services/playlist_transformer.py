"""
M3U8 播放列表改写服务
逐行改写播放列表中的子播放列表、分片和静态资源引用，使后续请求继续经过代理

工作原理：
1. 根据原始播放列表 URL 计算所在目录，作为相对路径的解析基准
   例如 https://cdn.example/videos/show/index.m3u8 -> https://cdn.example/videos/show/
2. 逐行分类：
   - 注释（# 开头）或空行：原样输出
   - 以 .m3u8 / .ts 结尾：改写为代理地址
   - 以允许的静态资源扩展名结尾：改写为代理地址
   - 其他：原样输出
3. 相对引用按 RFC 3986 解析为绝对 URL，绝对引用（http:// 或 https://）直接使用
4. 绝对 URL 作为查询参数值编码后拼接到代理前缀之后：
   seg-000.ts -> m3u8-proxy?url=https%3A%2F%2Fcdn.example%2Fvideos%2Fshow%2Fseg-000.ts

播放列表语法错误不会导致失败，无法识别的行原样输出。
"""
import enum
import logging
import posixpath
from typing import Iterable, Iterator, Optional, Tuple
from urllib.parse import quote_plus, urljoin, urlsplit, urlunsplit

from models.config import config

logger = logging.getLogger(__name__)

PLAYLIST_SUFFIXES = ('.m3u8', '.ts')


class PlaylistTransformError(Exception):
    """播放列表改写失败（读取/写入错误，而不是语法错误）"""


class PlaylistLineType(enum.Enum):
    PASS_THROUGH = "pass_through"
    MANIFEST_OR_SEGMENT_REF = "manifest_or_segment_ref"
    STATIC_ASSET_REF = "static_asset_ref"
    OPAQUE = "opaque"


def classify_line(line: str, allowed_extensions: Tuple[str, ...] = None) -> PlaylistLineType:
    """
    对播放列表中的一行进行分类（后缀匹配区分大小写）

    Args:
        line: 原始行内容
        allowed_extensions: 静态资源扩展名，默认使用 config.ALLOWED_EXTENSIONS
    """
    if allowed_extensions is None:
        allowed_extensions = config.ALLOWED_EXTENSIONS

    trimmed = line.strip()
    if not trimmed or trimmed.startswith("#"):
        return PlaylistLineType.PASS_THROUGH
    if trimmed.endswith(PLAYLIST_SUFFIXES):
        return PlaylistLineType.MANIFEST_OR_SEGMENT_REF
    if trimmed.endswith(tuple(allowed_extensions)):
        return PlaylistLineType.STATIC_ASSET_REF
    return PlaylistLineType.OPAQUE


def build_base_url(original_url: str) -> str:
    """
    计算相对路径解析基准：把 URL 的路径替换为所在目录（以 / 结尾），去掉查询和片段

    Args:
        original_url: 播放列表的原始 URL

    Returns:
        str: 基准 URL；原始 URL 无法解析时返回空字符串
    """
    try:
        parts = urlsplit(original_url)
    except ValueError as e:
        logger.warning(f"无法解析播放列表 URL，相对路径将无法解析: url={original_url}, error={str(e)}")
        return ""

    directory = posixpath.dirname(parts.path)
    if not directory.endswith("/"):
        directory += "/"
    return urlunsplit((parts.scheme, parts.netloc, directory, "", ""))


def is_absolute_reference(line: str) -> bool:
    return line.startswith("http://") or line.startswith("https://")


def resolve_reference(base_url: str, reference: str) -> str:
    """
    将播放列表中的引用解析为绝对 URL

    基准为空时（原始 URL 无法解析）原样返回相对引用
    """
    if is_absolute_reference(reference):
        return reference
    if not base_url:
        return reference
    try:
        return urljoin(base_url, reference)
    except ValueError:
        return reference


def build_proxy_url(proxy_prefix: str, target: str) -> str:
    """代理前缀 + 查询参数编码后的目标 URL"""
    # 非 UTF-8 字节按原始字节百分号编码
    return proxy_prefix + quote_plus(target, safe="", encoding="utf-8", errors="surrogateescape")


def iter_transformed_lines(
    lines: Iterable[str],
    original_url: str,
    proxy_prefix: str,
    allowed_extensions: Optional[Tuple[str, ...]] = None,
    max_line_bytes: Optional[int] = None
) -> Iterator[str]:
    """
    逐行改写播放列表

    Args:
        lines: 不含换行符的行
        original_url: 播放列表的原始 URL
        proxy_prefix: 代理地址前缀，例如 "m3u8-proxy?url="
        allowed_extensions: 静态资源扩展名
        max_line_bytes: 单行最大字节数

    Yields:
        str: 改写后的行（不含换行符）

    Raises:
        PlaylistTransformError: 单行超过最大长度
    """
    if max_line_bytes is None:
        max_line_bytes = config.MAX_PLAYLIST_LINE_BYTES

    base_url = build_base_url(original_url)

    for line in lines:
        if len(line.encode("utf-8", "surrogateescape")) > max_line_bytes:
            raise PlaylistTransformError(f"playlist line exceeds {max_line_bytes} bytes")

        line_type = classify_line(line, allowed_extensions)
        if line_type in (PlaylistLineType.PASS_THROUGH, PlaylistLineType.OPAQUE):
            yield line
            continue

        target = resolve_reference(base_url, line.strip())
        yield build_proxy_url(proxy_prefix, target)


def split_lines(text: str) -> Iterator[str]:
    """
    按 \\n 切分，去掉行尾的 \\r；末尾换行后的空串不算一行
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for line in lines:
        if line.endswith("\r"):
            line = line[:-1]
        yield line


def transform_playlist(
    body: bytes,
    original_url: str,
    proxy_prefix: str,
    allowed_extensions: Optional[Tuple[str, ...]] = None,
    max_line_bytes: Optional[int] = None
) -> bytes:
    """
    改写完整的播放列表内容

    每个输出行后面都跟一个 \\n，无论原始行尾是 \\n 还是 \\r\\n。
    非 UTF-8 字节通过 surrogateescape 原样保留。

    Args:
        body: 上游返回的播放列表内容
        original_url: 播放列表的原始 URL
        proxy_prefix: 代理地址前缀

    Returns:
        bytes: 改写后的内容
    """
    text = body.decode("utf-8", "surrogateescape")
    output = []
    for line in iter_transformed_lines(
        split_lines(text),
        original_url,
        proxy_prefix,
        allowed_extensions=allowed_extensions,
        max_line_bytes=max_line_bytes
    ):
        output.append(line)
        output.append("\n")
    return "".join(output).encode("utf-8", "surrogateescape")
