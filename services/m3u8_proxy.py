"""
M3U8 代理服务
处理单个代理请求：校验参数 -> 读缓存 -> 回源 -> 改写播放列表 -> 选择响应头 -> 响应客户端 -> 写缓存
"""
import logging
from typing import List, Optional, Tuple

from fastapi.responses import Response
from starlette.background import BackgroundTask

from models.cached_entry import CachedEntry
from models.config import config
from services.cache_store import CacheStore, generate_cache_key
from services.header_policy import select_headers
from services.playlist_transformer import PlaylistTransformError, transform_playlist
from services.upstream_fetcher import (
    UpstreamFetcher,
    UpstreamReadError,
    UpstreamTimeoutError,
    UpstreamTransportError,
)
from utils.helpers import decode_referer, has_suffix, is_absolute_http_url

logger = logging.getLogger(__name__)

CACHEABLE_STATUS_CODES = (200, 206)


def build_response(
    status_code: int,
    header_items: List[Tuple[str, str]],
    body: bytes,
    background: Optional[BackgroundTask] = None
) -> Response:
    """
    按给定的状态码、响应头和响应体构建响应
    Content-Length 覆盖自动计算的值，其他响应头按顺序追加
    """
    response = Response(content=body, status_code=status_code, background=background)
    for name, value in header_items:
        if name.lower() == "content-length":
            response.headers[name] = value
        else:
            response.headers.append(name, value)
    return response


def text_response(content: str, status_code: int) -> Response:
    return Response(content=content, status_code=status_code, media_type="text/plain")


class M3U8ProxyService:
    """
    M3U8 代理服务

    缓存和上游请求器通过构造函数注入，便于测试时替换为内存实现
    """

    def __init__(
        self,
        fetcher: UpstreamFetcher,
        cache_store: CacheStore,
        cache_ttl: int = None,
        allowed_extensions: Tuple[str, ...] = None
    ):
        self.fetcher = fetcher
        self.cache_store = cache_store
        self.cache_ttl = cache_ttl or config.CACHE_TTL
        self.allowed_extensions = allowed_extensions or config.ALLOWED_EXTENSIONS

    async def handle(self, target_url: Optional[str], referer: Optional[str], proxy_prefix: str) -> Response:
        """
        处理代理请求

        Args:
            target_url: url 查询参数
            referer: referer 查询参数（可选，仍需再解码一次）
            proxy_prefix: 改写播放列表时使用的代理地址前缀

        Returns:
            Response: 缓存命中时原样回放缓存，否则为回源后的响应
        """
        # 1. 校验目标 URL
        if not target_url:
            return text_response("Missing 'url' query parameter", 400)
        if not is_absolute_http_url(target_url):
            logger.warning(f"无效的目标 URL: {target_url}")
            return text_response("Invalid 'url' query parameter", 400)

        # 2. 解码 referer
        referer_header = None
        if referer:
            try:
                referer_header = decode_referer(referer)
            except ValueError as e:
                logger.warning(f"referer 解码失败: {str(e)}")
                return text_response("Invalid 'referer' query parameter", 400)

        # 3. 读取缓存
        cache_key = generate_cache_key(target_url)
        cached = await self.cache_store.read(cache_key)
        if cached is not None:
            logger.info(f"CACHE HIT for {target_url}")
            return build_response(cached.status_code, cached.header_items(), cached.body)
        logger.debug(f"CACHE MISS for {target_url}")

        # 4. 按后缀分类
        lowered_url = target_url.lower()
        is_manifest = lowered_url.endswith(".m3u8")
        is_segment = lowered_url.endswith(".ts")
        is_static_asset = has_suffix(lowered_url, self.allowed_extensions)

        # 5-6. 回源（不重试）
        try:
            upstream = await self.fetcher.fetch(target_url, referer_header)
        except UpstreamTimeoutError:
            return text_response("Upstream server timed out", 504)
        except UpstreamTransportError:
            return text_response("Failed to fetch content from upstream server", 502)
        except UpstreamReadError:
            return text_response("Failed to read response from upstream server", 500)

        status_code = upstream.status_code

        # 7. 响应头白名单
        header_items = select_headers(upstream.headers, status_code)

        # 8. 改写播放列表
        if (is_manifest or is_segment) and status_code == 200:
            try:
                body = transform_playlist(
                    upstream.content,
                    target_url,
                    proxy_prefix,
                    allowed_extensions=self.allowed_extensions
                )
            except PlaylistTransformError as e:
                logger.error(f"播放列表改写失败: url={target_url}, error={str(e)}")
                return text_response("Error transforming M3U8 content", 500)
            logger.debug(
                f"播放列表改写完成: url={target_url}, "
                f"original_len={len(upstream.content)}, modified_len={len(body)}"
            )
        else:
            body = upstream.content
            content_length = upstream.headers.get("Content-Length")
            # 经过 Content-Encoding 解码的响应体与上游长度不一致，交给框架重新计算
            if ((is_static_asset or status_code != 200)
                    and content_length
                    and "Content-Encoding" not in upstream.headers):
                header_items.append(("Content-Length", content_length))

        # 9-10. 响应客户端，发送完成后写入缓存
        background = None
        if status_code in CACHEABLE_STATUS_CODES:
            entry = CachedEntry.from_response_parts(status_code, header_items, body)
            background = BackgroundTask(self.cache_store.write_once, cache_key, entry, self.cache_ttl)

        return build_response(status_code, header_items, body, background=background)


def create_m3u8_proxy_service(http_client_service, cache_store: CacheStore) -> M3U8ProxyService:
    """创建 M3U8 代理服务实例"""
    return M3U8ProxyService(
        fetcher=UpstreamFetcher(http_client_service),
        cache_store=cache_store
    )
