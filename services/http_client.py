"""
HTTP 客户端服务
管理访问上游源站的共享连接池
"""
import httpx
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class HTTPClientService:
    """
    HTTP 客户端服务
    整个进程共享一个 httpx.AsyncClient，连接池可被并发请求安全复用

    特性：
    - HTTP/2 支持
    - 有上限的连接池与空闲连接数
    - 空闲连接自动过期
    - 不自动重试（单次请求失败即返回错误）
    """

    def __init__(self):
        self.client: Optional[httpx.AsyncClient] = None
        self._closed = False
        self._lock = asyncio.Lock()

    async def initialize(self, config):
        """
        初始化HTTP客户端

        Args:
            config: 配置对象
        """
        async with self._lock:
            if self.client is not None:
                return

            limits = httpx.Limits(
                max_connections=config.HTTP_CONNECTOR_LIMIT,  # 总连接数
                max_keepalive_connections=config.HTTP_KEEPALIVE_LIMIT,  # 空闲连接数
                keepalive_expiry=config.HTTP_KEEPALIVE_TIMEOUT  # 空闲连接过期时间
            )

            # 总超时由 UpstreamFetcher 控制，这里是各阶段的上限
            timeout = httpx.Timeout(
                timeout=config.HTTP_TOTAL_TIMEOUT,
                connect=config.HTTP_CONNECT_TIMEOUT,
                pool=5.0
            )

            self.client = httpx.AsyncClient(
                limits=limits,
                timeout=timeout,
                follow_redirects=True,
                http2=config.HTTP2_ENABLED,
                transport=httpx.AsyncHTTPTransport(
                    retries=0,
                    http2=config.HTTP2_ENABLED,
                    limits=limits
                )
            )
            self._closed = False

            logger.info(
                f"HTTP客户端初始化完成 - "
                f"连接池: {config.HTTP_CONNECTOR_LIMIT}, "
                f"Keep-Alive: {config.HTTP_KEEPALIVE_LIMIT}, "
                f"HTTP/2: {'启用' if config.HTTP2_ENABLED else '禁用'}"
            )

    def get_client(self) -> httpx.AsyncClient:
        """
        获取HTTP客户端实例

        Returns:
            httpx.AsyncClient: 异步HTTP客户端
        """
        if self.client is None or self.client.is_closed:
            raise RuntimeError("HTTP客户端未初始化，请先调用 initialize(config)")
        return self.client

    async def close(self):
        """关闭HTTP客户端"""
        async with self._lock:
            if not self._closed and self.client:
                await self.client.aclose()
                self._closed = True
                self.client = None
                logger.info("HTTP客户端已关闭")


# 全局HTTP客户端实例
http_client_service = HTTPClientService()
