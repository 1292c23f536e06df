"""
上游请求服务
向源站发起单次 GET 请求并读取完整响应体
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from models.config import config

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """上游请求失败"""


class UpstreamTimeoutError(UpstreamError):
    """上游请求超过总超时时间"""


class UpstreamTransportError(UpstreamError):
    """连接被拒绝、DNS 失败、TLS 失败等传输层错误"""


class UpstreamReadError(UpstreamError):
    """已收到响应头，但读取响应体失败"""


@dataclass
class UpstreamResponse:
    status_code: int
    headers: httpx.Headers
    content: bytes


class UpstreamFetcher:
    """
    上游请求器

    - 注入 Referer/Origin（客户端提供的 referer 或默认值）
    - 总超时覆盖发送请求和读取完整响应体
    - 不重试：失败直接映射为错误
    """

    def __init__(self, http_client_service, default_referer: str = None, total_timeout: float = None):
        self.http_client_service = http_client_service
        self.default_referer = default_referer or config.DEFAULT_REFERER
        self.total_timeout = total_timeout if total_timeout is not None else config.HTTP_TOTAL_TIMEOUT

    def build_headers(self, referer: Optional[str]) -> dict:
        """构建上游请求头"""
        referer = referer or self.default_referer
        return {
            "Accept": "*/*",
            "Referer": referer,
            "Origin": referer,
        }

    async def fetch(self, url: str, referer: Optional[str] = None) -> UpstreamResponse:
        """
        获取上游资源

        Args:
            url: 目标绝对 URL
            referer: 客户端提供的 referer（已解码），None 时使用默认值

        Returns:
            UpstreamResponse: 状态码、响应头和完整响应体

        Raises:
            UpstreamTimeoutError: 超时
            UpstreamTransportError: 其他传输错误
            UpstreamReadError: 读取响应体失败
        """
        try:
            return await asyncio.wait_for(
                self._fetch(url, self.build_headers(referer)),
                timeout=self.total_timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"上游请求超时: url={url}, timeout={self.total_timeout}s")
            raise UpstreamTimeoutError(f"upstream timed out: {url}") from e

    async def _fetch(self, url: str, headers: dict) -> UpstreamResponse:
        client = self.http_client_service.get_client()

        try:
            request = client.build_request("GET", url, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.TimeoutException:
            raise
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"上游请求失败: url={url}, error={type(e).__name__}: {str(e)}")
            raise UpstreamTransportError(str(e)) from e

        try:
            content = await response.aread()
        except httpx.TimeoutException:
            raise
        except httpx.HTTPError as e:
            logger.error(f"读取上游响应体失败: url={url}, error={type(e).__name__}: {str(e)}")
            raise UpstreamReadError(str(e)) from e
        finally:
            await response.aclose()

        logger.debug(
            f"上游响应: url={url}, status={response.status_code}, "
            f"size={len(content)}, http_version={response.http_version}"
        )
        return UpstreamResponse(
            status_code=response.status_code,
            headers=response.headers,
            content=content
        )
