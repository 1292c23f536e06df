"""
Cache-Control 中间件
为非错误响应（状态码 < 400）统一设置 Cache-Control 响应头

说明：
- 与 Redis 响应缓存相互独立，只影响浏览器/CDN 的缓存行为
- 错误响应不设置缓存头，避免错误结果被下游缓存
"""
import logging

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send


logger = logging.getLogger(__name__)


def build_cache_control_value(max_age: int, public: bool = True, must_revalidate: bool = True) -> str:
    """
    构建 Cache-Control 值，例如 "public, max-age=3600, must-revalidate"
    """
    value = "public, " if public else "private, "
    value += f"max-age={int(max_age)}"
    if must_revalidate:
        value += ", must-revalidate"
    return value


class CacheControlMiddleware:
    """
    Cache-Control 中间件

    使用方法：
        app.add_middleware(CacheControlMiddleware, max_age=3600, public=True, must_revalidate=True)
    """

    def __init__(self, app: ASGIApp, max_age: int = 3600, public: bool = True, must_revalidate: bool = True):
        self.app = app
        self.header_value = build_cache_control_value(max_age, public, must_revalidate)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_cache_control(message: Message) -> None:
            if message["type"] == "http.response.start" and message["status"] < 400:
                headers = MutableHeaders(scope=message)
                headers["Cache-Control"] = self.header_value
            await send(message)

        await self.app(scope, receive, send_with_cache_control)
