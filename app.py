"""
M3U8 代理服务器主应用
为受 CORS / Referer 限制的 HLS 源站提供反向代理

特性：
- 完全异步架构
- HTTP/2 上游连接池
- 播放列表逐行改写，嵌套请求继续经过代理
- Redis 响应缓存（single-flight 写入去重）
"""
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from logging.handlers import RotatingFileHandler

# 导入配置和服务
from models.config import config
from services.http_client import http_client_service
from services.redis_service import redis_service
from services.cache_store import RedisCacheStore
from services.m3u8_proxy import create_m3u8_proxy_service
from middleware.cache_control import CacheControlMiddleware

# 导入路由
from routes import health, proxy as proxy_routes


# === 日志配置 ===
log_dir = "logs"
os.makedirs(log_dir, exist_ok=True)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s [%(levelname)s] [PID:%(process)d] [%(name)s] %(message)s',
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            filename=os.path.join(log_dir, 'proxy_fastapi.log'),
            maxBytes=config.LOG_MAX_BYTES,
            backupCount=config.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
    ]
)

logger = logging.getLogger(__name__)


# === 生命周期管理 ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    启动时初始化所有服务，关闭时清理资源
    """
    logger.info("🚀 启动 M3U8 代理服务器...")

    try:
        # 1. 初始化 Redis（失败时仅禁用缓存）
        await redis_service.initialize(config)

        # 2. 初始化 HTTP 客户端
        await http_client_service.initialize(config)
        logger.info("✅ HTTP 客户端服务已初始化")

        # 3. 初始化代理服务
        cache_store = RedisCacheStore(redis_service)
        app.state.m3u8_proxy_service = create_m3u8_proxy_service(http_client_service, cache_store)
        logger.info("✅ M3U8 代理服务已初始化")

        logger.info(f"🎉 服务启动完成！")
        logger.info(f"📊 配置概况:")
        logger.info(f"   - 端口: {config.PORT}")
        logger.info(f"   - 响应缓存: {'启用' if redis_service.is_available else '禁用'}")
        logger.info(f"   - HTTP连接数: {config.HTTP_CONNECTOR_LIMIT}")
        logger.info(f"   - 上游超时: {config.HTTP_TOTAL_TIMEOUT}s")

        yield  # 应用运行期间

    finally:
        logger.info("🛑 关闭 M3U8 代理服务器...")

        await http_client_service.close()
        await redis_service.close()

        logger.info("👋 服务已完全关闭")


# === 创建 FastAPI 应用 ===
app = FastAPI(
    title="M3U8 代理服务器",
    description="HLS 播放列表/分片反向代理，支持播放列表改写和响应缓存",
    version="1.0.0",
    lifespan=lifespan
)


# === 配置中间件 ===

# 1. CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_methods=config.CORS_ALLOW_METHODS,
    allow_headers=["*"],
    expose_headers=["Content-Length", "Content-Range", "Accept-Ranges", "Content-Type"]
)

# 2. Cache-Control 中间件
app.add_middleware(
    CacheControlMiddleware,
    max_age=config.CACHE_CONTROL_MAX_AGE,
    public=config.CACHE_CONTROL_PUBLIC,
    must_revalidate=config.CACHE_CONTROL_MUST_REVALIDATE
)

logger.info("✅ 中间件已配置")


# === 注册路由 ===
app.include_router(health.router, tags=["监控"])
app.include_router(proxy_routes.router, tags=["代理"])


# === 主程序入口 ===
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="::",  # 双栈绑定 - 同时支持IPv4和IPv6
        port=config.PORT,
        loop="auto",  # 已安装 uvloop 时自动启用
        log_level="info",
        access_log=True,
        workers=1
    )
