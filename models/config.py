"""
配置模型
所有应用配置集中管理，启动时从环境变量读取一次
"""
import os
import logging
from typing import List


def _get_env(name: str, default: str) -> str:
    """读取环境变量，未设置时使用默认值"""
    value = os.environ.get(name)
    if value is None:
        return default
    return value


class Config:
    """应用配置类"""

    # 服务端口
    PORT = int(_get_env("PORT", "8080"))

    # 日志配置
    LOG_LEVEL = getattr(logging, _get_env("LOG_LEVEL", "INFO").upper(), logging.INFO)
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 日志文件最大大小（字节），默认 10MB
    LOG_BACKUP_COUNT = 10  # 保留的日志备份文件数量

    # Redis 配置
    # REDIS_URL 支持 "host:port" 或 "redis://..." 两种格式，留空则禁用缓存
    REDIS_URL = _get_env("REDIS_URL", "")
    REDIS_PASSWORD = _get_env("REDIS_PASSWORD", "")
    REDIS_DB = int(_get_env("REDIS_DB", "0") or 0)
    REDIS_POOL_SIZE = int(_get_env("REDIS_POOL_SIZE", "50"))

    # 上游 HTTP 客户端连接池配置
    HTTP_CONNECTOR_LIMIT = 100  # 总连接数
    HTTP_KEEPALIVE_LIMIT = 10  # 空闲 keep-alive 连接数
    HTTP_KEEPALIVE_TIMEOUT = 90  # 空闲连接过期时间（秒）
    HTTP_CONNECT_TIMEOUT = 10
    HTTP_TOTAL_TIMEOUT = 30  # 单次上游请求的总超时（秒），包括读取完整响应体
    HTTP2_ENABLED = True

    # 上游请求默认 Referer/Origin（客户端未提供 referer 参数时使用）
    DEFAULT_REFERER = _get_env("DEFAULT_REFERER", "https://megacloud.blog/")

    # 播放列表中会被改写为代理地址的静态资源扩展名（.m3u8 / .ts 单独处理）
    ALLOWED_EXTENSIONS = ('.png', '.jpg', '.webp', '.ico', '.html', '.js', '.css', '.txt')

    # 单行最大长度，超出视为改写失败
    MAX_PLAYLIST_LINE_BYTES = 64 * 1024

    # 响应缓存配置
    CACHE_KEY_PREFIX = "m3u8proxy_cache:"
    CACHE_TTL = 60 * 60  # 1小时

    # Cache-Control 中间件配置
    CACHE_CONTROL_MAX_AGE = 60 * 60
    CACHE_CONTROL_PUBLIC = True
    CACHE_CONTROL_MUST_REVALIDATE = True

    # CORS 配置
    # 逗号分隔，例如 "example.com,https://player.example.org"
    CORS_DOMAIN = _get_env("CORS_DOMAIN", "*")
    CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]

    # 代理路由
    PROXY_ROUTE_PATH = "/m3u8-proxy"

    @property
    def proxy_url_prefix(self) -> str:
        """
        播放列表中改写后的代理地址前缀，例如 "m3u8-proxy?url="
        使用相对路径，播放器会相对于当前播放列表地址解析
        """
        return self.PROXY_ROUTE_PATH.lstrip("/") + "?url="

    def cors_origins(self) -> List[str]:
        """
        解析 CORS_DOMAIN

        - 带 http:// 或 https:// 的条目原样使用（去掉末尾的 /）
        - 裸域名同时允许 http 和 https
        - "*" 允许任意来源
        """
        origins = []
        for domain in self.CORS_DOMAIN.split(","):
            domain = domain.strip()
            if not domain:
                continue
            if domain == "*":
                return ["*"]
            domain = domain.rstrip("/")
            if domain.startswith("http://") or domain.startswith("https://"):
                origins.append(domain)
            else:
                origins.append("http://" + domain)
                origins.append("https://" + domain)
        return origins


# 全局配置实例
config = Config()
