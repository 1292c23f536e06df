"""
Redis 服务
管理 Redis 连接池；Redis 不可用时缓存被禁用，代理功能不受影响
"""
import redis.asyncio as redis_async
import logging

logger = logging.getLogger(__name__)


class RedisService:
    """
    Redis 服务
    提供 Redis 连接池管理
    """

    def __init__(self):
        self.pool = None
        self.is_available = False

    @staticmethod
    def build_pool_kwargs(config) -> dict:
        """
        根据配置构建连接池参数

        REDIS_URL 为 "host:port" 时按地址解析，为 "redis://" / "rediss://" / "unix://" 时按 URL 解析
        """
        pool_kwargs = {
            'db': config.REDIS_DB,
            'password': config.REDIS_PASSWORD or None,
            'decode_responses': False,
            'max_connections': config.REDIS_POOL_SIZE,
            'retry_on_timeout': True,
            'health_check_interval': 30
        }

        redis_url = config.REDIS_URL
        if "://" in redis_url:
            pool_kwargs['url'] = redis_url
            return pool_kwargs

        host, _, port = redis_url.rpartition(":")
        if not host:
            host, port = redis_url, "6379"
        pool_kwargs['host'] = host
        pool_kwargs['port'] = int(port)
        return pool_kwargs

    async def initialize(self, config):
        """
        初始化 Redis 连接池
        连接失败只记录日志，不会阻止服务启动

        Args:
            config: 配置对象
        """
        if not config.REDIS_URL:
            logger.warning("未配置 REDIS_URL，响应缓存已禁用")
            return

        try:
            pool_kwargs = self.build_pool_kwargs(config)
            url = pool_kwargs.pop('url', None)
            if url:
                self.pool = redis_async.ConnectionPool.from_url(url, **pool_kwargs)
            else:
                self.pool = redis_async.ConnectionPool(**pool_kwargs)

            # 测试连接
            redis_client = self.get_client()
            await redis_client.ping()
            self.is_available = True
            logger.info(f"Redis 连接池初始化成功，连接数: {config.REDIS_POOL_SIZE}")

        except Exception as e:
            self.is_available = False
            logger.error(f"Redis 连接失败，响应缓存已禁用: {str(e)}")

    def get_client(self):
        """
        获取 Redis 客户端实例

        Returns:
            redis_async.Redis: Redis 客户端
        """
        if self.pool is None:
            raise RuntimeError("Redis 连接池未初始化")
        return redis_async.Redis(connection_pool=self.pool)

    async def close(self):
        """关闭 Redis 连接池"""
        if self.pool:
            await self.pool.disconnect()
            self.pool = None
            self.is_available = False
            logger.info("Redis 连接池已关闭")


# 全局Redis服务实例
redis_service = RedisService()
