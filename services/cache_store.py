"""
响应缓存服务
以目标 URL 为 key 缓存完整响应（状态码、响应头、响应体）

- 读取失败、反序列化失败一律视为未命中，回源获取
- 写入通过 single-flight 去重，同一 key 的并发写入只执行一次
- 缓存失败只记录日志，不影响代理功能
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from models.cached_entry import CachedEntry
from models.config import config
from services.single_flight import SingleFlight

logger = logging.getLogger(__name__)


def generate_cache_key(target_url: str) -> str:
    """缓存 key：固定前缀 + 原始目标 URL（不重新编码）"""
    return config.CACHE_KEY_PREFIX + target_url


class CacheStore(ABC):
    """缓存存储接口"""

    @abstractmethod
    async def read(self, key: str) -> Optional[CachedEntry]:
        """读取缓存，未命中返回 None"""

    @abstractmethod
    async def write_once(self, key: str, entry: CachedEntry, ttl: int) -> bool:
        """写入缓存，返回本次调用是否实际写入"""


class RedisCacheStore(CacheStore):
    """基于 Redis 的缓存存储"""

    def __init__(self, redis_service, single_flight: SingleFlight = None):
        self.redis_service = redis_service
        self.single_flight = single_flight or SingleFlight()

    async def read(self, key: str) -> Optional[CachedEntry]:
        """
        读取缓存

        Returns:
            CachedEntry 或 None（未命中、Redis 不可用、读取或反序列化失败）
        """
        if not self.redis_service.is_available:
            return None

        try:
            redis_client = self.redis_service.get_client()
            raw = await redis_client.get(key)
        except Exception as e:
            logger.error(f"Redis GET 失败，回源获取: key={key}, error={str(e)}")
            return None

        if raw is None:
            return None

        try:
            return CachedEntry.from_json(raw)
        except ValueError as e:
            logger.error(f"缓存数据反序列化失败，回源获取: key={key}, error={str(e)}")
            return None

    async def write_once(self, key: str, entry: CachedEntry, ttl: int) -> bool:
        """
        写入缓存（同一 key 的并发写入只执行一次）

        Args:
            key: 缓存 key
            entry: 缓存条目
            ttl: 过期时间（秒）

        Returns:
            bool: 本次调用是否实际写入
        """
        if not self.redis_service.is_available:
            return False

        leader_wrote = False

        async def write():
            nonlocal leader_wrote
            leader_wrote = await self._write_if_absent(key, entry, ttl)
            return leader_wrote

        try:
            await self.single_flight.do(key, write)
        except Exception as e:
            logger.error(f"Redis SET 失败: key={key}, error={str(e)}")
            return False
        return leader_wrote

    async def _write_if_absent(self, key: str, entry: CachedEntry, ttl: int) -> bool:
        redis_client = self.redis_service.get_client()

        # 等待期间其他请求可能已经写入
        if await redis_client.exists(key):
            logger.debug(f"缓存已存在，跳过写入: key={key}")
            return False

        # NX 保证多进程部署时同样只有一次写入生效
        written = await redis_client.set(key, entry.to_json(), ex=ttl, nx=True)
        if written:
            logger.info(f"📦 已缓存: key={key}, status={entry.status_code}, size={len(entry.body)}, ttl={ttl}s")
        return bool(written)
