"""
测试公共 fixture
"""
import asyncio
import os
import sys
from unittest.mock import MagicMock

import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.cache_store import CacheStore  # noqa: E402


class FakeRedis:
    """内存版 async Redis 客户端，只实现缓存用到的命令"""

    def __init__(self, set_delay: float = 0.0):
        self.data = {}
        self.ttls = {}
        self.set_calls = 0
        self.set_delay = set_delay

    async def get(self, key):
        return self.data.get(key)

    async def exists(self, key):
        return 1 if key in self.data else 0

    async def set(self, key, value, ex=None, nx=False):
        self.set_calls += 1
        if self.set_delay:
            await asyncio.sleep(self.set_delay)
        if nx and key in self.data:
            return None
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        self.ttls[key] = ex
        return True


class InMemoryCacheStore(CacheStore):
    """内存版缓存存储"""

    def __init__(self):
        self.entries = {}
        self.writes = []

    async def read(self, key):
        return self.entries.get(key)

    async def write_once(self, key, entry, ttl):
        if key in self.entries:
            return False
        self.entries[key] = entry
        self.writes.append((key, entry, ttl))
        return True


class FakeFetcher:
    """按 URL 返回预设响应或抛出预设异常的上游请求器"""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    async def fetch(self, url, referer=None):
        self.calls.append((url, referer))
        result = self.responses[url]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_redis_service(fake_redis):
    service = MagicMock()
    service.is_available = True
    service.get_client = MagicMock(return_value=fake_redis)
    return service


@pytest.fixture
def memory_cache_store():
    return InMemoryCacheStore()
