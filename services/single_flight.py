"""
Single-flight 去重
相同 key 的并发操作只执行一次，其余调用者等待并共享第一次执行的结果
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class SingleFlightCancelledError(Exception):
    """执行操作的调用者被取消，等待者拿到的结果"""


class SingleFlight:
    """按 key 去重的并发操作合并器"""

    def __init__(self):
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def do(self, key: str, func: Callable[[], Awaitable[Any]]) -> Any:
        """
        执行操作，如果相同 key 的操作正在进行中，等待其完成并返回其结果

        Args:
            key: 去重 key
            func: 无参 async callable

        Returns:
            操作结果（第一次执行的结果，被所有并发调用者共享）

        Raises:
            第一次执行抛出的异常会传递给所有等待者
            SingleFlightCancelledError: 执行操作的调用者被取消（仅等待者）
        """
        async with self._lock:
            future = self._in_flight.get(key)
            if future is not None:
                logger.debug(f"single-flight: 等待进行中的操作完成 key={key}")
                is_leader = False
            else:
                future = asyncio.get_running_loop().create_future()
                self._in_flight[key] = future
                is_leader = True

        if is_leader:
            try:
                result = await func()
            except asyncio.CancelledError:
                # 等待者只收到普通异常，不会因为其他调用者被取消而跟着取消
                future.set_exception(SingleFlightCancelledError(f"leader cancelled, key={key}"))
                future.exception()
                raise
            except Exception as e:
                future.set_exception(e)
                # 没有等待者时避免 "exception was never retrieved" 警告
                future.exception()
                raise
            else:
                future.set_result(result)
            finally:
                async with self._lock:
                    self._in_flight.pop(key, None)
            return result

        return await asyncio.shield(future)
