# =============================================================================
# 模块: common/singleflight.py
# 功能: 请求合并（single-flight）
# 架构角色: 查询服务在缓存未命中时经由此处调用爬虫适配器。
#   相同指纹（如 course:uid:1131U0001）的并发调用只执行一次，
#   所有调用者得到同一个结果或同一个异常。
#
# 设计决策:
#   - 每个指纹对应一个 asyncio.Task，登记过程受 asyncio.Lock 保护，临界区很短
#   - 等待方通过 asyncio.shield 等待：某个调用者被取消只影响它自己，
#     共享的执行继续进行
#   - 任务完成后自动移除登记；forget() 可提前移除以便失败后立即重试
#   - 作用域仅限本进程，多副本部署时无法跨进程合并
# =============================================================================
"""Process-local request coalescing."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Collapse concurrent calls sharing a key into one execution."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._calls: Dict[str, asyncio.Task] = {}

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` once for all concurrent callers of ``key``.

        执行或加入 key 对应的进行中调用。

        Args:
            key: Fingerprint of the call.
            fn: Zero-argument coroutine function producing the result.

        Returns:
            The shared result.

        Raises:
            The shared exception, or asyncio.CancelledError if this caller
            was cancelled while waiting.
        """
        async with self._lock:
            task = self._calls.get(key)
            if task is None:
                task = asyncio.ensure_future(fn())
                self._calls[key] = task
                task.add_done_callback(lambda t, k=key: self._finish(k, t))
            else:
                logger.debug("Joining in-flight call %s", key)
        return await asyncio.shield(task)

    def forget(self, key: str) -> None:
        """Drop the registration for ``key``; later callers start a new execution."""
        self._calls.pop(key, None)

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    def _finish(self, key: str, task: asyncio.Task) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        # 所有等待方都已取消时，避免 "exception was never retrieved" 警告
        if not task.cancelled():
            task.exception()
