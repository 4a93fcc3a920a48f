# =============================================================================
# 模块: common/retry.py
# 功能: 带抖动的指数退避重试原语
# 架构角色: 所有访问上游网络的路径（HTTP 客户端、域名故障转移）共用的重试实现。
#   基于 tenacity 的 AsyncRetrying：
#   - 最多执行 max_retries + 1 次
#   - 第 k 次重试前等待 initial_delay * 2^k，并在 [0.75, 1.25) 倍区间内均匀抖动
#   - PermanentError 标记的异常不重试，直接抛出被包装的原始异常
#   - 取消（asyncio.CancelledError）原样传播，不重试
#
# 设计决策:
#   - 抖动使用 secrets.SystemRandom（操作系统熵源），
#     使大量并发调用者的重试时刻彼此错开
#   - sleep 可注入，测试中可替换为记录型的假 sleep
# =============================================================================
"""Retry primitive with jittered exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from common.errors import PermanentError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 10
DEFAULT_INITIAL_DELAY = 1.0

_rng = secrets.SystemRandom()

SleepFunc = Callable[[float], Awaitable[Any]]


async def sleep(seconds: float) -> None:
    """Cancellation-aware sleep shared by retry backoff and Retry-After handling."""
    if seconds > 0:
        await asyncio.sleep(seconds)


def jittered_delay(initial_delay: float, attempt: int) -> float:
    """Return the backoff before retry number ``attempt`` (0-based).

    delay = initial_delay * 2^attempt，结果落在 [0.75 * delay, 1.25 * delay)。
    """
    delay = initial_delay * (2 ** attempt)
    return delay - delay / 4 + _rng.random() * (delay / 2)


class wait_jittered_exponential(wait_base):
    """tenacity wait strategy producing :func:`jittered_delay` backoffs."""

    def __init__(self, initial_delay: float = DEFAULT_INITIAL_DELAY):
        self.initial_delay = initial_delay

    def __call__(self, retry_state) -> float:
        # attempt_number 从 1 开始；第一次失败后等待 initial_delay * 2^0
        return jittered_delay(self.initial_delay, retry_state.attempt_number - 1)


async def run(
    attempt: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    sleep_func: Optional[SleepFunc] = None,
    operation: str = "operation",
) -> T:
    """Run ``attempt`` with retries and return its result.

    执行 attempt，失败时按指数退避重试，最多执行 max_retries + 1 次。

    Args:
        attempt: Zero-argument coroutine function performing one try.
        max_retries: Retries after the first attempt.
        initial_delay: Base delay in seconds before the first retry.
        sleep_func: Awaitable sleep, defaults to :func:`sleep`.
        operation: Label used in log messages.

    Returns:
        Whatever ``attempt`` returned on its first success.

    Raises:
        The unwrapped cause of a PermanentError (after exactly one call),
        asyncio.CancelledError unchanged, or the last error after exhaustion.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_jittered_exponential(initial_delay),
        retry=retry_if_not_exception_type((PermanentError, asyncio.CancelledError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep_func or sleep,
        reraise=True,
    )
    attempts = 0
    try:
        async for attempt_ctx in retrying:
            with attempt_ctx:
                attempts = attempt_ctx.retry_state.attempt_number
                result = await attempt()
    except PermanentError as exc:
        raise exc.error from None
    except Exception:
        logger.error("All %d attempts exhausted for %s", attempts, operation)
        raise

    if attempts > 1:
        logger.info("%s succeeded after %d attempts", operation, attempts)
    return result
