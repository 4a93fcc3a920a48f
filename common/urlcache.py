# =============================================================================
# 模块: common/urlcache.py
# 功能: 按上游域名缓存「当前可用」的基础 URL
# 架构角色: 位于 HTTP 客户端与爬虫适配器之间。
#   - get(): 快路径直接返回已缓存的非空 URL；慢路径依序对候选 URL 发 HEAD 探测，
#     第一个状态码 < 500 的候选胜出并写入缓存
#   - clear(): 爬取失败后由调用方清空，下次 get() 重新探测（自愈）
#
# 设计决策:
#   - 单个属性读写在事件循环中是原子的，不需要锁
#   - 多个并发慢路径探测可同时发生，最后写入者胜出，两者拿到的都是可用 URL
#   - 全部探测失败时退回第一个候选 URL 并记录警告，避免健康探测抖动拖垮整次查询
# =============================================================================
"""Per-domain working base URL cache."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Sequence, Tuple

from common.errors import NoBaseURLError

logger = logging.getLogger(__name__)

# 探测函数：给定 URL 返回 HTTP 状态码，网络错误直接抛异常
ProbeFunc = Callable[[str], Awaitable[int]]


class URLCache:
    """Holds the last base URL of ``domain`` known to answer below 500."""

    def __init__(self, domain: str, candidates: Sequence[str], probe: ProbeFunc):
        self.domain = domain
        self.candidates: Tuple[str, ...] = tuple(candidates)
        self._probe = probe
        self._url = ""

    def get_cached(self) -> str:
        """Return the cached URL without probing (may be empty)."""
        return self._url

    def clear(self) -> None:
        """Forget the cached URL so the next :meth:`get` re-probes."""
        previous = self._url
        self._url = ""
        if previous:
            logger.info("URL cache cleared for %s (was %s)", self.domain, previous)

    async def get(self) -> str:
        """Return a working base URL, probing candidates when nothing is cached.

        Raises:
            NoBaseURLError: The domain has no configured candidates.
        """
        cached = self._url
        if cached:
            return cached

        if not self.candidates:
            raise NoBaseURLError(f"no URLs configured for domain {self.domain}")

        start = time.monotonic()
        url = await self._detect()
        elapsed_ms = int((time.monotonic() - start) * 1000)
        if url is None:
            url = self.candidates[0]
            logger.warning(
                "URL failover detection failed for %s after %dms, falling back to %s",
                self.domain, elapsed_ms, url,
            )
        else:
            logger.debug("Detected working URL for %s: %s (%dms)", self.domain, url, elapsed_ms)

        previous = self._url
        if previous and previous != url:
            logger.info("URL failover for %s: %s -> %s", self.domain, previous, url)
        self._url = url
        return url

    async def _detect(self):
        for candidate in self.candidates:
            try:
                status = await self._probe(candidate)
            except Exception as exc:
                logger.debug("Probe of %s failed: %s", candidate, exc)
                continue
            if status < 500:
                return candidate
            logger.debug("Probe of %s returned %d", candidate, status)
        return None
