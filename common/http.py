# =============================================================================
# 模块: common/http.py
# 功能: 校园旧系统的 HTTP 爬取客户端
# 架构角色: 作为爬虫适配器（apps/scraper/ntpu）的网络基础设施层。
#   提供以下核心能力：
#   1. User-Agent 轮换：每次请求随机选择桌面浏览器 UA
#   2. gzip / Big5 响应解码，解析为 BeautifulSoup 文档
#   3. 状态码分类：401/403/404 永久失败，429/5xx 与网络错误暂时失败
#   4. 经由 common.retry 的指数退避重试，429 遵循 Retry-After
#   5. 按域名的故障转移（DomainClient + URLCache）
#
# 设计决策:
#   - 使用 httpx.AsyncClient，整个爬取与预热流程运行在 asyncio 上
#   - ScraperClient 只认完整 URL，不感知域名；DomainClient 负责「域名 -> 基础 URL」
#     解析，失败时清空 URLCache 以便下次重新探测
#   - 不做客户端限速，礼貌性由退避重试与预热并发上限保证
#   - 超时参数细分为 connect/read/write/pool 四个维度
# =============================================================================
"""Async scraping HTTP client with failover, decoding and retry."""

from __future__ import annotations

import gzip
import logging
import random
import zlib
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup

from common import big5, retry
from common.errors import (
    NoBaseURLError,
    PERMANENT_STATUS_CODES,
    ParseError,
    UpstreamStatusError,
    permanent,
)
from common.urlcache import URLCache

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# User-Agent 轮换列表：真实的桌面浏览器 UA
# ---------------------------------------------------------------------------
_USER_AGENTS = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    # Firefox on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) "
    "Gecko/20100101 Firefox/133.0",
    # Firefox on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:133.0) "
    "Gecko/20100101 Firefox/133.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/18.1 Safari/605.1.15",
    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
]

_ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
_ACCEPT_LANGUAGE = "zh-TW,zh;q=0.9,en-US;q=0.8,en;q=0.7"
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_GZIP_MAGIC = b"\x1f\x8b"


def _get_user_agent() -> str:
    """Get a random desktop browser user-agent string."""
    return random.choice(_USER_AGENTS)


def _build_headers(form: bool = False) -> Dict[str, str]:
    """Build per-request browser headers.

    每次请求都重新选择 UA；POST 表单请求额外带上 Content-Type。
    """
    headers: Dict[str, str] = {
        "User-Agent": _get_user_agent(),
        "Accept": _ACCEPT_HTML,
        "Accept-Language": _ACCEPT_LANGUAGE,
        "Accept-Encoding": "gzip, deflate",
    }
    if form:
        headers["Content-Type"] = _FORM_CONTENT_TYPE
    return headers


def _parse_retry_after(value: Optional[str]) -> int:
    """Parse an integer ``Retry-After`` header; 0 when absent or not a positive int.

    HTTP 日期格式的 Retry-After 不处理，交给重试退避。
    """
    if not value:
        return 0
    try:
        seconds = int(value.strip())
    except ValueError:
        return 0
    return seconds if seconds > 0 else 0


def _decode_body(response: httpx.Response, url: str) -> str:
    """Return the response body as text.

    httpx 已按 Content-Encoding 解压 gzip/deflate；若服务器未声明却仍返回 gzip
    字节流，这里再解压一次。Content-Type 含 BIG5 时按 Big5 解码。

    Raises:
        ParseError: The body looks like gzip but cannot be decompressed.
    """
    content = response.content
    if content[:2] == _GZIP_MAGIC:
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError, zlib.error) as exc:
            raise ParseError(f"corrupt gzip body from {url}: {exc}") from exc

    if big5.is_big5_content_type(response.headers.get("Content-Type", "")):
        return big5.decode(content)
    try:
        return content.decode(response.charset_encoding or "utf-8", errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def parse_html(text: str) -> BeautifulSoup:
    """Parse an HTML string (html.parser backend)."""
    return BeautifulSoup(text, "html.parser")


class ScraperClient:
    """HTTP client for the campus endpoints.

    负责单个 URL 的请求、解码与重试；域名故障转移由 :meth:`domain` 返回的
    DomainClient 组合完成。

    Args:
        base_urls: Mapping of domain name to ordered candidate base URLs.
        timeout: Per-request timeout in seconds.
        max_retries: Retries after the first attempt (retry.run).
        initial_delay: Base backoff delay in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        sleep_func: Awaitable sleep used for backoff and Retry-After waits.
    """

    def __init__(
        self,
        base_urls: Mapping[str, Sequence[str]],
        timeout: float = 60.0,
        max_retries: int = retry.DEFAULT_MAX_RETRIES,
        initial_delay: float = retry.DEFAULT_INITIAL_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep_func: Optional[retry.SleepFunc] = None,
    ):
        self.base_urls: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {domain: tuple(urls) for domain, urls in base_urls.items()}
        )
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.sleep = sleep_func or retry.sleep
        self._domains: Dict[str, DomainClient] = {}
        # 连接池：总连接 100，单主机保活 10 个，空闲 90 秒后释放
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=min(timeout, 10.0),
                read=timeout,
                write=timeout,
                pool=min(timeout, 5.0),
            ),
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=100,
                max_keepalive_connections=10,
                keepalive_expiry=90.0,
            ),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # 域名故障转移
    # ------------------------------------------------------------------
    def domain(self, name: str) -> "DomainClient":
        """Return the failover-aware client for ``name`` (created once)."""
        client = self._domains.get(name)
        if client is None:
            cache = URLCache(name, self.base_urls.get(name, ()), self.head)
            client = DomainClient(self, cache)
            self._domains[name] = client
        return client

    async def head(self, url: str) -> int:
        """Send a HEAD probe and return the status code."""
        response = await self._client.head(
            url,
            headers=_build_headers(),
            timeout=min(self.timeout, 10.0),
        )
        return response.status_code

    # ------------------------------------------------------------------
    # 带重试的公开请求接口（完整 URL）
    # ------------------------------------------------------------------
    async def get_document(self, url: str) -> BeautifulSoup:
        """GET ``url`` and return the parsed document."""
        return await self.run_with_retry(
            lambda: self.fetch_document("GET", url), f"GET {url}"
        )

    async def post_form_document(self, url: str, form: Mapping[str, str]) -> BeautifulSoup:
        """POST ``form`` URL-encoded (UTF-8) to ``url`` and return the parsed document.

        Big5 表单请自行编码后走 DomainClient.post_form_document_raw。
        """
        body = urlencode(form)
        return await self.run_with_retry(
            lambda: self.fetch_document("POST", url, body), f"POST {url}"
        )

    async def run_with_retry(self, attempt: Callable[[], Awaitable[Any]], operation: str) -> Any:
        return await retry.run(
            attempt,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            sleep_func=self.sleep,
            operation=operation,
        )

    # ------------------------------------------------------------------
    # 单次请求（不重试），负责状态码分类与解码
    # ------------------------------------------------------------------
    async def fetch_document(
        self, method: str, url: str, body: Optional[str] = None
    ) -> BeautifulSoup:
        """Perform one request and classify the outcome.

        发送一次请求：
        - 2xx：解码并解析为文档
        - 429：若有整数 Retry-After，先等待对应秒数，再作为暂时错误抛出
        - 502/503/504 及其他非预期状态：暂时错误（UpstreamStatusError）
        - 401/403/404：包装为 PermanentError，retry.run 不再重试
        - 2xx 但 gzip 内容损坏：ParseError，同样不重试

        Raises:
            PermanentError: For 401/403/404 and undecodable bodies.
            UpstreamStatusError: For retryable statuses.
            httpx.HTTPError: Network failures (retryable).
        """
        response = await self._client.request(
            method,
            url,
            content=body.encode("ascii") if body is not None else None,
            headers=_build_headers(form=body is not None),
        )
        status = response.status_code

        if 200 <= status < 300:
            try:
                return parse_html(_decode_body(response, url))
            except ParseError as exc:
                raise permanent(exc)

        if status == 429:
            wait = _parse_retry_after(response.headers.get("Retry-After"))
            if wait:
                logger.warning("Rate limited by %s, waiting %ds (Retry-After)", url, wait)
                await self.sleep(wait)
            raise UpstreamStatusError(status, url, f"rate limited by {url}")

        if status in (502, 503, 504):
            raise UpstreamStatusError(status, url)

        if status in PERMANENT_STATUS_CODES:
            raise permanent(UpstreamStatusError(status, url))

        raise UpstreamStatusError(status, url, f"unexpected status {status} from {url}")

    async def aclose(self) -> None:
        await self._client.aclose()


class DomainClient:
    """Failover wrapper binding a :class:`ScraperClient` to one domain.

    每次重试都经由 URLCache.get() 解析基础 URL 并拼接路径；任何失败都会
    清空缓存，因此同一重试循环中的下一次尝试会重新探测候选 URL。
    """

    def __init__(self, client: ScraperClient, url_cache: URLCache):
        self.client = client
        self.url_cache = url_cache

    @property
    def name(self) -> str:
        return self.url_cache.domain

    async def get_document(self, path: str) -> BeautifulSoup:
        return await self._run(lambda base: self.client.fetch_document("GET", base + path), f"GET {path}")

    async def post_form_document(self, path: str, form: Mapping[str, str]) -> BeautifulSoup:
        return await self.post_form_document_raw(path, urlencode(form))

    async def post_form_document_raw(self, path: str, body: str) -> BeautifulSoup:
        return await self._run(
            lambda base: self.client.fetch_document("POST", base + path, body), f"POST {path}"
        )

    async def _run(self, fetch: Callable[[str], Awaitable[BeautifulSoup]], operation: str) -> BeautifulSoup:
        async def attempt() -> BeautifulSoup:
            try:
                base = await self.url_cache.get()
            except NoBaseURLError as exc:
                raise permanent(exc)
            try:
                return await fetch(base)
            except Exception:
                self.url_cache.clear()
                raise

        return await self.client.run_with_retry(attempt, f"{self.name} {operation}")


# =============================================================================
# 模块级单例：供命令行与查询服务共享同一连接池
# =============================================================================
_client: Optional[ScraperClient] = None


def get_client() -> ScraperClient:
    """Return (and lazily create) the shared ScraperClient built from settings."""
    global _client
    if _client is None:
        from settings import settings

        _client = ScraperClient(
            settings.base_urls,
            timeout=settings.scraper_timeout,
            max_retries=settings.scraper_max_retries,
            initial_delay=settings.scraper_initial_delay,
        )
    return _client


async def close_client() -> None:
    """Close the shared client and release its connections."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
