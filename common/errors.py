# =============================================================================
# 模块: common/errors.py
# 功能: 爬虫与缓存层的异常体系
# 架构角色: 所有上游访问、解析、存储失败都映射到这里定义的异常类型，
#   retry.run 依据 PermanentError 标记决定是否重试，查询层依据类型
#   决定返回「查无资料」「暂时无法服务」还是内部错误。
# =============================================================================
"""Exception hierarchy for scraping and caching."""

from __future__ import annotations

from typing import Optional

# 上游明确拒绝的状态码：不重试
PERMANENT_STATUS_CODES = frozenset({401, 403, 404})
# 上游暂时不可用：进入重试
TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})


class ScraperError(Exception):
    """Base class for upstream scraping failures."""


class PermanentError(ScraperError):
    """Tag marking ``error`` as non-retryable.

    retry.run 遇到该异常时立即停止，并抛出被包装的原始异常。
    """

    def __init__(self, error: BaseException):
        super().__init__(str(error))
        self.error = error


class UpstreamStatusError(ScraperError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, url: str, message: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        super().__init__(message or f"HTTP {status_code} from {url}")

    @property
    def permanent(self) -> bool:
        return self.status_code in PERMANENT_STATUS_CODES


class EncodingError(ScraperError):
    """Big5 encode/decode failure."""


class ParseError(ScraperError):
    """Upstream document could not be parsed."""


class NoBaseURLError(ScraperError):
    """No candidate base URL is configured for a domain."""


class UnavailableError(ScraperError):
    """Upstream stayed unreachable after all retries."""


class InvalidInputError(ValueError):
    """Malformed caller input (bad UID, unknown module, oversized term)."""


class StoreError(Exception):
    """Storage backend failure."""


def permanent(error: BaseException) -> PermanentError:
    """Wrap ``error`` so the retry primitive will not retry it."""
    return PermanentError(error)


def is_not_found(error: BaseException) -> bool:
    """True if ``error`` means the upstream does not have the resource.

    查询层用来把永久性上游错误（404/403/401、无法解析的文档）归类为「查无资料」。
    """
    if isinstance(error, PermanentError):
        error = error.error
    if isinstance(error, UpstreamStatusError):
        return error.permanent
    return isinstance(error, (ParseError, EncodingError))
