"""Big5 helpers for the legacy campus endpoints.

部分上游页面以 Big5 编码输出，课程与通讯录查询的表单参数也必须是
Big5 字节再做 URL 编码，不能交给通用的 UTF-8 表单编码器。
"""

from __future__ import annotations

from urllib.parse import quote_plus

from common.errors import EncodingError

# cp950 是实际部署中 "Big5" 的通行超集（含微软扩展字）
BIG5_CODEC = "cp950"


def is_big5_content_type(content_type: str) -> bool:
    return "big5" in (content_type or "").lower()


def encode(text: str) -> bytes:
    """Encode ``text`` to Big5 bytes, raising EncodingError on unmappable characters."""
    try:
        return text.encode(BIG5_CODEC)
    except UnicodeEncodeError as exc:
        raise EncodingError(f"cannot encode {text!r} as Big5: {exc}") from exc


def encode_query(text: str) -> str:
    """URL-encode the Big5 bytes of ``text`` (spaces become ``+``)."""
    return quote_plus(encode(text))


def decode(content: bytes) -> str:
    """Decode Big5 ``content``; undecodable bytes become U+FFFD."""
    return content.decode(BIG5_CODEC, errors="replace")
