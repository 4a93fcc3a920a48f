"""Upstream scraper adapters."""

from __future__ import annotations

from typing import AsyncIterable, List, TypeVar

T = TypeVar("T")


async def collect(records: AsyncIterable[T]) -> List[T]:
    """Drain an adapter's async sequence into a list."""
    return [record async for record in records]
