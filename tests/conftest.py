"""Shared test fixtures for CampusCache tests."""

from __future__ import annotations

import asyncio
import os
import sys
from typing import AsyncGenerator, Callable, Dict, List, Optional, Sequence

import httpx
import pytest
import pytest_asyncio

# Ensure the project root is on sys.path so bare imports work
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)
# Page builders (tests/pages.py)
_TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
if _TESTS_DIR not in sys.path:
    sys.path.insert(0, _TESTS_DIR)

from common.http import ScraperClient  # noqa: E402
from core.database import create_engine_for_path, init_db  # noqa: E402
from core.store import CacheStore  # noqa: E402

SEA = "http://sea.test"
LMS = "http://lms.test"

DEFAULT_BASE_URLS: Dict[str, List[str]] = {
    "sea": [SEA],
    "lms": [LMS],
}


class FakeSleep:
    """Records requested delays instead of sleeping.

    替代真实 sleep，记录每次退避时长，测试无需真实等待。
    """

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        # 让出事件循环，保持与真实 sleep 相同的调度点
        await asyncio.sleep(0)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite file with every cache table created.

    使用临时文件而非内存库：并发会话需要各自独立的连接。
    """
    engine = create_engine_for_path(tmp_path / "cache.db")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(engine) -> AsyncGenerator[CacheStore, None]:
    yield CacheStore(engine)


@pytest_asyncio.fixture
async def make_client(fake_sleep) -> Callable[..., ScraperClient]:
    """Factory for ScraperClient instances backed by httpx.MockTransport.

    Usage:
        client = make_client(handler, max_retries=2)
    """
    created: List[ScraperClient] = []

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        base_urls: Optional[Dict[str, Sequence[str]]] = None,
        max_retries: int = 3,
        initial_delay: float = 0.01,
    ) -> ScraperClient:
        client = ScraperClient(
            base_urls if base_urls is not None else DEFAULT_BASE_URLS,
            timeout=5.0,
            max_retries=max_retries,
            initial_delay=initial_delay,
            transport=httpx.MockTransport(handler),
            sleep_func=fake_sleep,
        )
        created.append(client)
        return client

    yield _make

    for client in created:
        await client.aclose()
