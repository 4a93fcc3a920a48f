"""Core storage layer for CampusCache."""

from core.database import close_db, get_engine, init_db
from core.store import CacheStore, get_store

__all__ = [
    "CacheStore",
    "close_db",
    "get_engine",
    "get_store",
    "init_db",
]
