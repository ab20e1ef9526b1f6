"""
Snapshot storage layer.

All storage uses DuckDB; the engine only sees the HistoryRepository
interface.
"""

from functools import lru_cache

from storeindex.config import get_settings

from .base import HistoryRepository
from .duckdb_storage import DuckDBStorage, StorageError


@lru_cache
def get_storage() -> HistoryRepository:
    """
    Get cached storage backend instance (singleton).

    Returns:
        HistoryRepository implementation instance
    """
    settings = get_settings()
    return DuckDBStorage(db_path=settings.db_path)


__all__ = [
    "DuckDBStorage",
    "HistoryRepository",
    "StorageError",
    "get_storage",
]
