"""
FastAPI dependencies wiring the engine to storage and configuration.
"""

from functools import lru_cache

from storeindex.config import get_settings
from storeindex.engine.defaults import get_index_config
from storeindex.engine.snapshot_service import SnapshotService
from storeindex.sources.staged import StagedMetricSource
from storeindex.storage import get_storage
from storeindex.storage.base import HistoryRepository


def get_repository() -> HistoryRepository:
    return get_storage()


@lru_cache
def get_snapshot_service() -> SnapshotService:
    """
    Cached snapshot service over the configured storage and engine config.

    Raises:
        ConfigurationError: If the engine configuration is invalid
    """
    storage = get_storage()
    return SnapshotService(
        config=get_index_config(),
        repository=storage,
        source=StagedMetricSource(storage),
        max_workers=get_settings().batch_max_workers,
    )
