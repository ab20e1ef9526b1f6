"""
System health and configuration router.

Wired to:
- HistoryRepository for database connectivity
- Settings and IndexEngineConfig for configuration
"""

import time

from fastapi import APIRouter, Depends

from storeindex import __version__
from storeindex.config import get_settings
from storeindex.dependencies import get_repository
from storeindex.engine.defaults import get_index_config
from storeindex.storage.base import HistoryRepository
from storeindex.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

# Track startup time for uptime calculation
_startup_time = time.time()


@router.get("/health")
def system_health(repository: HistoryRepository = Depends(get_repository)):
    """
    Get system health status.
    Checks database connectivity and reports actual service health.
    """
    uptime = time.time() - _startup_time

    db_status = "healthy"
    try:
        repository.list_entities()
    except Exception as e:
        logger.warning("health_check_database_failed", error=str(e))
        db_status = f"unhealthy: {e}"

    return {
        "success": True,
        "data": {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "version": __version__,
            "uptime_seconds": round(uptime, 1),
            "database": db_status,
        },
    }


@router.get("/config")
def get_system_config():
    """
    Get system and engine configuration (non-sensitive values only).
    """
    settings = get_settings()
    config = get_index_config()

    return {
        "success": True,
        "data": {
            "log_level": settings.log_level,
            "db_type": settings.db_type,
            "batch_max_workers": settings.batch_max_workers,
            "index_config_source": settings.index_config_path or "builtin",
            "index_preset": settings.index_preset,
            "engine": config.model_dump(mode="json"),
        },
    }
