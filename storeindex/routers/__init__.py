"""API routers for all endpoints."""

from storeindex.routers import metrics, snapshots, system

__all__ = [
    "metrics",
    "snapshots",
    "system",
]
