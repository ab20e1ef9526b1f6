"""Shared utilities (logging)."""

from .logging import compute_context, configure_logging, get_logger

__all__ = ["compute_context", "configure_logging", "get_logger"]
