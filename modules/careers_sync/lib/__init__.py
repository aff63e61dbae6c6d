# modules/careers_sync/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .aggregate import CrawlAggregator, aggregate
from .config import ConfigError, Settings
from .engine import run_once
from .models import CrawlSnapshot, JobRecord, PaginationMode, PaginationState
from .reconcile import CrawlError, ReconcileError, SinkError

__all__ = [
    "ConfigError",
    "CrawlAggregator",
    "CrawlError",
    "CrawlSnapshot",
    "JobRecord",
    "PaginationMode",
    "PaginationState",
    "ReconcileError",
    "Settings",
    "SinkError",
    "aggregate",
    "run_once",
]
