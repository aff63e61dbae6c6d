from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'careers_sync' module.

    Accepts kwargs (from the CLI or the scheduler) that override env config:
      base_url: str
      page_size: int = 10
      max_pages: int = 60
      pagination_mode: "offset" | "next" = "offset"
      sink: "store" | "ingest" = "store"
      sqlite_path / ingest_url / ingest_key / artifact_path / ...

    Returns the run summary dict (count, scraped_at, sink, pages, ...).
    Raises ConfigError before any network I/O if the settings are invalid.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "careers_sync.main",
        "op": "start",
        **settings.redacted(),
    })

    return _run_engine(settings)
