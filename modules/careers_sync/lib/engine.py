"""
Engine for one careers sync run: crawl, snapshot, reconcile.

Flow:
  - open one browser session (released on every exit path)
  - paginate + extract into a CrawlAggregator
  - stamp the snapshot once the crawl has finished
  - optionally write the local JSON artifact
  - reconcile via the configured sink ("store" or "ingest")

Collaborators (browser session, store, HTTP client) can be injected for tests.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

from . import logging_bridge, reconcile
from .aggregate import CrawlAggregator
from .browser import PageHandle, browser_session
from .config import Settings
from .db import SqliteJobStore
from .http_client import HttpClient
from .models import CrawlSnapshot
from .pagination import Paginator

SessionFactory = Callable[[Settings], AbstractContextManager[PageHandle]]


def crawl(settings: Settings, page: PageHandle) -> tuple[CrawlSnapshot, dict[str, Any]]:
    """Run pagination against an open page and build the snapshot."""
    aggregator = CrawlAggregator()
    state = Paginator(settings).crawl(page, aggregator)
    snapshot = aggregator.snapshot(settings.base_url)
    stats = {
        "pages": state.pages_loaded,
        "stop_reason": state.stop_reason,
        "mode": state.mode.value,
    }
    return snapshot, stats


def run_once(
    settings: Settings,
    *,
    session_factory: SessionFactory | None = None,
    store: reconcile.JobStore | None = None,
    http_client: HttpClient | None = None,
) -> dict[str, Any]:
    """
    Run one complete crawl + reconcile cycle.

    Returns a summary dict (count, scraped_at, sink, pages, ...).
    Any fatal error is logged as an error record and re-raised.
    """
    start_ns = time.perf_counter_ns()
    open_session = session_factory or browser_session
    step = "crawl"

    try:
        with open_session(settings) as page:
            snapshot, stats = crawl(settings, page)
        crawl_us = int((time.perf_counter_ns() - start_ns) // 1000)

        logging_bridge.activity({
            "component": "careers_sync.engine",
            "op": "crawled",
            "source": snapshot.source,
            "count": snapshot.count,
            "scraped_at": snapshot.scraped_at,
            "crawl_us": crawl_us,
            **stats,
        })

        summary: dict[str, Any] = {
            "count": snapshot.count,
            "scraped_at": snapshot.scraped_at,
            "source": snapshot.source,
            "sink": settings.sink,
            **stats,
        }

        if settings.artifact_path:
            step = "artifact"
            summary["artifact_path"] = reconcile.write_artifact(snapshot, settings.artifact_path)

        step = settings.sink
        if settings.sink == "ingest":
            summary["ingest_response"] = reconcile.deliver_ingest(snapshot, settings, http_client)
        else:
            result = reconcile.reconcile_store(
                snapshot,
                store or SqliteJobStore(settings.sqlite_path),
                chunk_size=settings.upsert_chunk_size,
            )
            summary.update(upserted=result.upserted, deactivated=result.deactivated, chunks=result.chunks)

    except Exception as e:
        logging_bridge.error({
            "component": "careers_sync.engine",
            "op": step,
            "base_url": settings.base_url,
            "sink": settings.sink,
            "error": repr(e),
        })
        raise

    summary["total_us"] = int((time.perf_counter_ns() - start_ns) // 1000)
    logging_bridge.activity({
        "component": "careers_sync.engine",
        "op": "summary",
        **{k: v for k, v in summary.items() if k != "ingest_response"},
    })
    return summary
