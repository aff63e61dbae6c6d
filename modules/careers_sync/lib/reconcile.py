"""
Reconciliation of a crawl snapshot with the outside world.

Two sinks, one per run:
  - store:  upsert every job (active, updated_at = watermark) in bounded
            chunks, then deactivate active rows older than the watermark
  - ingest: POST the serialized snapshot to an HTTP ingestion endpoint that
            owns its own notion of "active"

Deactivation only runs after every upsert chunk committed, so an interrupted
run never leaves current jobs flagged inactive.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from .config import Settings
from .http_client import HttpClient
from .models import CrawlSnapshot, JobRecord

log = logging.getLogger(__name__)


# -----------------------------
# Exceptions
# -----------------------------
class CrawlError(Exception):
    """Base class for fatal run errors."""


class ReconcileError(CrawlError):
    """A store write failed; the run must not be treated as authoritative."""


class SinkError(CrawlError):
    """The ingestion endpoint rejected or failed the delivery."""


# -----------------------------
# Store collaborator
# -----------------------------
class JobStore(Protocol):
    def upsert(self, rows: Sequence[Mapping[str, Any]], conflict_key: str = "url") -> int: ...

    def update_where(self, conditions: Sequence[tuple[str, str, Any]], patch: Mapping[str, Any]) -> int: ...


@dataclass(frozen=True)
class ReconcileResult:
    upserted: int
    deactivated: int
    chunks: int


def to_store_row(job: JobRecord, watermark: str) -> dict[str, Any]:
    return {
        "url": job.link,
        "title": job.title,
        "location": job.location,
        "country": job.country,
        "category": job.category,
        "team": job.team,
        "is_active": True,
        "updated_at": watermark,
    }


def _chunks(rows: list[dict[str, Any]], size: int) -> Iterator[list[dict[str, Any]]]:
    for i in range(0, len(rows), size):
        yield rows[i : i + size]


def reconcile_store(snapshot: CrawlSnapshot, store: JobStore, *, chunk_size: int = 500) -> ReconcileResult:
    """
    Two-phase sync: upsert all snapshot jobs, then deactivate stale actives.

    Rows with updated_at >= watermark that are absent from the snapshot are
    left alone (they belong to a newer run).
    """
    watermark = snapshot.scraped_at
    rows = [to_store_row(j, watermark) for j in snapshot.jobs]

    upserted = 0
    chunks = 0
    for idx, chunk in enumerate(_chunks(rows, chunk_size)):
        try:
            upserted += store.upsert(chunk, conflict_key="url")
        except Exception as e:
            raise ReconcileError(f"Upsert chunk {idx} ({len(chunk)} rows) failed: {e}") from e
        chunks += 1
        log.debug("Upserted chunk %d (%d rows)", idx, len(chunk))

    if snapshot.count == 0:
        log.warning(
            "Empty snapshot from %s at %s; every active job older than the watermark will be deactivated",
            snapshot.source,
            watermark,
        )

    try:
        deactivated = store.update_where(
            [("is_active", "eq", True), ("updated_at", "lt", watermark)],
            {"is_active": False},
        )
    except Exception as e:
        raise ReconcileError(f"Deactivation of stale jobs failed: {e}") from e

    log.info("Store sync: %d upserted in %d chunk(s), %d deactivated", upserted, chunks, deactivated)
    return ReconcileResult(upserted=upserted, deactivated=deactivated, chunks=chunks)


# -----------------------------
# Ingestion sink
# -----------------------------
def ingest_headers(settings: Settings) -> dict[str, str]:
    headers = {
        "x-ingest-key": settings.ingest_key or "",
        "x-tenant-id": settings.tenant_id,
    }
    if settings.ingest_bearer:
        headers["Authorization"] = f"Bearer {settings.ingest_bearer}"
        headers["apikey"] = settings.ingest_bearer
    return headers


def deliver_ingest(snapshot: CrawlSnapshot, settings: Settings, client: HttpClient | None = None) -> Any:
    """POST the snapshot; return the decoded response body ({} if none). Non-2xx raises SinkError."""
    if not settings.ingest_url or not settings.ingest_key:
        raise SinkError("Missing ingest URL or key")

    own_client = client is None
    http = client or HttpClient(timeout=settings.http_timeout)
    try:
        try:
            resp = http.post_json(settings.ingest_url, snapshot.to_payload(), headers=ingest_headers(settings))
        except Exception as e:
            raise SinkError(f"Ingest request failed: {e}") from e
        if not resp.ok:
            raise SinkError(f"Ingest failed: HTTP {resp.status_code} - {resp.text[:500]}")
        body = http.json_or_empty(resp)
    finally:
        if own_client:
            http.close()

    log.info("Ingest response: %s", body)
    return body


# -----------------------------
# Local artifact
# -----------------------------
def write_artifact(snapshot: CrawlSnapshot, path: str) -> str:
    """Write the snapshot as pretty JSON at `path` (overwritten each run)."""
    out_dir = os.path.dirname(os.path.abspath(path))
    os.makedirs(out_dir, exist_ok=True)
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(snapshot.to_payload(), f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)
    log.info("Saved %d jobs to %s", snapshot.count, path)
    return path


def load_artifact(path: str) -> CrawlSnapshot:
    """Read a snapshot back from an artifact file (for inspection/replay)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    jobs = tuple(
        JobRecord(
            title=j.get("title", ""),
            link=j.get("href", ""),
            location_raw=j.get("location", ""),
            location=j.get("location", ""),
            country=j.get("country", ""),
            category=j.get("category", ""),
            team=j.get("team", ""),
        )
        for j in data.get("jobs") or []
    )
    return CrawlSnapshot(scraped_at=data["scraped_at"], source=data.get("source", ""), jobs=jobs)
