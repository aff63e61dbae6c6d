from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import soupsieve

from .models import PaginationMode
from .utils import first_env, truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Defaults
# -----------------------------
DEFAULT_BASE_URL = "https://jobs.ardaghgroup.com/global/en/search-results?s=1"
DEFAULT_NEXT_SELECTOR = (
    'a[aria-label="Next"],button[aria-label="Next"],a:has-text("Next"),button:has-text("Next")'
)
DEFAULT_LINK_SELECTOR = 'a[href*="/job/"]'
DEFAULT_SQLITE_PATH = "/app/local/state/careers_sync.db"
DEFAULT_ARTIFACT_PATH = "public/jobs.json"

SINKS = ("store", "ingest")


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for a 'careers_sync' run.

    Every field has a default; kwargs win over environment variables.
    Sink credentials are checked here so a misconfigured run fails at
    startup rather than after a full crawl.
    """

    # Crawl target + pagination
    base_url: str = DEFAULT_BASE_URL
    page_size: int = 10
    max_pages: int = 60
    pagination_mode: PaginationMode = PaginationMode.OFFSET
    next_selector: str = DEFAULT_NEXT_SELECTOR
    link_selector: str = DEFAULT_LINK_SELECTOR

    # Wait budgets (milliseconds)
    wait_mount_ms: int = 5000
    nav_timeout_ms: int = 60000
    idle_timeout_ms: int = 20000
    consent_timeout_ms: int = 1500

    # Browser
    headless: bool = True
    block_assets: bool = True

    # Sink selection
    sink: str = "store"
    sqlite_path: str = DEFAULT_SQLITE_PATH
    upsert_chunk_size: int = 500
    ingest_url: str | None = None
    ingest_key: str | None = None
    ingest_bearer: str | None = None
    tenant_id: str = "default"
    http_timeout: float = 30.0

    # Local artifact ("" disables)
    artifact_path: str = DEFAULT_ARTIFACT_PATH

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None = None) -> Settings:
        """
        Build Settings from kwargs with env fallbacks and validation.

        Recognized kwargs mirror the field names; env names are the upper-case
        forms (BASE_URL, PAGE_SIZE, PAGINATION_MODE, SINK_MODE, INGEST_URL, ...).
        """
        kw = dict(kwargs or {})

        def pick(key: str, *env_names: str) -> Any:
            if kw.get(key) is not None:
                return kw[key]
            return first_env(*(env_names or (key.upper(),)))

        try:
            mode = PaginationMode.parse(pick("pagination_mode"))
        except ValueError as e:
            raise ConfigError(str(e)) from e

        artifact = pick("artifact_path")
        settings = cls(
            base_url=str(pick("base_url") or DEFAULT_BASE_URL).strip(),
            page_size=_as_int(pick("page_size"), 10, "page_size"),
            max_pages=_as_int(pick("max_pages"), 60, "max_pages"),
            pagination_mode=mode,
            next_selector=str(pick("next_selector") or DEFAULT_NEXT_SELECTOR),
            link_selector=str(pick("link_selector") or DEFAULT_LINK_SELECTOR),
            wait_mount_ms=_as_int(pick("wait_mount_ms"), 5000, "wait_mount_ms"),
            nav_timeout_ms=_as_int(pick("nav_timeout_ms"), 60000, "nav_timeout_ms"),
            idle_timeout_ms=_as_int(pick("idle_timeout_ms"), 20000, "idle_timeout_ms"),
            consent_timeout_ms=_as_int(pick("consent_timeout_ms"), 1500, "consent_timeout_ms"),
            headless=_as_bool(pick("headless"), True),
            block_assets=_as_bool(pick("block_assets"), True),
            sink=str(pick("sink", "SINK_MODE") or "store").strip().lower(),
            sqlite_path=str(pick("sqlite_path") or DEFAULT_SQLITE_PATH),
            upsert_chunk_size=_as_int(pick("upsert_chunk_size"), 500, "upsert_chunk_size"),
            ingest_url=_opt_str(pick("ingest_url", "INGEST_URL", "BOLT_INGEST_URL")),
            ingest_key=_opt_str(pick("ingest_key", "INGEST_KEY")),
            ingest_bearer=_opt_str(pick("ingest_bearer", "INGEST_BEARER", "SUPABASE_ANON_KEY")),
            tenant_id=str(pick("tenant_id") or "default"),
            http_timeout=_as_float(pick("http_timeout"), 30.0, "http_timeout"),
            artifact_path=DEFAULT_ARTIFACT_PATH if artifact is None else str(artifact).strip(),
        )
        _validate_settings(settings)
        return settings

    def redacted(self) -> dict[str, Any]:
        """Loggable view of the settings (credentials masked)."""
        return {
            "base_url": self.base_url,
            "page_size": self.page_size,
            "max_pages": self.max_pages,
            "pagination_mode": self.pagination_mode.value,
            "sink": self.sink,
            "sqlite_path": self.sqlite_path if self.sink == "store" else None,
            "ingest_url": self.ingest_url if self.sink == "ingest" else None,
            "tenant_id": self.tenant_id,
            "artifact_path": self.artifact_path or None,
        }


# -----------------------------
# Helpers
# -----------------------------
def _opt_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _as_bool(v: Any, default: bool) -> bool:
    return default if v is None else truthy(v)


def _as_int(v: Any, default: int, name: str) -> int:
    if v is None or v == "":
        return default
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be an integer (got {v!r}).") from e


def _as_float(v: Any, default: float, name: str) -> float:
    if v is None or v == "":
        return default
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be a number (got {v!r}).") from e


def _validate_settings(s: Settings) -> None:
    if not s.base_url.lower().startswith(("http://", "https://")):
        raise ConfigError(f"'base_url' must be an http(s) URL (got {s.base_url!r}).")

    for name in (
        "page_size",
        "max_pages",
        "wait_mount_ms",
        "nav_timeout_ms",
        "idle_timeout_ms",
        "consent_timeout_ms",
        "upsert_chunk_size",
    ):
        if getattr(s, name) <= 0:
            raise ConfigError(f"'{name}' must be >= 1.")
    if s.http_timeout <= 0:
        raise ConfigError("'http_timeout' must be > 0.")

    if s.sink not in SINKS:
        raise ConfigError(f"'sink' must be one of {SINKS} (got {s.sink!r}).")
    if s.sink == "store" and not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty when sink='store'.")
    if s.sink == "ingest" and not (s.ingest_url and s.ingest_key):
        raise ConfigError("Missing ingest credentials: set INGEST_URL and INGEST_KEY (sink='ingest').")

    # Cards are parsed with soupsieve, so Playwright-only pseudo-classes are rejected here.
    try:
        soupsieve.compile(s.link_selector)
    except soupsieve.SelectorSyntaxError as e:
        raise ConfigError(f"'link_selector' must be plain CSS (got {s.link_selector!r}): {e}") from e
