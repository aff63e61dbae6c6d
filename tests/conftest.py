# tests/conftest.py
import contextlib
import os
import tempfile

import pytest
from bs4 import BeautifulSoup
from freezegun import freeze_time

from modules.careers_sync.lib import config as cs_config
from modules.careers_sync.lib.db import SqliteJobStore

BASE_URL = "https://careers.example.com/global/en/search-results?s=1"

# Every env var Settings reads; cleared per test so the host env never leaks in.
_SETTINGS_ENV = (
    "BASE_URL",
    "PAGE_SIZE",
    "MAX_PAGES",
    "PAGINATION_MODE",
    "NEXT_SELECTOR",
    "LINK_SELECTOR",
    "WAIT_MOUNT_MS",
    "NAV_TIMEOUT_MS",
    "IDLE_TIMEOUT_MS",
    "CONSENT_TIMEOUT_MS",
    "HEADLESS",
    "BLOCK_ASSETS",
    "SINK_MODE",
    "SQLITE_PATH",
    "UPSERT_CHUNK_SIZE",
    "INGEST_URL",
    "BOLT_INGEST_URL",
    "INGEST_KEY",
    "INGEST_BEARER",
    "SUPABASE_ANON_KEY",
    "TENANT_ID",
    "ARTIFACT_PATH",
    "HTTP_TIMEOUT",
)


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (real browser against a real careers site).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that launch a real browser and hit the network (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="cs-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Synthetic results pages
# ---------------------------------------------------------------------
def cards_html(count: int, start: int = 0, *, location: str = "  Dublin,\n  Leinster,  Ireland ") -> str:
    """A results page with `count` job cards numbered from `start`."""
    items = []
    for i in range(start, start + count):
        items.append(
            f"""
            <li class="jobs-list-item">
              <a href="/global/en/job/R{i:04d}/Engineer-{i}">  Process
                 Engineer {i} </a>
              <span class="job-location">{location}</span>
              <span data-ph-at-id="category">Engineering</span>
              <span class="job-team">Plant   Operations</span>
            </li>"""
        )
    return f"<html><body><main><ul>{''.join(items)}</ul></main></body></html>"


EMPTY_HTML = "<html><body><main><p>No results</p></main></body></html>"


class FakePage:
    """
    In-memory PageHandle.

    Offset mode: `pages` maps URL -> HTML; unknown URLs render EMPTY_HTML.
    Next-button mode: `sequence` is the list of HTML documents reached by
    successive "next" clicks; the control is ready while more remain
    (or per `next_ready` when given).
    """

    def __init__(self, pages=None, sequence=None, next_ready=None, fail_goto=None):
        self.pages = dict(pages or {})
        self.sequence = list(sequence or [])
        self.next_ready = next_ready
        self.fail_goto = fail_goto
        self.visited: list[str] = []
        self.clicks = 0
        self.consent_calls = 0
        self.settle_calls = 0
        self._url = "about:blank"
        self._html = EMPTY_HTML
        self._pos = 0

    @property
    def url(self) -> str:
        return self._url

    def goto(self, url: str) -> None:
        if self.fail_goto:
            raise self.fail_goto
        self.visited.append(url)
        self._url = url
        if self.sequence:
            self._pos = 0
            self._html = self.sequence[0]
        else:
            self._html = self.pages.get(url, EMPTY_HTML)

    def dismiss_consent(self, selectors, timeout_ms: int) -> None:
        self.consent_calls += 1

    def settle(self, timeout_ms: int) -> None:
        self.settle_calls += 1

    def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        return bool(BeautifulSoup(self._html, "html.parser").select(selector))

    def content(self) -> str:
        return self._html

    def next_control_ready(self, selector: str) -> bool:
        if self.next_ready is not None:
            return bool(self.next_ready(self))
        return self._pos < len(self.sequence) - 1

    def click_and_settle(self, selector: str, timeout_ms: int) -> None:
        self.clicks += 1
        if self._pos < len(self.sequence) - 1:
            self._pos += 1
        self._html = self.sequence[self._pos] if self.sequence else EMPTY_HTML
        self.settle(timeout_ms)


def fake_session(page: FakePage):
    """session_factory for engine.run_once that yields `page`."""

    @contextlib.contextmanager
    def _factory(settings):
        yield page

    return _factory


@pytest.fixture
def make_settings(tmp_path):
    """Settings builder with a per-test SQLite file and artifact path."""

    def _make(**overrides):
        kw = {
            "base_url": BASE_URL,
            "sqlite_path": str(tmp_path / "careers_sync.db"),
            "artifact_path": str(tmp_path / "public" / "jobs.json"),
        }
        kw.update(overrides)
        return cs_config.Settings.from_env_and_kwargs(kw)

    return _make


@pytest.fixture
def store(tmp_path):
    return SqliteJobStore(str(tmp_path / "store.db"))
