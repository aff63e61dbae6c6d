# careers_sync/browser.py
"""
Playwright-backed page handle.

The crawl core only talks to the small PageHandle protocol below (navigate,
wait, read HTML, click "next"), so tests can drive it with a fake page.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, Route, sync_playwright

from .config import Settings

log = logging.getLogger(__name__)

_ASSET_RE = re.compile(r"\.(png|jpe?g|gif|webp|svg|ico|woff2?|ttf)(\?|$)", re.I)
_TRACKER_RE = re.compile(r"googletagmanager|analytics|doubleclick|facebook|hotjar|fullstory|segment", re.I)


class PageHandle(Protocol):
    """What the extractor and paginator need from a rendered page."""

    @property
    def url(self) -> str: ...

    def goto(self, url: str) -> None: ...

    def dismiss_consent(self, selectors: Sequence[str], timeout_ms: int) -> None: ...

    def settle(self, timeout_ms: int) -> None: ...

    def wait_for_selector(self, selector: str, timeout_ms: int) -> bool: ...

    def content(self) -> str: ...

    def next_control_ready(self, selector: str) -> bool: ...

    def click_and_settle(self, selector: str, timeout_ms: int) -> None: ...


class PlaywrightPage:
    """PageHandle over a Playwright sync Page."""

    def __init__(self, page: Page, nav_timeout_ms: int = 60000) -> None:
        self._page = page
        self.nav_timeout_ms = nav_timeout_ms

    @property
    def url(self) -> str:
        return self._page.url

    def goto(self, url: str) -> None:
        # Navigation failures are fatal for the run; let them propagate.
        self._page.goto(url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)

    def dismiss_consent(self, selectors: Sequence[str], timeout_ms: int) -> None:
        for sel in selectors:
            try:
                btn = self._page.locator(sel).first
                if btn.count():
                    btn.click(timeout=timeout_ms)
                    return
            except PlaywrightError:
                log.debug("Consent click via %r ignored", sel, exc_info=True)
                return

    def settle(self, timeout_ms: int) -> None:
        try:
            self._page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightError:
            log.debug("networkidle not reached within %d ms; continuing", timeout_ms)

    def wait_for_selector(self, selector: str, timeout_ms: int) -> bool:
        try:
            self._page.locator(selector).first.wait_for(timeout=timeout_ms)
            return True
        except PlaywrightError:
            return False

    def content(self) -> str:
        return self._page.content()

    def next_control_ready(self, selector: str) -> bool:
        loc = self._page.locator(selector).first
        try:
            if loc.count() == 0:
                return False
            if (loc.get_attribute("aria-disabled") or "").lower() in {"true", "disabled"}:
                return False
            return loc.is_enabled()
        except PlaywrightError:
            return False

    def click_and_settle(self, selector: str, timeout_ms: int) -> None:
        try:
            self._page.locator(selector).first.click(timeout=timeout_ms)
        except PlaywrightError as e:
            # A click that does nothing shows up as "no new jobs" and stops the crawl.
            log.warning("Next click failed: %s", e)
        self.settle(timeout_ms)


def _block_heavy(route: Route) -> None:
    url = route.request.url
    if _ASSET_RE.search(url) or _TRACKER_RE.search(url):
        route.abort()
    else:
        route.continue_()


@contextmanager
def browser_session(settings: Settings) -> Iterator[PlaywrightPage]:
    """
    One browser, one context, one page for the whole run.
    Released in reverse order on every exit path.
    """
    pw = sync_playwright().start()
    browser = context = page = None
    try:
        browser = pw.chromium.launch(headless=settings.headless)
        context = browser.new_context(viewport={"width": 1400, "height": 1000})
        if settings.block_assets:
            context.route("**/*", _block_heavy)
        page = context.new_page()
        yield PlaywrightPage(page, nav_timeout_ms=settings.nav_timeout_ms)
    finally:
        for name, closer in (
            ("page", getattr(page, "close", None)),
            ("context", getattr(context, "close", None)),
            ("browser", getattr(browser, "close", None)),
            ("playwright", pw.stop),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception:
                log.debug("%s close failed", name, exc_info=True)
