# careers_sync/extractor.py
"""
Page-level extraction of job cards from a rendered search-results page.

The browser is only used to wait for the listing to mount and to hand back the
rendered HTML; the cards themselves are parsed with BeautifulSoup so the same
code runs against saved pages in tests.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from urllib.parse import urljoin

import soupsieve
from bs4 import BeautifulSoup, Tag

from .browser import PageHandle
from .config import Settings
from .models import JobRecord

log = logging.getLogger(__name__)

CONSENT_SELECTORS: tuple[str, ...] = (
    'button:has-text("Accept")',
    'button:has-text("I Accept")',
    'button:has-text("Agree")',
    '[aria-label*="accept" i]',
)

CARD_TAGS = ["article", "li", "div"]

# role -> CSS tried inside the card, first hit wins
FIELD_SELECTORS: dict[str, str] = {
    "location": '[data-ph-at-id="location"], [class*="location" i]',
    "category": '[data-ph-at-id="category"], [class*="category" i]',
    "team": '[data-ph-at-id="team"], [class*="team" i]',
}


def _pick(card: Tag | None, selector: str) -> str:
    if card is None:
        return ""
    el = card.select_one(selector)
    if el is None:
        return ""
    return el.get_text(" ", strip=True)


def parse_cards(
    html: str,
    base_url: str,
    *,
    link_selector: str = 'a[href*="/job/"]',
) -> list[JobRecord]:
    """
    Return one JobRecord per distinct absolute job URL found in `html`.

    - title: visible anchor text
    - location/category/team: best-effort lookups in the nearest card ancestor
    - duplicates by URL: last seen wins, first-seen order is kept
    - a selector soupsieve cannot compile yields no records
    """
    soup = BeautifulSoup(html, "html.parser")
    by_link: dict[str, JobRecord] = {}

    try:
        anchors = soup.select(link_selector)
    except soupsieve.SelectorSyntaxError as e:
        log.warning("Link selector %r is not usable on parsed HTML: %s", link_selector, e)
        return []

    for a in anchors:
        href = (a.get("href") or "").strip()
        title = a.get_text(" ", strip=True)
        if not href or not title:
            continue

        link = urljoin(base_url, href)
        card = a.find_parent(CARD_TAGS)
        location = _pick(card, FIELD_SELECTORS["location"])
        by_link[link] = JobRecord(
            title=title,
            link=link,
            location_raw=location,
            location=location,
            category=_pick(card, FIELD_SELECTORS["category"]),
            team=_pick(card, FIELD_SELECTORS["team"]),
        )

    return list(by_link.values())


class PageExtractor:
    """Turns the page currently loaded in a PageHandle into JobRecords."""

    def __init__(self, settings: Settings, consent_selectors: Sequence[str] = CONSENT_SELECTORS) -> None:
        self.settings = settings
        self.consent_selectors = tuple(consent_selectors)

    def extract(self, page: PageHandle) -> list[JobRecord]:
        s = self.settings
        page.dismiss_consent(self.consent_selectors, s.consent_timeout_ms)
        page.settle(s.idle_timeout_ms)

        # No links within the mount budget means "no jobs here", not an error.
        if not page.wait_for_selector(s.link_selector, s.wait_mount_ms):
            log.debug("No job links mounted within %d ms at %s", s.wait_mount_ms, page.url)
            return []

        jobs = parse_cards(page.content(), page.url, link_selector=s.link_selector)
        log.debug("Extracted %d job(s) from %s", len(jobs), page.url)
        return jobs
