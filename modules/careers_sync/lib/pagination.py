# careers_sync/pagination.py
"""
Pagination over a careers search. Two strategies, picked once per run:

  OFFSET       step a `from=<offset>` query parameter by page_size
  NEXT_BUTTON  load the base URL once, then keep clicking the "next" control

Both share the max_pages ceiling.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .aggregate import CrawlAggregator
from .browser import PageHandle
from .config import Settings
from .extractor import PageExtractor
from .models import PaginationMode, PaginationState

log = logging.getLogger(__name__)

OFFSET_PARAM = "from"


def offset_url(base_url: str, offset: int) -> str:
    """base_url itself for offset 0; otherwise base_url with from=<offset> set."""
    if offset == 0:
        return base_url
    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != OFFSET_PARAM]
    query.append((OFFSET_PARAM, str(offset)))
    return urlunsplit(parts._replace(query=urlencode(query)))


class Paginator:
    def __init__(self, settings: Settings, extractor: PageExtractor | None = None) -> None:
        self.settings = settings
        self.extractor = extractor or PageExtractor(settings)

    def crawl(self, page: PageHandle, aggregator: CrawlAggregator) -> PaginationState:
        """Drive `page` through every results page, merging batches into `aggregator`."""
        state = PaginationState(mode=self.settings.pagination_mode)
        if state.mode is PaginationMode.NEXT_BUTTON:
            self._crawl_next_button(page, aggregator, state)
        else:
            self._crawl_offset(page, aggregator, state)
        log.info(
            "Pagination stopped (%s) after %d page(s); %d distinct job(s)",
            state.stop_reason,
            state.pages_loaded,
            len(aggregator),
        )
        return state

    # ------------------------------------------------------------------ #
    def _crawl_offset(self, page: PageHandle, aggregator: CrawlAggregator, state: PaginationState) -> None:
        s = self.settings
        while True:
            if state.offset in state.seen_offsets:
                state.stop_reason = "repeated_offset"
                return
            state.seen_offsets.add(state.offset)

            log.info("Scraping page %d (offset %d)", state.page_index + 1, state.offset)
            page.goto(offset_url(s.base_url, state.offset))
            jobs = self.extractor.extract(page)
            state.pages_loaded += 1

            if not jobs:
                state.stop_reason = "empty_page"
                return
            aggregator.merge(jobs)
            if len(jobs) < s.page_size:
                state.stop_reason = "short_page"
                return
            if state.pages_loaded >= s.max_pages:
                state.stop_reason = "max_pages"
                return

            state.page_index += 1
            state.offset += s.page_size

    def _crawl_next_button(self, page: PageHandle, aggregator: CrawlAggregator, state: PaginationState) -> None:
        s = self.settings
        log.info("Scraping page 1 (next-button mode)")
        page.goto(s.base_url)
        jobs = self.extractor.extract(page)
        state.pages_loaded = 1
        if jobs:
            aggregator.merge(jobs)
        else:
            log.info("No jobs on first page (next-button mode)")

        while state.pages_loaded < s.max_pages:
            if not page.next_control_ready(s.next_selector):
                state.stop_reason = "no_next_control"
                return

            page.click_and_settle(s.next_selector, s.idle_timeout_ms)
            state.page_index += 1
            log.info("Scraping page %d (next-button mode)", state.page_index + 1)

            jobs = self.extractor.extract(page)
            state.pages_loaded += 1
            if not jobs:
                state.stop_reason = "empty_page"
                return
            if aggregator.merge(jobs) == 0:
                state.stop_reason = "no_new_links"
                return

        state.stop_reason = "max_pages"
