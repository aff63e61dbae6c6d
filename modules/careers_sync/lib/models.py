from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PaginationMode(str, Enum):
    OFFSET = "offset"
    NEXT_BUTTON = "next"

    @classmethod
    def parse(cls, value: Any) -> PaginationMode:
        s = str(value or "").strip().lower().replace("-", "_")
        if s in {"offset", ""}:
            return cls.OFFSET
        if s in {"next", "next_button"}:
            return cls.NEXT_BUTTON
        raise ValueError(f"Unknown pagination mode: {value!r}")


@dataclass(frozen=True)
class JobRecord:
    """
    A single job listing as extracted from a results page.
    `link` is the canonical identity (absolute job-detail URL).
    """

    title: str
    link: str
    location_raw: str = ""
    location: str = ""
    country: str = ""
    category: str = ""
    team: str = ""

    def to_payload(self) -> dict[str, str]:
        return {
            "title": self.title,
            "location": self.location,
            "country": self.country,
            "category": self.category,
            "team": self.team,
            "href": self.link,
        }


@dataclass(frozen=True)
class CrawlSnapshot:
    """
    Complete, deduplicated result of one crawl run.
    `scraped_at` doubles as the reconciliation watermark.
    """

    scraped_at: str
    source: str
    jobs: tuple[JobRecord, ...] = ()

    @property
    def count(self) -> int:
        return len(self.jobs)

    def to_payload(self) -> dict[str, Any]:
        return {
            "scraped_at": self.scraped_at,
            "source": self.source,
            "count": self.count,
            "jobs": [j.to_payload() for j in self.jobs],
        }


@dataclass
class PaginationState:
    """Progress of one crawl; `seen_offsets` guards against revisiting an offset."""

    mode: PaginationMode
    page_index: int = 0
    offset: int = 0
    seen_offsets: set[int] = field(default_factory=set)
    pages_loaded: int = 0
    stop_reason: str = ""
