from __future__ import annotations

from collections.abc import Iterable

from .models import CrawlSnapshot, JobRecord
from .utils import extract_country, normalize, now_iso


class CrawlAggregator:
    """
    Owns the run's link -> JobRecord mapping.

    Batches merge in arrival order; a later sighting of a link overwrites the
    record but keeps the position of its first sighting.
    """

    def __init__(self) -> None:
        self._jobs_by_link: dict[str, JobRecord] = {}

    def __len__(self) -> int:
        return len(self._jobs_by_link)

    def merge(self, batch: Iterable[JobRecord]) -> int:
        """Merge a page batch; return how many links were new."""
        before = len(self._jobs_by_link)
        for job in batch:
            self._jobs_by_link[job.link] = job
        return len(self._jobs_by_link) - before

    def snapshot(self, source: str) -> CrawlSnapshot:
        """Normalize every record and stamp the watermark now."""
        jobs = tuple(_normalized(j) for j in self._jobs_by_link.values())
        return CrawlSnapshot(scraped_at=now_iso(), source=source, jobs=jobs)


def _normalized(job: JobRecord) -> JobRecord:
    location = normalize(job.location_raw or job.location)
    return JobRecord(
        title=normalize(job.title),
        link=job.link,
        location_raw=job.location_raw,
        location=location,
        country=extract_country(location),
        category=normalize(job.category),
        team=normalize(job.team),
    )


def aggregate(batches: Iterable[Iterable[JobRecord]], source: str) -> CrawlSnapshot:
    agg = CrawlAggregator()
    for batch in batches:
        agg.merge(batch)
    return agg.snapshot(source)
