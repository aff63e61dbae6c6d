# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .logging_utils import write_activity_log, write_error_log

LOG = logging.getLogger(__name__)

DEFAULT_CRON = "0 6 * * *"
JOB_ID = "careers_sync"


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        """
        Promptly shut down APScheduler.
        """
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # wait=False -> stop immediately; a sync in flight is allowed to finish.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the scheduler is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def build_trigger(cron: str | None = None, tz: Any = None) -> CronTrigger:
    """Crontab string (5 fields) -> CronTrigger in `tz`."""
    spec = (cron or os.getenv("CRAWL_CRON") or DEFAULT_CRON).strip()
    fields = spec.split()
    if len(fields) != 5:
        raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {spec!r}")
    return CronTrigger.from_crontab(spec, timezone=tz or resolve_timezone())


def start(
    cron: str | None = None,
    kwargs: dict[str, Any] | None = None,
    *,
    job_func: Callable[..., Any] | None = None,
) -> SchedulerController:
    """
    Build an APScheduler instance with one cron job for the careers sync and start it.
    Returns a SchedulerController that exposes stop() and join().

    Settings are validated up front so a bad config (e.g. sink=ingest without
    credentials) fails at startup instead of on every tick. Raises ConfigError.
    """
    from modules.careers_sync.lib.config import Settings

    Settings.from_env_and_kwargs(kwargs or {})

    tz = resolve_timezone()
    trigger = build_trigger(cron, tz)

    scheduler = BackgroundScheduler(
        timezone=tz,
        # Never run two syncs at once; collapse missed runs into one.
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )
    scheduler.add_job(
        job_func or run_sync_job,
        trigger=trigger,
        id=JOB_ID,
        name="careers sync",
        kwargs={"job_kwargs": dict(kwargs or {})},
        replace_existing=True,
    )
    scheduler.start()
    nxt = preview_trigger(trigger, tz, count=1)
    LOG.info("Scheduler started; next careers sync at %s", nxt[0].isoformat() if nxt else "never")

    return SchedulerController(scheduler)


def run_sync_job(job_kwargs: dict[str, Any] | None = None) -> dict[str, Any] | None:
    """
    Scheduled entry: run one sync. Failures are logged, never raised, so the
    scheduler keeps firing on the next tick.
    """
    from modules.careers_sync import run

    started = datetime.now().astimezone().isoformat()
    try:
        summary = run(**(job_kwargs or {}))
    except Exception as e:
        LOG.exception("Scheduled careers sync failed")
        write_error_log({"ts": started, "where": "scheduler.run_sync_job", "error": repr(e)})
        return None

    write_activity_log({
        "ts": started,
        "event": "scheduled_sync",
        "count": summary.get("count"),
        "scraped_at": summary.get("scraped_at"),
    })
    return summary


# ---- Helpers ----------------------------------------------------------------


def preview_trigger(trigger, tz, count: int = 6, start=None):
    """
    Return next `count` fire times for visibility in logs/prints.
    Deterministic: previous_fire_time = now = `start` (or "now" in tz), then
    advance `now` by 1µs after each hit so the next lookup moves forward.
    """
    now = start or datetime.now(tz=tz)
    prev = None
    times = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def resolve_timezone(name: str | None = None):
    """
    APScheduler 3.x expects a pytz timezone. Uses `name`, else env TZ, else UTC.
    """
    import pytz

    tz_name = name or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC
