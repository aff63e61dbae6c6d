# service/cli.py
"""
Command-line entrypoints.

Subcommands
-----------
run [--kwargs k=v ...]
    - Executes one careers sync (crawl + reconcile) and exits
    - Exit code 0 after logging the final count and timestamp, 1 on any fatal error

serve [--cron "0 6 * * *"] [--kwargs k=v ...]
    - Starts the APScheduler loop via service.scheduler.start()
    - Registers signal handlers for graceful shutdown

validate-config [--kwargs k=v ...]
    - Builds Settings from env + kwargs and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from types import SimpleNamespace
from typing import Any

from service import logging_utils as L
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except ValueError:
            out[k] = v
    return out


def _now_iso():
    return datetime.now().astimezone().isoformat()


# ------------------------------ Subcommands ----------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    from modules.careers_sync import run

    run_id = uuid.uuid4().hex
    start_time = time.monotonic()

    try:
        kwargs = _parse_kv_pairs(args.kwargs or [])
        summary = run(**kwargs)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.error("Sync failed: %s", e)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "run_id": run_id,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })
        return 1

    L.write_activity_log({
        "ts": _now_iso(),
        "event": "cli_run",
        "run_id": run_id,
        "count": summary["count"],
        "scraped_at": summary["scraped_at"],
        "sink": summary.get("sink"),
        "duration_ms": int((time.monotonic() - start_time) * 1000),
    })
    LOG.info("Synced %d jobs at %s", summary["count"], summary["scraped_at"])
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    from modules.careers_sync.lib.config import Settings

    try:
        settings = Settings.from_env_and_kwargs(_parse_kv_pairs(args.kwargs or []))
    except Exception as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    print(json.dumps(settings.redacted(), indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler loop until a termination signal is received.
    Exits 1 before scheduling anything when the settings are invalid.
    """
    from modules.careers_sync.lib.config import ConfigError, Settings

    job_kwargs = _parse_kv_pairs(args.kwargs or [])
    try:
        Settings.from_env_and_kwargs(job_kwargs)
    except ConfigError as e:
        LOG.error("Configuration invalid: %s", e)
        L.write_error_log({"ts": _now_iso(), "where": "cli.serve", "error": str(e)})
        return 1

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()
        _safe_stop("scheduler", running.sched)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        running.sched = _scheduler.start(cron=args.cron, kwargs=job_kwargs)
        LOG.info("Scheduler started: %r", running.sched)

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        _safe_stop("scheduler", running.sched)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        _graceful_shutdown("KeyboardInterrupt")
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        _graceful_shutdown("UnhandledException")
        return 1


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a scheduler controller."""
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)


# ------------------------------- Argparse ------------------------------------
def _add_kwargs_arg(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Settings overrides, e.g. page_size=20 sink=ingest (JSON values supported).",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Careers sync command-line tools",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("run", help="Crawl once and reconcile, then exit.")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("serve", help="Run the periodic sync on a cron schedule.")
    sp.add_argument("--cron", help="Crontab expression (default: CRAWL_CRON env or '0 6 * * *').")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    _add_kwargs_arg(sp)
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
