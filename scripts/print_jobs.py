#!/usr/bin/env python3
"""
print_jobs.py - show what the last careers sync left behind.

    python scripts/print_jobs.py --db local/state/careers_sync.db --limit 20
    python scripts/print_jobs.py --artifact public/jobs.json
"""

import argparse
import json
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    except (AttributeError, ValueError):
        return str(iso_str)


def print_db(db_path: Path, limit: int, show_inactive: bool) -> int:
    try:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    except sqlite3.Error as e:
        print(f"Error opening {db_path}: {e}", file=sys.stderr)
        return 1
    try:
        (active,) = conn.execute("SELECT COUNT(*) FROM jobs WHERE is_active = 1").fetchone()
        (inactive,) = conn.execute("SELECT COUNT(*) FROM jobs WHERE is_active = 0").fetchone()
        where = "" if show_inactive else "WHERE is_active = 1"
        rows = conn.execute(
            f"SELECT title, location, url, is_active, updated_at FROM jobs {where} "
            "ORDER BY updated_at DESC, title LIMIT ?",
            (limit,),
        ).fetchall()
    except sqlite3.Error as e:
        print(f"Error reading {db_path}: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()

    print(f"DATABASE: {db_path}")
    print(f"Active: {active}   Inactive: {inactive}")
    print("-" * 80)
    for i, (title, location, url, is_active, updated_at) in enumerate(rows, 1):
        flag = "" if is_active else " (inactive)"
        print(f"{i:3d}. [{format_timestamp(updated_at)}]{flag}")
        print(f"     Title:    {title}")
        print(f"     Location: {location}")
        print(f"     URL:      {url}")
    return 0


def print_artifact(path: Path, limit: int) -> int:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"Error reading {path}: {e}", file=sys.stderr)
        return 1

    print(f"ARTIFACT: {path}")
    print(f"Source:  {data.get('source')}")
    print(f"Scraped: {format_timestamp(data.get('scraped_at', ''))}   Count: {data.get('count')}")
    print("-" * 80)
    for i, job in enumerate((data.get("jobs") or [])[:limit], 1):
        print(f"{i:3d}. {job.get('title')} | {job.get('location')} | {job.get('href')}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Summarize careers sync output",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--db", type=Path, default=PROJECT_ROOT / "local" / "state" / "careers_sync.db")
    parser.add_argument("--artifact", type=Path, help="Read a snapshot JSON file instead of the store")
    parser.add_argument("--limit", type=int, default=15)
    parser.add_argument("--all", action="store_true", help="Include inactive jobs")
    args = parser.parse_args()

    if args.artifact:
        return print_artifact(args.artifact, args.limit)
    if not args.db.exists():
        print(f"Database not found: {args.db}", file=sys.stderr)
        return 1
    return print_db(args.db, args.limit, args.all)


if __name__ == "__main__":
    sys.exit(main())
