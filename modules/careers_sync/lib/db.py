from __future__ import annotations

import contextlib
import os
import sqlite3
from collections.abc import Mapping, Sequence
from typing import Any

from .logging_bridge import error as log_error

# Columns of the `jobs` table that callers may read, write or filter on.
COLUMNS = (
    "url",
    "title",
    "location",
    "country",
    "category",
    "team",
    "description",
    "is_active",
    "updated_at",
    "first_seen_at",
)
_UNIQUE_KEYS = {"url"}
_OPS = {"eq": "=", "neq": "!=", "lt": "<", "lte": "<=", "gt": ">", "gte": ">="}

Condition = tuple[str, str, Any]


class SqliteJobStore:
    """
    Durable job store over a single SQLite file.

    Rows are keyed by `url`; nothing is ever deleted, stale rows are only
    flagged `is_active = 0`.
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        init_db(sqlite_path)

    def upsert(self, rows: Sequence[Mapping[str, Any]], conflict_key: str = "url") -> int:
        """
        Insert-or-update `rows` in one transaction. Duplicate keys overwrite.
        `first_seen_at` is only written on insert.
        """
        if conflict_key not in _UNIQUE_KEYS:
            raise ValueError(f"Unsupported conflict key {conflict_key!r}; expected one of {sorted(_UNIQUE_KEYS)}")
        if not rows:
            return 0

        cols = [c for c in COLUMNS if c in rows[0]]
        _check_columns(cols)
        if conflict_key not in cols:
            raise ValueError(f"Rows must carry the conflict key {conflict_key!r}")
        if "first_seen_at" not in cols and "updated_at" in cols:
            insert_cols = [*cols, "first_seen_at"]
            values = [tuple(r.get(c) for c in cols) + (r.get("updated_at"),) for r in rows]
        else:
            insert_cols = cols
            values = [tuple(r.get(c) for c in cols) for r in rows]

        updates = ", ".join(f"{c} = excluded.{c}" for c in cols if c not in (conflict_key, "first_seen_at"))
        sql = (
            f"INSERT INTO jobs ({', '.join(insert_cols)}) "
            f"VALUES ({', '.join('?' for _ in insert_cols)}) "
            f"ON CONFLICT({conflict_key}) DO UPDATE SET {updates}"
        )
        return self._write("upsert", sql, values, many=True, count=len(values))

    def update_where(self, conditions: Sequence[Condition], patch: Mapping[str, Any]) -> int:
        """
        Apply `patch` to every row matching all `conditions` ((column, op, value)
        with op in eq/neq/lt/lte/gt/gte). Returns the number of rows changed.
        """
        if not patch:
            return 0
        _check_columns(patch.keys())
        _check_columns(c for c, _, _ in conditions)

        set_sql = ", ".join(f"{c} = ?" for c in patch)
        where: list[str] = []
        params: list[Any] = list(patch.values())
        for col, op, value in conditions:
            if op not in _OPS:
                raise ValueError(f"Unsupported operator {op!r}")
            where.append(f"{col} {_OPS[op]} ?")
            params.append(value)
        sql = f"UPDATE jobs SET {set_sql}" + (f" WHERE {' AND '.join(where)}" if where else "")
        return self._write("update_where", sql, params)

    def fetch_all(self) -> list[dict[str, Any]]:
        """All rows as dicts, ordered by url (tests & diagnostics)."""
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(f"SELECT {', '.join(COLUMNS)} FROM jobs ORDER BY url").fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["is_active"] = bool(d["is_active"])
            out.append(d)
        return out

    # ---- internals ----
    def _write(self, op: str, sql: str, params: Any, *, many: bool = False, count: int | None = None) -> int:
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                try:
                    if many:
                        cur.executemany(sql, params)
                    else:
                        cur.execute(sql, params)
                    changed = cur.rowcount
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            log_error({
                "component": "careers_sync.db",
                "op": op,
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise
        return count if count is not None else int(changed)


# ---- Module helpers ---------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)


def count_rows(sqlite_path: str, *, active: bool | None = None) -> int:
    """Return rows in the jobs table (optionally only active/inactive); 0 if DB missing."""
    if not os.path.exists(sqlite_path):
        return 0
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _ensure_schema(conn)
        if active is None:
            (n,) = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
        else:
            (n,) = conn.execute("SELECT COUNT(*) FROM jobs WHERE is_active = ?", (int(active),)).fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


def _check_columns(cols: Any) -> None:
    bad = [c for c in cols if c not in COLUMNS]
    if bad:
        raise ValueError(f"Unknown job column(s): {bad}")


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; transactions are managed explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY,
          url         TEXT NOT NULL,
          title       TEXT NOT NULL DEFAULT '',
          location    TEXT NOT NULL DEFAULT '',
          country     TEXT NOT NULL DEFAULT '',
          category    TEXT NOT NULL DEFAULT '',
          team        TEXT NOT NULL DEFAULT '',
          description TEXT NOT NULL DEFAULT '',
          is_active   INTEGER NOT NULL DEFAULT 1,
          updated_at  TEXT NOT NULL,
          first_seen_at TEXT NOT NULL
        );
        """
    )
    conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS ux_jobs_url ON jobs (url);")
    conn.execute("CREATE INDEX IF NOT EXISTS ix_jobs_active_updated ON jobs (is_active, updated_at);")
