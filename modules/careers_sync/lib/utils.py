from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Any

_WS_RE = re.compile(r"\s+")


def normalize(s: str | None) -> str:
    """
    Collapse any run of whitespace to a single space and trim the ends.
    None yields "". Idempotent.
    """
    if s is None:
        return ""
    return _WS_RE.sub(" ", str(s)).strip()


def extract_country(location: str | None) -> str:
    """
    Rightmost non-empty comma segment of a "City, Region, Country" string.
    Heuristic only; no locale validation.
    """
    parts = [p.strip() for p in normalize(location).split(",")]
    parts = [p for p in parts if p]
    return parts[-1] if parts else ""


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix and fixed microsecond precision,
    so that plain string comparison orders timestamps chronologically.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def getenv_str(name: str, default: str | None = None) -> str | None:
    """
    Typed wrapper for environment access. Empty strings count as unset.
    """
    val = os.getenv(name)
    return val if val not in (None, "") else default


def first_env(*names: str) -> str | None:
    """Return the first non-empty environment value among `names`."""
    for name in names:
        val = getenv_str(name)
        if val is not None:
            return val
    return None
