# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven, read per call so tests can redirect) --------

_DEFAULT_LOG_DIR = "/app/local/logs"

# Substrings (case-insensitive) of keys whose values are scrubbed
_DEFAULT_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "ingest_key",
    "ingest_bearer",
    "x-ingest-key",
    "authorization",
    "cookie",
}

_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record (JSON-safe) to today's activity file.
    Never mutates the passed-in dict. May raise on unrecoverable I/O errors.
    """
    _write_jsonl(_log_path_for_today(_prefix("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Same as write_activity_log, for the parallel error log."""
    _write_jsonl(_log_path_for_today(_prefix("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    """Return the current day's activity log path (<prefix>-YYYY-MM-DD.jsonl)."""
    return _log_path_for_today(_prefix("ACTIVITY_LOG_PREFIX", "activity"))


def get_error_log_path() -> str:
    return _log_path_for_today(_prefix("ERROR_LOG_PREFIX", "error"))


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """
    Redacted deep copy of `record`: values under keys containing any of `keys`
    (case-insensitive substrings) are replaced. Does not mutate input.
    """
    return _redact_deep(record, keys or _DEFAULT_REDACT_KEYS)


# ---- Internal helpers --------------------------------------------------------


def _prefix(env_name: str, default: str) -> str:
    return os.getenv(env_name) or default


def _log_path_for_today(prefix: str) -> str:
    today = _dt.date.today().isoformat()
    return os.path.join(os.getenv("LOG_DIR") or _DEFAULT_LOG_DIR, f"{prefix}-{today}.jsonl")


def _ensure_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def _rotate_file_if_needed(path: str) -> None:
    """
    Size-based rotation (ACTIVITY_LOG_MAX_BYTES > 0). Date rotation is inherent
    in the file name.
    """
    max_bytes = int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0") or 0)
    if max_bytes <= 0:
        return
    try:
        if os.path.getsize(path) < max_bytes:
            return
    except FileNotFoundError:
        return
    ts = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{ts}")


def _safe_bearer_scrub(value: str) -> str:
    """Keep the scheme of "Bearer <token>" strings, scrub the token."""
    if "bearer " in value.lower():
        scheme = value.split(" ", 1)[0]
        return f"{scheme} ***REDACTED***"
    return value


def _key_matches(name: str, patterns: Iterable[str]) -> bool:
    n = name.lower()
    return any(pat in n for pat in patterns)


def _redact_deep(value: Any, patterns: Iterable[str]) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and _key_matches(k, patterns):
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact_deep(v, patterns)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    if isinstance(value, str):
        return _safe_bearer_scrub(value)
    return value


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    """
    Redact, stamp ts/host/pid, rotate by size if configured, then append one
    line with O_APPEND (atomic on POSIX). Retries once on OSError.
    """
    payload = _redact_deep(record, _DEFAULT_REDACT_KEYS)
    payload.setdefault("ts", _dt.datetime.now(_dt.timezone.utc).isoformat())
    payload["_meta"] = {"host": _HOSTNAME, "pid": _PID}

    # Serialize before touching the file so a bad record never leaves a partial line.
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")
    flags = os.O_CREAT | os.O_APPEND | os.O_WRONLY

    def _append_once() -> None:
        fd = os.open(path, flags, 0o644)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)

    _ensure_dir(path)
    _rotate_file_if_needed(path)
    try:
        _append_once()
    except OSError:
        _ensure_dir(path)
        _append_once()
