from __future__ import annotations

import copy
import logging
from typing import Any

# Prefer the service JSONL writer; default to stdlib logging when it is unavailable.
_logging_backend = None
try:
    from service import logging_utils as _svc_logging  # type: ignore

    _logging_backend = _svc_logging
except ImportError:
    _logging_backend = None

# Keys that should be redacted from structured logs
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "ingest_key",
    "ingest_bearer",
    "x-ingest-key",
    "authorization",
    "auth",
    "bearer",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact secret-like fields at top level.
    Nested structures are scrubbed again by the service writer.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret") or lk.endswith("_key"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the service log writer if available.
    Falls back to stdlib logging as structured info.
    """
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_activity_log(payload)
            return
        except OSError:
            logging.getLogger("careers_sync.activity").debug("activity log write failed", exc_info=True)
    logging.getLogger("careers_sync.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the service log writer if available.
    Falls back to stdlib logging as structured error.
    """
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_error_log(payload)
            return
        except OSError:
            logging.getLogger("careers_sync.error").debug("error log write failed", exc_info=True)
    logging.getLogger("careers_sync.error").error(payload)
