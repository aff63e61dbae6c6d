# careers_sync/http_client.py
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """Shared HTTP client for sink delivery: retries on 429/5xx, JSON helpers."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "CareersSync/0.1 (+https://example.invalid)",
        retries: int = 3,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        # The ingest payload is a full snapshot, so re-POSTing it is safe.
        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "POST", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=2, pool_maxsize=4)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def post_json(
        self,
        url: str,
        payload: Any,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> requests.Response:
        """POST `payload` as JSON and return the raw response (no status check)."""
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        return self.session.post(url, data=body, headers=merged, timeout=timeout or self.timeout)

    @staticmethod
    def json_or_empty(resp: requests.Response) -> Any:
        """Decode a JSON body if there is one; {} otherwise."""
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            preview = resp.text[:200].replace("\n", " ")
            LOG.debug("Non-JSON response body from %s: %r", resp.url, preview)
            return {}

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
