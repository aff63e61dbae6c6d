import json
import logging
from unittest import mock

import pytest

from modules.careers_sync.lib import reconcile
from modules.careers_sync.lib.db import count_rows
from modules.careers_sync.lib.models import CrawlSnapshot, JobRecord

T0 = "2025-01-01T00:00:00.000000Z"
T1 = "2025-01-02T06:00:00.000000Z"
T2 = "2025-01-03T06:00:00.000000Z"


def _snap(ts, *links, source="https://careers.example.com"):
    jobs = tuple(JobRecord(title=f"Job {k}", link=f"https://x/job/{k}", location="Cork, Ireland") for k in links)
    return CrawlSnapshot(scraped_at=ts, source=source, jobs=jobs)


def _rows_by_url(store):
    return {r["url"].rsplit("/", 1)[-1]: r for r in store.fetch_all()}


# ----------------------------------------------------------------------
# Store reconciliation
# ----------------------------------------------------------------------
def test_first_run_inserts_all_active(store):
    result = reconcile.reconcile_store(_snap(T1, "A", "B"), store)

    rows = _rows_by_url(store)
    assert result.upserted == 2 and result.deactivated == 0 and result.chunks == 1
    assert {k: (r["is_active"], r["updated_at"]) for k, r in rows.items()} == {
        "A": (True, T1),
        "B": (True, T1),
    }
    assert rows["A"]["first_seen_at"] == T1


def test_second_run_deactivates_missing_jobs(store):
    reconcile.reconcile_store(_snap(T1, "A", "B"), store)
    result = reconcile.reconcile_store(_snap(T2, "B", "C"), store)

    rows = _rows_by_url(store)
    assert result.deactivated == 1
    assert rows["A"]["is_active"] is False
    assert rows["A"]["updated_at"] == T1
    assert rows["B"]["is_active"] is True and rows["B"]["updated_at"] == T2
    assert rows["C"]["is_active"] is True and rows["C"]["updated_at"] == T2
    # first sighting is kept across updates
    assert rows["B"]["first_seen_at"] == T1


def test_reappearing_job_is_reactivated(store):
    reconcile.reconcile_store(_snap(T0, "A"), store)
    reconcile.reconcile_store(_snap(T1, "B"), store)
    reconcile.reconcile_store(_snap(T2, "A", "B"), store)

    assert count_rows(store.sqlite_path, active=True) == 2
    assert count_rows(store.sqlite_path, active=False) == 0


def test_rows_newer_than_watermark_are_untouched(store):
    # A newer run (T2) already wrote C; an older run (T1) finishing late must not deactivate it.
    reconcile.reconcile_store(_snap(T2, "C"), store)
    reconcile.reconcile_store(_snap(T1, "A"), store)

    rows = _rows_by_url(store)
    assert rows["C"]["is_active"] is True and rows["C"]["updated_at"] == T2
    assert rows["A"]["is_active"] is True


def test_upserts_are_chunked(store):
    snap = _snap(T1, *[str(i) for i in range(7)])
    spy = mock.Mock(wraps=store)

    result = reconcile.reconcile_store(snap, spy, chunk_size=3)

    assert result.chunks == 3
    assert [len(c.args[0]) for c in spy.upsert.call_args_list] == [3, 3, 1]
    assert count_rows(store.sqlite_path) == 7


def test_chunk_failure_is_fatal_and_skips_deactivation():
    class FlakyStore:
        def __init__(self):
            self.upserts = 0
            self.update_calls = 0

        def upsert(self, rows, conflict_key="url"):
            self.upserts += 1
            if self.upserts == 2:
                raise RuntimeError("payload too large")
            return len(rows)

        def update_where(self, conditions, patch):
            self.update_calls += 1
            return 0

    flaky = FlakyStore()
    with pytest.raises(reconcile.ReconcileError, match="chunk 1"):
        reconcile.reconcile_store(_snap(T1, "A", "B", "C"), flaky, chunk_size=2)
    assert flaky.update_calls == 0


def test_deactivation_predicate_and_order():
    calls = []

    class RecordingStore:
        def upsert(self, rows, conflict_key="url"):
            calls.append(("upsert", conflict_key, [r["url"] for r in rows]))
            return len(rows)

        def update_where(self, conditions, patch):
            calls.append(("update_where", list(conditions), dict(patch)))
            return 0

    reconcile.reconcile_store(_snap(T1, "A", "B", "C"), RecordingStore(), chunk_size=2)

    assert [c[0] for c in calls] == ["upsert", "upsert", "update_where"]
    assert calls[0][1] == "url"
    assert calls[-1][1] == [("is_active", "eq", True), ("updated_at", "lt", T1)]
    assert calls[-1][2] == {"is_active": False}


def test_empty_snapshot_deactivates_everything_older(store, caplog):
    reconcile.reconcile_store(_snap(T1, "A", "B"), store)
    with caplog.at_level(logging.WARNING, logger="modules.careers_sync.lib.reconcile"):
        result = reconcile.reconcile_store(_snap(T2), store)

    assert "Empty snapshot" in caplog.text
    assert result.upserted == 0 and result.chunks == 0
    assert count_rows(store.sqlite_path, active=False) == 2


# ----------------------------------------------------------------------
# Ingestion sink
# ----------------------------------------------------------------------
def _response(status=200, body=b'{"ok": true}'):
    resp = mock.Mock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.content = body
    resp.text = body.decode()
    resp.json.return_value = json.loads(body) if body else {}
    return resp


def test_ingest_posts_payload_with_credentials(make_settings):
    settings = make_settings(
        sink="ingest",
        ingest_url="https://ingest.example.com/api/ingest-jobs",
        ingest_key="k-123",
        ingest_bearer="anon-jwt",
        tenant_id="ardagh",
    )
    client = mock.Mock()
    client.post_json.return_value = _response()
    client.json_or_empty.return_value = {"ok": True}

    body = reconcile.deliver_ingest(_snap(T1, "A", "B"), settings, client)

    assert body == {"ok": True}
    (url, payload), kwargs = client.post_json.call_args
    assert url == "https://ingest.example.com/api/ingest-jobs"
    assert payload["count"] == 2 and payload["scraped_at"] == T1
    assert payload["source"] == "https://careers.example.com"
    assert kwargs["headers"] == {
        "x-ingest-key": "k-123",
        "x-tenant-id": "ardagh",
        "Authorization": "Bearer anon-jwt",
        "apikey": "anon-jwt",
    }


def test_ingest_without_bearer_sends_only_shared_secret(make_settings):
    settings = make_settings(sink="ingest", ingest_url="https://i.example.com", ingest_key="k")
    assert reconcile.ingest_headers(settings) == {"x-ingest-key": "k", "x-tenant-id": "default"}


def test_ingest_non_success_is_fatal(make_settings):
    settings = make_settings(sink="ingest", ingest_url="https://i.example.com", ingest_key="k")
    client = mock.Mock()
    client.post_json.return_value = _response(401, b'{"error": "bad key"}')

    with pytest.raises(reconcile.SinkError, match="HTTP 401"):
        reconcile.deliver_ingest(_snap(T1, "A"), settings, client)


def test_ingest_transport_error_is_fatal(make_settings):
    settings = make_settings(sink="ingest", ingest_url="https://i.example.com", ingest_key="k")
    client = mock.Mock()
    client.post_json.side_effect = ConnectionError("refused")

    with pytest.raises(reconcile.SinkError, match="refused"):
        reconcile.deliver_ingest(_snap(T1, "A"), settings, client)


# ----------------------------------------------------------------------
# Local artifact
# ----------------------------------------------------------------------
def test_artifact_is_written_and_overwritten(tmp_path):
    path = tmp_path / "public" / "jobs.json"

    reconcile.write_artifact(_snap(T1, "A", "B"), str(path))
    reconcile.write_artifact(_snap(T2, "C"), str(path))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["scraped_at"] == T2
    assert data["count"] == 1
    assert data["jobs"][0]["href"] == "https://x/job/C"

    replay = reconcile.load_artifact(str(path))
    assert replay.scraped_at == T2
    assert [j.link for j in replay.jobs] == ["https://x/job/C"]


def test_non_empty_snapshot_does_not_warn(store, caplog):
    with caplog.at_level(logging.WARNING, logger="modules.careers_sync.lib.reconcile"):
        reconcile.reconcile_store(_snap(T1, "A"), store)
    assert "Empty snapshot" not in caplog.text
