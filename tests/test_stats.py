from __future__ import annotations

import json

import pytest

from logmonitor.crawler import (
    CrawlStage,
    EnqueueResult,
    EnqueueStatus,
    ErrorRecord,
    FailureLog,
    FetchResult,
    StatsCollector,
    TransportError,
    VisitOutcome,
)


def test_stats_collector_counts_outcomes():
    stats = StatsCollector()

    stats.record_enqueue_many(
        [
            EnqueueResult(EnqueueStatus.ENQUEUED, normalized_url="https://example.org/a/"),
            EnqueueResult(EnqueueStatus.SKIPPED_SEEN, normalized_url="https://example.org/a/"),
        ]
    )
    stats.record_fetch(
        FetchResult(
            requested_url="https://example.org/a/",
            final_url="https://example.org/a/",
            status_code=200,
            content_type="text/html",
            body=b"abc",
            elapsed_ms=12,
        )
    )
    stats.record_fetch(
        FetchResult(
            requested_url="https://example.org/b/",
            final_url=None,
            status_code=None,
            content_type=None,
            body=None,
            error="ConnectionError: refused",
        )
    )
    stats.record_log(VisitOutcome.RECORDED, had_error=True)
    stats.record_log(VisitOutcome.ALREADY_VISITED)
    stats.record_log(VisitOutcome.DUPLICATE)
    stats.record_failure("fetch")
    stats.record_notification(True)
    stats.record_notification(False)
    stats.finish()

    payload = stats.to_json()

    assert payload["links_discovered"] == 1
    assert payload["fetched_ok"] == 1
    assert payload["fetched_error"] == 1
    assert payload["logs_seen"] == 3
    assert payload["logs_recorded"] == 1
    assert payload["logs_erroring"] == 1
    assert payload["logs_skipped_visited"] == 1
    assert payload["logs_duplicate"] == 1
    assert payload["notifications_sent"] == 1
    assert payload["notifications_failed"] == 1
    assert payload["frontier"]["enqueue_status_counts"] == {"enqueued": 1, "skipped_seen": 1}
    assert payload["fetch"]["error_type_counts"] == {"ConnectionError": 1}
    assert payload["fetch"]["bytes_total"] == 3
    assert payload["failures"]["by_stage"] == {"fetch": 1}
    assert payload["duration_seconds"] >= 0
    json.dumps(payload)


def test_failure_log_appends_jsonl(tmp_path):
    path = tmp_path / "nested" / "errors.jsonl"
    failures = FailureLog(path, max_recent=1)

    failures.record(
        ErrorRecord.from_exception(
            stage=CrawlStage.FETCH,
            url="https://example.org/a/",
            exc=TransportError("https://example.org/a/", "HTTP status 500", status_code=500),
        )
    )
    failures.record(ErrorRecord(stage=CrawlStage.STORE, url="https://example.org/b.log", message="locked"))

    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [row["stage"] for row in rows] == ["fetch", "store"]
    assert rows[0]["status_code"] == 500
    assert rows[0]["error_type"] == "TransportError"
    assert len(failures) == 1
    assert failures.recent()[0].stage == CrawlStage.STORE


def test_raise_for_error_needs_a_body_even_on_success():
    result = FetchResult(
        requested_url="https://example.org/a.log",
        final_url="https://example.org/a.log",
        status_code=204,
        content_type=None,
        body=None,
    )

    with pytest.raises(TransportError):
        result.raise_for_error()
    result.body = b""
    assert result.raise_for_error() == b""
