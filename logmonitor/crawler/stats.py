"""Thread-safe crawl statistics aggregation."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
import threading
from typing import Any, Mapping

from .frontier import EnqueueResult, EnqueueStatus
from .types import CrawlStats, FetchResult, VisitOutcome


class StatsCollector:
    """Collect and summarize monitor runtime statistics.

    The collector is thread-safe and shared by the dispatcher, its workers,
    and the notification thread.
    """

    def __init__(self, base: CrawlStats | None = None) -> None:
        self._lock = threading.Lock()
        self._core = base or CrawlStats()

        self._enqueue_status_counts: dict[str, int] = defaultdict(int)
        self._frontier_snapshot: dict[str, int | bool] = {}

        self._fetch_status_code_counts: dict[str, int] = defaultdict(int)
        self._fetch_error_type_counts: dict[str, int] = defaultdict(int)
        self._fetch_elapsed_ms_total = 0
        self._fetch_bytes_total = 0

        self._failure_stage_counts: dict[str, int] = defaultdict(int)

    def record_enqueue_many(self, results: list[EnqueueResult] | tuple[EnqueueResult, ...]) -> None:
        """Count enqueue statuses; accepted pushes are newly discovered links."""

        with self._lock:
            for result in results:
                self._enqueue_status_counts[result.status.value] += 1
                if result.status == EnqueueStatus.ENQUEUED:
                    self._core.links_discovered += 1

    def record_frontier_snapshot(self, snapshot: Mapping[str, int | bool]) -> None:
        """Store latest frontier counters snapshot."""

        with self._lock:
            self._frontier_snapshot = dict(snapshot)

    def record_fetch(self, result: FetchResult) -> None:
        """Update fetch counters, status/error breakdowns, timing and bytes."""

        with self._lock:
            if result.ok:
                self._core.fetched_ok += 1
            else:
                self._core.fetched_error += 1

            if result.status_code is not None:
                self._fetch_status_code_counts[str(result.status_code)] += 1
            if result.error:
                err_type = result.error.split(":", maxsplit=1)[0].strip() or "Unknown"
                self._fetch_error_type_counts[err_type] += 1
            if result.elapsed_ms is not None:
                self._fetch_elapsed_ms_total += int(result.elapsed_ms)
            if result.content_length is not None:
                self._fetch_bytes_total += int(result.content_length)

    def record_page(self) -> None:
        """Count one listing page whose links were extracted."""

        with self._lock:
            self._core.pages_crawled += 1

    def record_log(self, outcome: VisitOutcome, *, had_error: bool = False) -> None:
        """Count one terminal log by its visit outcome."""

        with self._lock:
            self._core.logs_seen += 1
            if outcome == VisitOutcome.RECORDED:
                self._core.logs_recorded += 1
                if had_error:
                    self._core.logs_erroring += 1
            elif outcome == VisitOutcome.ALREADY_VISITED:
                self._core.logs_skipped_visited += 1
            elif outcome == VisitOutcome.DUPLICATE:
                self._core.logs_duplicate += 1

    def record_failure(self, stage: str) -> None:
        """Count one per-URL failure under its crawl stage."""

        with self._lock:
            self._core.task_errors += 1
            self._failure_stage_counts[stage] += 1

    def record_notification(self, ok: bool) -> None:
        """Count one delivered or failed announcement."""

        with self._lock:
            if ok:
                self._core.notifications_sent += 1
            else:
                self._core.notifications_failed += 1

    def record_recrawl(self) -> None:
        """Count one re-crawl timer firing."""

        with self._lock:
            self._core.recrawls += 1

    def record_sync_event(self) -> None:
        """Count one event received from the Matrix sync loop."""

        with self._lock:
            self._core.sync_events += 1

    def finish(self) -> None:
        """Mark the run as finished (sets `finished_at`)."""

        with self._lock:
            self._core.finish()

    def core(self) -> CrawlStats:
        """Return a copy of the core `CrawlStats` record."""

        with self._lock:
            return CrawlStats(**{
                name: getattr(self._core, name) for name in CrawlStats.__dataclass_fields__
            })

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary payload."""

        with self._lock:
            core = self._core.to_json()

            start = _parse_iso_utc(self._core.started_at)
            end = (
                _parse_iso_utc(self._core.finished_at)
                if self._core.finished_at
                else datetime.now(timezone.utc)
            )
            duration_seconds = max(0.0, (end - start).total_seconds())
            fetched_total = self._core.fetched_ok + self._core.fetched_error

            return {
                **core,
                "duration_seconds": duration_seconds,
                "frontier": {
                    "enqueue_status_counts": dict(self._enqueue_status_counts),
                    "snapshot": dict(self._frontier_snapshot),
                },
                "fetch": {
                    "status_code_counts": dict(self._fetch_status_code_counts),
                    "error_type_counts": dict(self._fetch_error_type_counts),
                    "elapsed_ms_total": self._fetch_elapsed_ms_total,
                    "elapsed_ms_avg": (
                        self._fetch_elapsed_ms_total / fetched_total if fetched_total else 0.0
                    ),
                    "bytes_total": self._fetch_bytes_total,
                },
                "failures": {
                    "by_stage": dict(self._failure_stage_counts),
                },
            }


def _parse_iso_utc(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["StatsCollector"]
