"""Crawl dispatcher: frontier routing, re-crawl timer, and terminal log handling."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any

from .classifier import LogClassifier
from .config import MonitorConfig
from .errors import DuplicateVisitError, InvalidLogURLError, MonitorError, StoreError
from .failures import FailureLog
from .fetcher import Fetcher
from .frontier import EnqueueResult, Frontier
from .notifier import (
    DEFAULT_LOG_RECIPIENT,
    Announcement,
    MatrixNotifier,
    NotificationQueue,
    Notifier,
    build_notifier,
)
from .stats import StatsCollector
from .store import VisitStore
from .types import CrawlStage, ErrorRecord, FrontierItem, LogRef, VisitOutcome
from .url import compile_log_pattern, is_log_url, iter_links, parse_log_url


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.5


class CrawlDispatcher:
    """Owns the frontier, the worker pool, and the re-crawl timer.

    Every frontier URL is routed one of two ways:
    - a page: fetch it and push each extracted link back to the frontier;
    - a terminal log (`.../<package>/<date>.log`): resolve the package, skip
      it if (package, date) is already visited, otherwise fetch, classify,
      record, and announce it when erroring.

    Workers never die on a task failure. Each failure becomes an
    `ErrorRecord` in the failure log and the crawl moves on.
    """

    def __init__(
        self,
        config: MonitorConfig,
        *,
        store: VisitStore | None = None,
        fetcher: Fetcher | Any | None = None,
        notifier: Notifier | None = None,
        recipient: str | None = None,
        stats: StatsCollector | None = None,
        failures: FailureLog | None = None,
        frontier: Frontier | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self.config = config

        self.store = store or VisitStore(config.db)
        self.fetcher = fetcher or Fetcher(config)
        self._owns_notifier = notifier is None
        if notifier is None:
            notifier, default_recipient = build_notifier(config)
        else:
            default_recipient = config.matrix.room or DEFAULT_LOG_RECIPIENT
        self.notifier = notifier
        self.recipient = recipient or default_recipient

        self.stats = stats or StatsCollector()
        self.failures = failures or FailureLog(config.errors_path)
        self.frontier = frontier or Frontier(config)
        self.classifier = LogClassifier(config.error_signature)
        self.notifications = NotificationQueue(notifier, on_result=self._on_notification_result)

        self.poll_interval_seconds = poll_interval_seconds
        self._log_pattern = compile_log_pattern(config.log_pattern)

        self._owns_store = store is None
        self._owns_fetcher = fetcher is None

        self._workers: list[threading.Thread] = []
        self._workers_lock = threading.Lock()
        self._stop = threading.Event()
        self._wakeup = threading.Event()
        self._sync_events: queue.Queue[Any] = queue.Queue()

    # Lifecycle

    def start(self) -> None:
        """Start workers, the notification thread and Matrix sync (idempotent)."""

        with self._workers_lock:
            if self._workers:
                return
            self._workers = [
                threading.Thread(
                    target=self._worker_loop,
                    name=f"crawler-worker-{idx}",
                    daemon=True,
                )
                for idx in range(self.config.concurrency)
            ]
            for worker in self._workers:
                worker.start()
        self.notifications.start()
        if self.config.matrix.enabled and isinstance(self.notifier, MatrixNotifier):
            self.notifier.start_sync(self.signal_sync)

    def seed(self) -> EnqueueResult:
        """Begin a new crawl cycle from the root listing URL."""

        result = self.frontier.seed(self.config.url)
        self.stats.record_enqueue_many([result])
        logger.info("seeded crawl generation %d with %s", self.frontier.generation, self.config.url)
        return result

    def crawl_once(self) -> dict[str, Any]:
        """Run one full cycle and wait until it and its announcements finish."""

        self.start()
        self.seed()
        self.frontier.join()
        self.notifications.join()
        self._drain_sync_events()
        return self.summary()

    def run(self) -> dict[str, Any]:
        """Crawl until `stop()`, re-seeding the root every `config.delay` seconds."""

        self.start()
        self.seed()
        next_recrawl = time.monotonic() + self.config.delay

        while not self._stop.is_set():
            remaining = next_recrawl - time.monotonic()
            if remaining <= 0:
                logger.info(">>> re-crawl timer fired")
                self.stats.record_recrawl()
                self.seed()
                next_recrawl = time.monotonic() + self.config.delay
                continue

            self._wakeup.wait(timeout=remaining)
            self._wakeup.clear()
            self._drain_sync_events()

        return self.summary()

    def signal_sync(self, payload: Any = None) -> None:
        """Accept an event from the Matrix sync loop and wake the coordinating loop."""

        self._sync_events.put(payload)
        self._wakeup.set()

    def stop(self) -> None:
        self._stop.set()
        self._wakeup.set()

    def close(self, timeout: float = 5.0) -> None:
        """Stop workers and release owned resources."""

        self.stop()
        self.frontier.close()
        with self._workers_lock:
            workers, self._workers = self._workers, []
        for worker in workers:
            worker.join(timeout=timeout)

        self.notifications.close(timeout=timeout)
        if isinstance(self.notifier, MatrixNotifier):
            self.notifier.stop_sync(timeout=timeout)
        self.stats.finish()

        if self._owns_fetcher:
            self.fetcher.close()
        if self._owns_notifier and isinstance(self.notifier, MatrixNotifier):
            self.notifier.close()
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> "CrawlDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def summary(self) -> dict[str, Any]:
        self.stats.record_frontier_snapshot(self.frontier.snapshot())
        return {
            "url": self.config.url,
            "stats": self.stats.to_json(),
            "store": self.store.counts(),
            "failures": len(self.failures),
        }

    # Routing

    def is_log_url(self, url: str) -> bool:
        return is_log_url(url, self._log_pattern)

    def process(self, item: FrontierItem) -> None:
        """Route one frontier item to the page or the terminal log path."""

        if self.frontier.is_stale(item):
            logger.debug("dropping stale item from generation %d: %s", item.generation, item.url)
            return

        if self.is_log_url(item.url):
            logger.debug("found log link: %s", item.url)
            self.handle_log(item)
        else:
            logger.debug("scraping link: %s", item.url)
            self.crawl_page(item)

    def crawl_page(self, item: FrontierItem) -> int:
        """Fetch a listing page and enqueue its links; returns how many were new."""

        result = self.fetcher.fetch(item.url)
        self.stats.record_fetch(result)
        if not result.ok:
            self._record_failure(
                ErrorRecord(
                    stage=CrawlStage.FETCH,
                    url=item.url,
                    message=result.error_message,
                    error_type=_error_type(result.error),
                    referrer=item.referrer,
                    status_code=result.status_code,
                    generation=item.generation,
                )
            )
            return 0

        self.stats.record_page()
        base_url = result.final_url or item.url
        enqueue_results = self.frontier.push_many(
            iter_links(result.body or b"", base_url),
            generation=item.generation,
            referrer=item.url,
        )
        self.stats.record_enqueue_many(enqueue_results)
        return sum(1 for enqueue_result in enqueue_results if enqueue_result.accepted)

    def handle_log(self, item: FrontierItem) -> VisitOutcome:
        """Classify and record one terminal log unless it was already visited."""

        try:
            ref = parse_log_url(item.url)
            package_id = self.store.resolve_package(ref.package)
            if self.store.is_visited(package_id, ref.date):
                logger.debug("skipping %s/%s: already visited", ref.package, ref.date)
                self.stats.record_log(VisitOutcome.ALREADY_VISITED)
                return VisitOutcome.ALREADY_VISITED
        except InvalidLogURLError as exc:
            return self._log_failed(item, CrawlStage.EXTRACT, exc)
        except StoreError as exc:
            return self._log_failed(item, CrawlStage.STORE, exc)

        result = self.fetcher.fetch(item.url)
        self.stats.record_fetch(result)
        try:
            body = result.raise_for_error()
        except MonitorError as exc:
            return self._log_failed(item, CrawlStage.FETCH, exc)

        had_error = self.classifier(body)

        try:
            self.store.record_visit(package_id, ref.date, had_error)
        except DuplicateVisitError:
            logger.info("%s/%s recorded concurrently, skipping", ref.package, ref.date)
            self.stats.record_log(VisitOutcome.DUPLICATE)
            return VisitOutcome.DUPLICATE
        except StoreError as exc:
            return self._log_failed(item, CrawlStage.STORE, exc)

        self.stats.record_log(VisitOutcome.RECORDED, had_error=had_error)
        if had_error:
            logger.info("error found for link %s", item.url)
            self._announce(ref, package_id, item)
        else:
            logger.info("no error for link %s", item.url)
        return VisitOutcome.RECORDED

    # Internals

    def _worker_loop(self) -> None:
        while not self._stop.is_set():
            item = self.frontier.pop(block=True, timeout=self.poll_interval_seconds)
            if item is None:
                continue

            try:
                self.process(item)
            except Exception as exc:
                logger.exception("unexpected failure while processing %s", item.url)
                self._record_failure(
                    ErrorRecord.from_exception(
                        stage=CrawlStage.FRONTIER,
                        url=item.url,
                        exc=exc,
                        referrer=item.referrer,
                        generation=item.generation,
                    )
                )
            finally:
                self.frontier.task_done()

    def _announce(self, ref: LogRef, package_id: int, item: FrontierItem) -> None:
        message = f"logfile contains an error: {ref.url}"
        try:
            subscribers = self.store.subscribers_for(package_id)
        except StoreError as exc:
            self._record_failure(
                ErrorRecord.from_exception(
                    stage=CrawlStage.NOTIFY,
                    url=item.url,
                    exc=exc,
                    generation=item.generation,
                )
            )
            subscribers = []

        if subscribers:
            message = f"{message} (subscribers: {', '.join(subscribers)})"

        self.notifications.submit(Announcement(recipient=self.recipient, message=message, url=ref.url))

    def _on_notification_result(self, announcement: Announcement, error: Exception | None) -> None:
        self.stats.record_notification(error is None)
        if error is not None:
            self._record_failure(
                ErrorRecord.from_exception(
                    stage=CrawlStage.NOTIFY,
                    url=announcement.url or announcement.recipient,
                    exc=error,
                )
            )

    def _drain_sync_events(self) -> None:
        while True:
            try:
                payload = self._sync_events.get_nowait()
            except queue.Empty:
                return
            self.stats.record_sync_event()
            logger.debug("sync event received: %r", payload)

    def _log_failed(self, item: FrontierItem, stage: CrawlStage, exc: Exception) -> VisitOutcome:
        self._record_failure(
            ErrorRecord.from_exception(
                stage=stage,
                url=item.url,
                exc=exc,
                referrer=item.referrer,
                generation=item.generation,
            )
        )
        self.stats.record_log(VisitOutcome.FAILED)
        return VisitOutcome.FAILED

    def _record_failure(self, error: ErrorRecord) -> None:
        self.failures.record(error)
        self.stats.record_failure(error.stage.value)


def _error_type(message: str | None) -> str | None:
    if message and ":" in message:
        return message.split(":", maxsplit=1)[0].strip()
    return None


__all__ = ["CrawlDispatcher", "DEFAULT_POLL_INTERVAL_SECONDS"]
