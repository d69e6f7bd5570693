"""Thread-safe frontier queue with scope checks and per-generation deduplication."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .config import MonitorConfig
from .types import FrontierItem
from .url import normalize_url


class EnqueueStatus(str, Enum):
    """Result status for frontier enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_INVALID_URL = "skipped_invalid_url"
    SKIPPED_OUT_OF_SCOPE = "skipped_out_of_scope"
    SKIPPED_SEEN = "skipped_seen"
    SKIPPED_STALE = "skipped_stale"
    SKIPPED_CLOSED = "skipped_closed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    normalized_url: str | None = None
    item: FrontierItem | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


class Frontier:
    """Unbounded queue shared by the dispatcher and its workers.

    - URLs outside the root listing (`config.is_url_allowed`) are rejected.
    - Every `seed` starts a new generation (one crawl cycle).
    - A URL is enqueued at most once per generation.
    - Pushes tagged with an older generation are rejected as stale, so page
      tasks still running from a previous cycle stop expanding their subtree
      once a newer cycle has begun.
    """

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self.config = config
        self._queue: queue.Queue[FrontierItem] = queue.Queue()
        self._lock = threading.Lock()

        self._generation = 0
        self._seen_urls: set[str] = set()

        self._enqueued_count = 0
        self._dequeued_count = 0
        self._skipped_seen_count = 0
        self._skipped_stale_count = 0
        self._skipped_invalid_count = 0
        self._skipped_out_of_scope_count = 0

        self._closed = False

    @property
    def generation(self) -> int:
        """Current crawl generation (0 before the first seed)."""

        with self._lock:
            return self._generation

    def is_stale(self, item: FrontierItem) -> bool:
        """True when `item` belongs to a generation older than the current one."""

        with self._lock:
            return item.generation < self._generation

    def seed(self, url: str) -> EnqueueResult:
        """Start a new generation and enqueue its root URL."""

        with self._lock:
            self._generation += 1
            self._seen_urls.clear()
            generation = self._generation
        return self.push(url, generation=generation)

    def push(
        self,
        url: str,
        *,
        generation: int,
        referrer: str | None = None,
    ) -> EnqueueResult:
        """Attempt to enqueue one URL discovered during `generation`."""

        normalized = normalize_url(url)
        if not normalized:
            with self._lock:
                self._skipped_invalid_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_URL)

        if self.config is not None and not self.config.is_url_allowed(normalized):
            with self._lock:
                self._skipped_out_of_scope_count += 1
            return EnqueueResult(EnqueueStatus.SKIPPED_OUT_OF_SCOPE, normalized_url=normalized)

        with self._lock:
            if self._closed:
                return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED, normalized_url=normalized)

            if generation < self._generation:
                self._skipped_stale_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_STALE, normalized_url=normalized)

            if normalized in self._seen_urls:
                self._skipped_seen_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_SEEN, normalized_url=normalized)

            self._seen_urls.add(normalized)
            item = FrontierItem(url=normalized, generation=generation, referrer=referrer)
            self._queue.put(item)
            self._enqueued_count += 1

        return EnqueueResult(EnqueueStatus.ENQUEUED, normalized_url=normalized, item=item)

    def push_many(
        self,
        urls: Iterable[str],
        *,
        generation: int,
        referrer: str | None = None,
    ) -> list[EnqueueResult]:
        """Enqueue URLs one at a time as the iterable produces them."""

        return [self.push(url, generation=generation, referrer=referrer) for url in urls]

    def pop(self, *, block: bool = True, timeout: float | None = None) -> FrontierItem | None:
        """Pop one item; `None` when nothing arrived under the blocking mode."""

        try:
            if block:
                item = self._queue.get(block=True, timeout=timeout)
            else:
                item = self._queue.get(block=False)
        except queue.Empty:
            return None

        with self._lock:
            self._dequeued_count += 1
        return item

    def task_done(self) -> None:
        """Mark one popped task as finished (delegates to Queue.task_done)."""

        self._queue.task_done()

    def join(self) -> None:
        """Block until every queued item has been marked done."""

        self._queue.join()

    def close(self) -> None:
        """Close frontier to future enqueue attempts."""

        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        """Whether the frontier refuses new pushes."""

        with self._lock:
            return self._closed

    def qsize(self) -> int:
        """Approximate number of queued items."""

        return self._queue.qsize()

    def empty(self) -> bool:
        """Whether the queue currently has no items."""

        return self._queue.empty()

    def snapshot(self) -> dict[str, int | bool]:
        """Return frontier counters for logs/stats reporting."""

        with self._lock:
            return {
                "closed": self._closed,
                "generation": self._generation,
                "queue_size": self._queue.qsize(),
                "seen_urls": len(self._seen_urls),
                "enqueued": self._enqueued_count,
                "dequeued": self._dequeued_count,
                "skipped_seen": self._skipped_seen_count,
                "skipped_stale": self._skipped_stale_count,
                "skipped_invalid": self._skipped_invalid_count,
                "skipped_out_of_scope": self._skipped_out_of_scope_count,
            }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
]
