"""Core type definitions for the log monitor.

This module is intentionally dependency-light so other crawler modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import TransportError


class CrawlStage(str, Enum):
    """Pipeline stage names for error reporting."""

    FRONTIER = "frontier"
    FETCH = "fetch"
    EXTRACT = "extract"
    STORE = "store"
    NOTIFY = "notify"


class VisitOutcome(str, Enum):
    """What happened to one terminal log URL."""

    RECORDED = "recorded"
    ALREADY_VISITED = "already_visited"
    DUPLICATE = "duplicate"
    FAILED = "failed"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now_iso() -> str:
    """Return an RFC3339-like UTC timestamp string for failure records."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True, slots=True)
class FrontierItem:
    """A discovered URL waiting to be routed by the dispatcher."""

    url: str
    generation: int
    referrer: str | None = None
    discovered_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True, slots=True)
class LogRef:
    """Package name and observation date encoded in a log URL."""

    package: str
    date: str
    url: str


@dataclass(slots=True)
class FetchResult:
    """Result of attempting to download one URL."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: bytes | None
    fetched_at: str = field(default_factory=utc_now_iso)
    elapsed_ms: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and self.body is not None
        )

    @property
    def content_length(self) -> int | None:
        return None if self.body is None else len(self.body)

    @property
    def error_message(self) -> str:
        if self.error:
            return self.error
        if self.status_code is not None:
            return f"HTTP status {self.status_code}"
        return "Unknown fetch failure"

    def raise_for_error(self) -> bytes:
        """Return the body, or raise `TransportError` when the fetch failed."""

        if not self.ok:
            raise TransportError(
                self.requested_url,
                self.error_message,
                status_code=self.status_code,
            )
        return self.body if self.body is not None else b""


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One per-URL failure, written to the failure log."""

    stage: CrawlStage
    url: str
    message: str
    error_type: str | None = None
    referrer: str | None = None
    status_code: int | None = None
    generation: int | None = None
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_exception(
        cls,
        *,
        stage: CrawlStage,
        url: str,
        exc: BaseException,
        **kwargs: Any,
    ) -> "ErrorRecord":
        if "status_code" not in kwargs:
            kwargs["status_code"] = getattr(exc, "status_code", None)
        return cls(
            stage=stage,
            url=url,
            message=str(exc),
            error_type=exc.__class__.__name__,
            **kwargs,
        )

    def to_json(self) -> JSONDict:
        return {
            "stage": self.stage.value,
            "url": self.url,
            "message": self.message,
            "error_type": self.error_type,
            "referrer": self.referrer,
            "status_code": self.status_code,
            "generation": self.generation,
            "created_at": self.created_at,
        }


@dataclass(slots=True)
class CrawlStats:
    """Simple mutable counters used for crawl summary reporting."""

    recrawls: int = 0
    pages_crawled: int = 0
    links_discovered: int = 0

    logs_seen: int = 0
    logs_skipped_visited: int = 0
    logs_recorded: int = 0
    logs_erroring: int = 0
    logs_duplicate: int = 0

    fetched_ok: int = 0
    fetched_error: int = 0
    task_errors: int = 0

    notifications_sent: int = 0
    notifications_failed: int = 0
    sync_events: int = 0

    started_at: str = field(default_factory=utc_now_iso)
    finished_at: str | None = None

    def finish(self) -> None:
        self.finished_at = utc_now_iso()

    def to_json(self) -> JSONDict:
        return {
            "recrawls": self.recrawls,
            "pages_crawled": self.pages_crawled,
            "links_discovered": self.links_discovered,
            "logs_seen": self.logs_seen,
            "logs_skipped_visited": self.logs_skipped_visited,
            "logs_recorded": self.logs_recorded,
            "logs_erroring": self.logs_erroring,
            "logs_duplicate": self.logs_duplicate,
            "fetched_ok": self.fetched_ok,
            "fetched_error": self.fetched_error,
            "task_errors": self.task_errors,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "sync_events": self.sync_events,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


__all__ = [
    "CrawlStage",
    "CrawlStats",
    "ErrorRecord",
    "FetchResult",
    "FrontierItem",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "LogRef",
    "VisitOutcome",
    "utc_now_iso",
]
