"""HTTP fetching with a bounded per-host connection pool."""

from __future__ import annotations

import logging
import threading
import time

import requests
from requests.adapters import HTTPAdapter

from .config import MonitorConfig
from .types import FetchResult
from .url import normalize_url


logger = logging.getLogger(__name__)


class Fetcher:
    """Fetch URLs with `requests`, one session per worker thread.

    Each session mounts an adapter whose pool holds at most
    `max_connections_per_host` connections per host and blocks when it is
    exhausted. Connect timeout is `handshake_timeout_seconds`; reads are
    unbounded unless `read_timeout_seconds` is set. Failures are never
    retried: they come back as a `FetchResult` with `ok == False`.
    """

    def __init__(self, config: MonitorConfig) -> None:
        self.config = config

        self._thread_local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

        self._closed = False
        self._closed_lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        """GET one URL and return its body or the failure."""

        normalized = normalize_url(url)
        if normalized is None:
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="InvalidURL: invalid or unsupported URL",
            )

        if self._is_closed():
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="FetcherClosed: fetcher is closed",
            )

        started = time.perf_counter()
        session = self._thread_local_session()

        try:
            response = session.get(
                url,
                headers=self.config.headers(),
                timeout=self.config.request_timeout,
                allow_redirects=True,
            )
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            body = response.content if response.content is not None else b""
            result = FetchResult(
                requested_url=url,
                final_url=response.url or url,
                status_code=response.status_code,
                content_type=response.headers.get("Content-Type"),
                body=body,
                elapsed_ms=elapsed_ms,
                error=None,
            )
        except requests.RequestException as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            result = FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=elapsed_ms,
                error=f"{exc.__class__.__name__}: {exc}",
            )

        logger.debug(
            "GET %s -> %s (%s ms)",
            url,
            result.status_code if result.error is None else result.error,
            result.elapsed_ms,
        )
        return result

    def close(self) -> None:
        """Close every session created by worker threads."""

        with self._closed_lock:
            self._closed = True

        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []

        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _is_closed(self) -> bool:
        with self._closed_lock:
            return self._closed

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = self._build_session()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=self.config.max_connections_per_host,
            pool_maxsize=self.config.max_connections_per_host,
            pool_block=True,
            max_retries=0,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session


__all__ = ["Fetcher"]
