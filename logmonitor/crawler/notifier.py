"""Announcement channel for erroring logs.

`Notifier.announce(recipient, message)` is the only contract the dispatcher
relies on. Delivery goes through `NotificationQueue`, a background thread, so
a slow or rate-limited channel never stalls crawling.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol
from urllib.parse import quote

import requests

from .config import MatrixConfig, MonitorConfig
from .errors import ConfigError, NotifyError


logger = logging.getLogger(__name__)

DEFAULT_LOG_RECIPIENT = "log"
DEFAULT_SYNC_TIMEOUT_MS = 30_000
DEFAULT_SYNC_RETRY_SECONDS = 5.0
SYNC_EVENT_TYPES = ("m.room.message", "m.room.encrypted")


class Notifier(Protocol):
    def announce(self, recipient: str, message: str) -> None:
        """Deliver `message` to `recipient` or raise `NotifyError`."""


class LogNotifier:
    """Write announcements to the log instead of an external channel."""

    def announce(self, recipient: str, message: str) -> None:
        logger.warning("> %s [to %s]", message, recipient)


def homeserver_base_url(homeserver: str) -> str:
    raw = homeserver.strip().rstrip("/")
    if "://" not in raw:
        raw = f"https://{raw}"
    return raw


class MatrixNotifier:
    """Send `m.text` messages to a Matrix room via the client-server API.

    `start_sync` additionally long-polls `/sync` on a background thread, logs
    every received room message and hands each event to a callback.
    """

    def __init__(
        self,
        homeserver: str,
        matrix: MatrixConfig,
        *,
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.base_url = homeserver_base_url(homeserver)
        self.matrix = matrix
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._access_token = matrix.access_token
        self._lock = threading.Lock()
        self._txn_counter = itertools.count(1)
        self._txn_prefix = f"logmonitor-{int(time.time() * 1000)}"

        self._since: str | None = None
        self._sync_thread: threading.Thread | None = None
        self._sync_lock = threading.Lock()
        self._sync_stop = threading.Event()

    def login(self) -> str:
        """Exchange username/password for an access token."""

        if not (self.matrix.username and self.matrix.password):
            raise NotifyError("matrix login needs username and password")

        payload = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": self.matrix.username},
            "password": self.matrix.password,
        }
        try:
            response = self._session.post(
                f"{self.base_url}/_matrix/client/v3/login",
                json=payload,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise NotifyError(f"matrix login failed: {exc}") from exc

        if response.status_code != 200:
            raise NotifyError(f"matrix login failed: HTTP {response.status_code}")

        token = response.json().get("access_token")
        if not token:
            raise NotifyError("matrix login response has no access_token")

        logger.info("logged in to %s as %s", self.base_url, self.matrix.username)
        return str(token)

    def _token(self) -> str:
        with self._lock:
            if self._access_token is None:
                self._access_token = self.login()
            return self._access_token

    def announce(self, recipient: str, message: str) -> None:
        token = self._token()
        txn_id = f"{self._txn_prefix}-{next(self._txn_counter)}"
        url = (
            f"{self.base_url}/_matrix/client/v3/rooms/{quote(recipient, safe='')}"
            f"/send/m.room.message/{txn_id}"
        )

        try:
            response = self._session.put(
                url,
                json={"msgtype": "m.text", "body": message},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise NotifyError(f"matrix send failed: {exc}") from exc

        if response.status_code == 429:
            raise NotifyError("matrix send rate-limited (HTTP 429)")
        if not 200 <= response.status_code < 300:
            raise NotifyError(f"matrix send failed: HTTP {response.status_code}")

    def sync_once(self, *, timeout_ms: int = DEFAULT_SYNC_TIMEOUT_MS) -> list[dict[str, Any]]:
        """Run one long-poll `/sync` request and return new room message events.

        The `next_batch` token is kept so the following call only returns
        events received since this one. Each returned event carries its
        `room_id`.
        """

        token = self._token()
        params: dict[str, Any] = {"timeout": timeout_ms}
        if self._since is not None:
            params["since"] = self._since

        try:
            response = self._session.get(
                f"{self.base_url}/_matrix/client/v3/sync",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_seconds + timeout_ms / 1000,
            )
        except requests.RequestException as exc:
            raise NotifyError(f"matrix sync failed: {exc}") from exc

        if response.status_code != 200:
            raise NotifyError(f"matrix sync failed: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise NotifyError(f"matrix sync returned invalid JSON: {exc}") from exc
        self._since = payload.get("next_batch") or self._since

        events: list[dict[str, Any]] = []
        joined = (payload.get("rooms") or {}).get("join") or {}
        for room_id, room in joined.items():
            for event in (room.get("timeline") or {}).get("events") or []:
                event_type = event.get("type")
                if event_type not in SYNC_EVENT_TYPES:
                    continue

                body = (event.get("content") or {}).get("body")
                if event_type == "m.room.encrypted":
                    logger.info("rcv(enc): %s; from: %s", body, event.get("sender"))
                else:
                    logger.info("rcv: %s; from: %s", body, event.get("sender"))
                events.append({**event, "room_id": room_id})
        return events

    def start_sync(
        self,
        on_event: Callable[[dict[str, Any]], None],
        *,
        timeout_ms: int = DEFAULT_SYNC_TIMEOUT_MS,
        retry_seconds: float = DEFAULT_SYNC_RETRY_SECONDS,
    ) -> None:
        """Start the background sync loop (idempotent)."""

        with self._sync_lock:
            if self._sync_thread is not None:
                return
            self._sync_stop.clear()
            self._sync_thread = threading.Thread(
                target=self._sync_loop,
                args=(on_event, timeout_ms, retry_seconds),
                name="matrix-sync",
                daemon=True,
            )
            self._sync_thread.start()

    def stop_sync(self, timeout: float | None = 5.0) -> None:
        self._sync_stop.set()
        with self._sync_lock:
            thread, self._sync_thread = self._sync_thread, None
        if thread is not None:
            thread.join(timeout=timeout)

    def _sync_loop(
        self,
        on_event: Callable[[dict[str, Any]], None],
        timeout_ms: int,
        retry_seconds: float,
    ) -> None:
        while not self._sync_stop.is_set():
            try:
                events = self.sync_once(timeout_ms=timeout_ms)
            except NotifyError as exc:
                logger.warning("matrix sync failed, retrying in %.1fs: %s", retry_seconds, exc)
                self._sync_stop.wait(retry_seconds)
                continue

            for event in events:
                on_event(event)

    def close(self) -> None:
        self._session.close()


def build_notifier(config: MonitorConfig) -> tuple[Notifier, str]:
    """Return the configured notifier and the recipient it announces to."""

    if config.matrix.enabled:
        if not config.matrix.room:
            raise ConfigError("matrix.room is required when matrix is enabled")
        return MatrixNotifier(config.homeserver, config.matrix), config.matrix.room
    return LogNotifier(), DEFAULT_LOG_RECIPIENT


@dataclass(frozen=True, slots=True)
class Announcement:
    recipient: str
    message: str
    url: str | None = None


class NotificationQueue:
    """Deliver announcements on a dedicated thread, best-effort.

    Failures are logged and passed to `on_result`; they are never raised to
    the producer, whose visit row is already committed by then.
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        on_result: Callable[[Announcement, Exception | None], None] | None = None,
    ) -> None:
        self.notifier = notifier
        self._on_result = on_result
        self._queue: queue.Queue[Announcement | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()

    def start(self) -> None:
        with self._start_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._deliver_loop,
                name="notification-worker",
                daemon=True,
            )
            self._thread.start()

    def submit(self, announcement: Announcement) -> None:
        self.start()
        self._queue.put(announcement)

    def join(self) -> None:
        """Block until every submitted announcement has been attempted."""

        self._queue.join()

    def close(self, timeout: float | None = 5.0) -> None:
        with self._start_lock:
            thread = self._thread
        if thread is None:
            return
        self._queue.put(None)
        thread.join(timeout=timeout)

    def _deliver_loop(self) -> None:
        while True:
            announcement = self._queue.get()
            try:
                if announcement is None:
                    return
                self._deliver(announcement)
            finally:
                self._queue.task_done()

    def _deliver(self, announcement: Announcement) -> None:
        error: Exception | None = None
        try:
            self.notifier.announce(announcement.recipient, announcement.message)
        except NotifyError as exc:
            error = exc
            logger.warning("notification for %s failed: %s", announcement.url, exc)
        except Exception as exc:
            error = exc
            logger.exception("notifier raised unexpectedly for %s", announcement.url)

        if self._on_result is not None:
            self._on_result(announcement, error)


__all__ = [
    "Announcement",
    "DEFAULT_LOG_RECIPIENT",
    "DEFAULT_SYNC_RETRY_SECONDS",
    "DEFAULT_SYNC_TIMEOUT_MS",
    "LogNotifier",
    "MatrixNotifier",
    "NotificationQueue",
    "Notifier",
    "build_notifier",
    "homeserver_base_url",
]
