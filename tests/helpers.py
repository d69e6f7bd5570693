from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Callable

from logmonitor.crawler import FetchResult, NotifyError


ROOT_URL = "https://example.org/pkgs/"


def listing(*hrefs: str, title: str = "Index of /") -> bytes:
    """Render an nginx-style autoindex page."""

    rows = "\n".join(f'<a href="{href}">{href}</a>' for href in ("../", *hrefs))
    return f"<html><head><title>{title}</title></head><body><h1>{title}</h1><hr><pre>\n{rows}\n</pre></body></html>".encode()


class FakeFetcher:
    """Serve canned responses keyed by URL and count requests."""

    def __init__(
        self,
        pages: dict[str, bytes | int],
        *,
        before_fetch: Callable[[str], None] | None = None,
    ) -> None:
        self.pages = dict(pages)
        self.before_fetch = before_fetch
        self.calls: Counter[str] = Counter()
        self._lock = threading.Lock()
        self.closed = False

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls[url] += 1
        if self.before_fetch is not None:
            self.before_fetch(url)

        page = self.pages.get(url, 404)
        if isinstance(page, int):
            return FetchResult(
                requested_url=url,
                final_url=url,
                status_code=page,
                content_type="text/html",
                body=b"",
            )
        return FetchResult(
            requested_url=url,
            final_url=url,
            status_code=200,
            content_type="text/html",
            body=page,
        )

    def close(self) -> None:
        self.closed = True


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def announce(self, recipient: str, message: str) -> None:
        if self.fail:
            raise NotifyError("channel unavailable")
        with self._lock:
            self.messages.append((recipient, message))




class FakeResponse:
    def __init__(self, status_code: int, payload: dict | None = None) -> None:
        self.status_code = status_code
        self._payload = payload or {}

    def json(self) -> dict:
        return self._payload


class FakeMatrixSession:
    """Stand-in for `requests.Session` speaking the Matrix client-server API."""

    def __init__(self, put_status: int = 200, sync_payloads: list[dict] | None = None) -> None:
        self.put_status = put_status
        self.sync_payloads = list(sync_payloads or [])
        self.posts: list[tuple[str, dict]] = []
        self.puts: list[tuple[str, dict, dict]] = []
        self.gets: list[tuple[str, dict, dict]] = []
        self._lock = threading.Lock()

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        return FakeResponse(200, {"access_token": "tok"})

    def put(self, url, json=None, headers=None, timeout=None):
        with self._lock:
            self.puts.append((url, json, headers))
        return FakeResponse(self.put_status)

    def get(self, url, params=None, headers=None, timeout=None):
        with self._lock:
            self.gets.append((url, dict(params or {}), headers))
            payload = self.sync_payloads.pop(0) if self.sync_payloads else None
        if payload is None:
            # Nothing queued: behave like an idle long-poll.
            time.sleep(0.01)
            payload = {"next_batch": f"s{len(self.gets)}"}
        return FakeResponse(200, payload)

    def close(self) -> None:
        pass


def sync_payload(next_batch: str, room_id: str, *events: dict) -> dict:
    return {"next_batch": next_batch, "rooms": {"join": {room_id: {"timeline": {"events": list(events)}}}}}
