from __future__ import annotations

import pytest
import requests

from logmonitor.crawler import Fetcher, MonitorConfig, TransportError


class FakeResponse:
    def __init__(self, url: str, status_code: int = 200, content: bytes = b"ok") -> None:
        self.url = url
        self.status_code = status_code
        self.content = content
        self.headers = {"Content-Type": "text/html"}


@pytest.fixture
def fetcher():
    with Fetcher(MonitorConfig(url="https://example.org/")) as instance:
        yield instance


def test_fetch_returns_body_and_passes_handshake_timeout(monkeypatch, fetcher):
    seen: dict = {}

    def fake_get(self, url, **kwargs):
        seen.update(kwargs, url=url)
        return FakeResponse(url, content=b"<html></html>")

    monkeypatch.setattr(requests.Session, "get", fake_get)

    result = fetcher.fetch("https://example.org/pkgs/")

    assert result.ok
    assert result.body == b"<html></html>"
    assert seen["timeout"] == (30.0, None)
    assert seen["headers"]["User-Agent"].startswith("logmonitor/")


def test_non_2xx_is_a_failed_result(monkeypatch, fetcher):
    monkeypatch.setattr(
        requests.Session,
        "get",
        lambda self, url, **kwargs: FakeResponse(url, status_code=404, content=b"not found"),
    )

    result = fetcher.fetch("https://example.org/missing/")

    assert not result.ok
    assert result.status_code == 404
    with pytest.raises(TransportError) as excinfo:
        result.raise_for_error()
    assert excinfo.value.status_code == 404


def test_transport_exception_is_captured_not_raised(monkeypatch, fetcher):
    calls = []

    def boom(self, url, **kwargs):
        calls.append(url)
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests.Session, "get", boom)

    result = fetcher.fetch("https://example.org/")

    assert not result.ok
    assert result.error.startswith("ConnectionError:")
    assert calls == ["https://example.org/"]


def test_invalid_url_never_hits_the_network(monkeypatch, fetcher):
    def unexpected(self, url, **kwargs):
        raise AssertionError("network call for invalid URL")

    monkeypatch.setattr(requests.Session, "get", unexpected)

    result = fetcher.fetch("javascript:alert(1)")

    assert not result.ok
    assert result.error.startswith("InvalidURL")


def test_session_pool_is_bounded_per_host(fetcher):
    session = fetcher._thread_local_session()
    adapter = session.get_adapter("https://example.org/")

    assert adapter._pool_maxsize == 5
    assert adapter._pool_block is True
    assert fetcher._thread_local_session() is session


def test_closed_fetcher_refuses_requests():
    fetcher = Fetcher(MonitorConfig(url="https://example.org/"))
    fetcher.close()

    assert fetcher.fetch("https://example.org/").error.startswith("FetcherClosed")
