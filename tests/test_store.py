from __future__ import annotations

import threading

import pytest

from logmonitor.crawler import DuplicateVisitError, StoreError, VisitStore
from logmonitor.crawler.store import database_url, is_memory_url


def test_resolve_package_is_idempotent(store):
    first = store.resolve_package("libfoo")
    second = store.resolve_package("libfoo")

    assert first == second
    assert store.package_id("libfoo") == first
    assert store.counts()["packages"] == 1


def test_resolve_package_distinguishes_names(store):
    assert store.resolve_package("a") != store.resolve_package("b")


def test_resolve_package_rejects_blank_name(store):
    with pytest.raises(ValueError):
        store.resolve_package("  ")


def test_concurrent_resolve_creates_a_single_package(store):
    results: list[int] = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait(timeout=5)
        package_id = store.resolve_package("racy")
        with lock:
            results.append(package_id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(results) == 8
    assert len(set(results)) == 1
    assert store.counts()["packages"] == 1


def test_record_visit_then_is_visited(store):
    package_id = store.resolve_package("bar")

    assert store.is_visited(package_id, "2024-05-01") is False
    store.record_visit(package_id, "2024-05-01", True)

    assert store.is_visited(package_id, "2024-05-01") is True
    assert store.is_visited(package_id, "2024-05-02") is False
    record = store.visit(package_id, "2024-05-01")
    assert record is not None and record.had_error is True


def test_record_visit_twice_raises_duplicate(store):
    package_id = store.resolve_package("bar")
    store.record_visit(package_id, "2024-05-01", False)

    with pytest.raises(DuplicateVisitError) as excinfo:
        store.record_visit(package_id, "2024-05-01", True)

    assert excinfo.value.date == "2024-05-01"
    assert store.visit(package_id, "2024-05-01").had_error is False
    assert store.counts()["visited"] == 1


def test_record_visit_requires_existing_package(store):
    with pytest.raises(StoreError) as excinfo:
        store.record_visit(9999, "2024-05-01", False)

    assert not isinstance(excinfo.value, DuplicateVisitError)


def test_visits_persist_across_reopen(db_path):
    with VisitStore(db_path) as first:
        package_id = first.resolve_package("bar")
        first.record_visit(package_id, "2024-05-01", True)

    with VisitStore(db_path) as second:
        assert second.package_id("bar") == package_id
        assert second.is_visited(package_id, "2024-05-01")


def test_subscriptions(store):
    assert store.subscribe("@alice:example.org", "bar") is True
    assert store.subscribe("@alice:example.org", "bar") is False
    assert store.subscribe("@bob:example.org", "bar") is True

    package_id = store.package_id("bar")
    assert store.subscribers_for(package_id) == ["@alice:example.org", "@bob:example.org"]

    assert store.unsubscribe("@alice:example.org", "bar") is True
    assert store.unsubscribe("@alice:example.org", "bar") is False
    assert store.unsubscribe("@alice:example.org", "unknown") is False
    assert store.subscribers_for(package_id) == ["@bob:example.org"]


def test_counts_reports_erroring_visits(store):
    package_id = store.resolve_package("bar")
    store.record_visit(package_id, "d1", True)
    store.record_visit(package_id, "d2", False)

    assert store.counts() == {
        "packages": 1,
        "visited": 2,
        "visited_with_error": 1,
        "subscriptions": 0,
    }


def test_database_url():
    assert database_url("data.db") == "sqlite:///data.db"
    assert database_url(":memory:") == "sqlite://"
    assert database_url("postgresql://u@h/db") == "postgresql://u@h/db"


def test_is_memory_url():
    assert is_memory_url("sqlite://")
    assert is_memory_url("sqlite:///:memory:")
    assert not is_memory_url("sqlite:///data.db")


def test_in_memory_store_is_shared_across_threads():
    with VisitStore(":memory:") as store:
        package_id = store.resolve_package("libfoo")
        errors: list[Exception] = []

        def record(date):
            try:
                store.record_visit(package_id, date, had_error=False)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=record, args=(f"2024-01-0{day}",)) for day in range(1, 5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert store.counts()["visited"] == 4
        assert store.resolve_package("libfoo") == package_id
