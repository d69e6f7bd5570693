from __future__ import annotations

import pytest

from logmonitor.crawler import MonitorConfig, VisitStore
from tests.helpers import ROOT_URL, listing


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data.db"


@pytest.fixture
def store(db_path):
    visit_store = VisitStore(db_path)
    yield visit_store
    visit_store.close()


@pytest.fixture
def config(db_path):
    return MonitorConfig(url=ROOT_URL, db=str(db_path), concurrency=4, delay=3600)


@pytest.fixture
def site() -> dict[str, bytes | int]:
    return {
        ROOT_URL: listing("bar/", title="Index of /pkgs/"),
        f"{ROOT_URL}bar/": listing("2024-05-01.log", title="Index of /pkgs/bar/"),
        f"{ROOT_URL}bar/2024-05-01.log": b"building bar\nerror: builder for bar failed\n",
    }
