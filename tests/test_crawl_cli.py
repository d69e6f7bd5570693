from __future__ import annotations

import json
import logging

import pytest

from logmonitor import crawl
from logmonitor.crawler import ConfigError, VisitStore
from tests.helpers import ROOT_URL, FakeFetcher


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_site(monkeypatch, site):
    monkeypatch.setattr("logmonitor.crawler.dispatcher.Fetcher", lambda config: FakeFetcher(site))
    return site


def test_once_crawls_and_records(tmp_path, monkeypatch, fake_site, capsys):
    monkeypatch.chdir(tmp_path)
    db_path = tmp_path / "monitor.db"

    exit_code = crawl.main(
        [
            "--url",
            ROOT_URL,
            "--db",
            str(db_path),
            "--once",
            "--concurrency",
            "2",
            "--subscribe",
            "@alice:example.org=bar",
            "--print_stats_json",
        ]
    )

    assert exit_code == 0
    with VisitStore(db_path) as store:
        package_id = store.package_id("bar")
        assert store.visit(package_id, "2024-05-01").had_error is True
        assert store.subscribers_for(package_id) == ["@alice:example.org"]

    out = capsys.readouterr().out
    assert "=== Crawl Summary ===" in out
    assert "logs_recorded: 1" in out


def test_bad_delay_exits_with_config_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert crawl.main(["--delay", "soon", "--once"]) == 2


def test_bad_subscription_exits_with_config_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert crawl.main(["--subscribe", "nobody", "--once"]) == 2


def test_build_config_reads_file_and_applies_overrides(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "monitor.yaml"
    config_path.write_text(
        "url: https://logs.example.org/\n"
        "db: from-file.db\n"
        "delay: 2h\n"
        "matrix:\n"
        "  enabled: false\n",
        encoding="utf-8",
    )

    args = crawl.parse_args(["--config", str(config_path), "--db", "override.db", "--concurrency", "3"])
    config = crawl.build_config(args)

    assert config.url == "https://logs.example.org/"
    assert config.db == "override.db"
    assert config.delay == 7200
    assert config.concurrency == 3


def test_build_config_picks_up_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("delay: 30m\n", encoding="utf-8")

    config = crawl.build_config(crawl.parse_args([]))

    assert config.delay == 1800


def test_missing_config_file_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = crawl.build_config(crawl.parse_args(["--config", str(tmp_path / "absent.json")]))

    assert config.url == "https://nixpkgs-update-logs.nix-community.org"
    assert config.db == "data.db"
    assert config.delay == 86400
    assert config.homeserver == "matrix.org"
    assert config.matrix.enabled is False


def test_json_config_is_accepted(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "monitor.json"
    config_path.write_text(json.dumps({"delay": 60, "error_signature": "FAILED"}), encoding="utf-8")

    config = crawl.build_config(crawl.parse_args(["--config", str(config_path)]))

    assert config.delay == 60
    assert config.error_signature == "FAILED"


def test_enabled_matrix_without_credentials_is_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("matrix:\n  enabled: true\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        crawl.build_config(crawl.parse_args([]))
