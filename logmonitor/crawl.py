"""CLI entrypoint for the build-log monitor."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any

from logmonitor.crawler import (
    ConfigError,
    CrawlDispatcher,
    MonitorConfig,
    VisitStore,
)
from logmonitor.crawler.config import load_config_payload


DEFAULT_CONFIG_PATH = Path("config.yaml")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl a build-log listing and record which logs contain errors.",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to JSON/YAML config (default: {DEFAULT_CONFIG_PATH} if present).",
    )
    parser.add_argument("--url", type=str, default=None, help="Webpage with logs.")
    parser.add_argument("--db", type=str, default=None, help="Path to the SQLite DB file or a SQLAlchemy URL.")
    parser.add_argument(
        "--delay",
        type=str,
        default=None,
        help="How often to re-crawl the listing: seconds or a duration like 24h, 30m.",
    )
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--homeserver", type=str, default=None, help="Matrix homeserver for the bot account.")
    parser.add_argument(
        "--errors_path",
        type=str,
        default=None,
        help="Append per-URL failure records to this JSONL file.",
    )
    parser.add_argument(
        "--subscribe",
        action="append",
        default=[],
        metavar="RECIPIENT=PACKAGE",
        help="Register a subscription before crawling (repeatable).",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single crawl cycle and exit instead of re-crawling forever.",
    )
    parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print full stats JSON in stdout after run.",
    )
    parser.add_argument("--log_file", type=Path, default=None, help="Also write logs to this file.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def _parse_subscriptions(entries: list[str]) -> list[tuple[str, str]]:
    subscriptions: list[tuple[str, str]] = []
    for entry in entries:
        recipient, sep, package = entry.partition("=")
        if not sep or not recipient.strip() or not package.strip():
            raise ConfigError(f"Invalid --subscribe '{entry}'. Use RECIPIENT=PACKAGE.")
        subscriptions.append((recipient.strip(), package.strip()))
    return subscriptions


def build_config(args: argparse.Namespace) -> MonitorConfig:
    payload: dict[str, Any] = {}

    config_path = args.config
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH

    if config_path is not None:
        if config_path.exists():
            payload = load_config_payload(config_path)
        else:
            logging.warning("config file %s not found, using defaults", config_path)

    if args.url is not None:
        payload["url"] = args.url
    if args.db is not None:
        payload["db"] = args.db
    if args.delay is not None:
        payload["delay"] = args.delay
    if args.concurrency is not None:
        payload["concurrency"] = args.concurrency
    if args.homeserver is not None:
        payload["homeserver"] = args.homeserver
    if args.errors_path is not None:
        payload["errors_path"] = args.errors_path

    return MonitorConfig.from_dict(payload)


def setup_logging(verbose: bool, log_file: Path | None = None) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Connection-pool chatter from urllib3 drowns the per-URL lines at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_summary(result: dict[str, Any], *, print_stats_json: bool) -> None:
    stats = result.get("stats", {})
    store = result.get("store", {})

    print("\n=== Crawl Summary ===")
    print(f"url: {result.get('url')}")
    for key, value in store.items():
        print(f"{key}: {value}")

    print("\n--- Core Stats ---")
    for key in [
        "recrawls",
        "pages_crawled",
        "logs_seen",
        "logs_skipped_visited",
        "logs_recorded",
        "logs_erroring",
        "logs_duplicate",
        "fetched_error",
        "task_errors",
        "notifications_sent",
        "notifications_failed",
        "duration_seconds",
    ]:
        if key in stats:
            print(f"{key}: {stats[key]}")

    if print_stats_json:
        print("\n--- Full Stats JSON ---")
        print(json.dumps(stats, indent=2, sort_keys=True))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = build_config(args)
        subscriptions = _parse_subscriptions(args.subscribe)
    except (ConfigError, ValueError, OSError) as exc:
        logging.error("Failed to build config: %s", exc)
        return 2

    logging.info(
        "Starting monitor: url=%s, db=%s, delay=%ss, concurrency=%d, matrix=%s",
        config.url,
        config.db,
        config.delay,
        config.concurrency,
        "enabled" if config.matrix.enabled else "disabled",
    )

    store: VisitStore | None = None
    dispatcher: CrawlDispatcher | None = None
    try:
        store = VisitStore(config.db)
        for recipient, package in subscriptions:
            if store.subscribe(recipient, package):
                logging.info("subscribed %s to %s", recipient, package)

        dispatcher = CrawlDispatcher(config, store=store)
        result = dispatcher.crawl_once() if args.once else dispatcher.run()
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        return 130
    except Exception:
        logging.exception("Monitor failed")
        return 1
    finally:
        if dispatcher is not None:
            dispatcher.close()
        if store is not None:
            store.close()

    print_summary(result, print_stats_json=args.print_stats_json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
