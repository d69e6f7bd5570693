"""Crawler package: config, shared types, and the crawl-and-dedup engine."""

from .classifier import LogClassifier, classify_log
from .config import MatrixConfig, MonitorConfig, load_config, parse_duration, save_config
from .dispatcher import CrawlDispatcher
from .errors import (
    ConfigError,
    DuplicateVisitError,
    InvalidLogURLError,
    MonitorError,
    NotifyError,
    StoreError,
    TransportError,
)
from .failures import FailureLog
from .fetcher import Fetcher
from .frontier import EnqueueResult, EnqueueStatus, Frontier
from .notifier import (
    Announcement,
    LogNotifier,
    MatrixNotifier,
    NotificationQueue,
    Notifier,
    build_notifier,
)
from .stats import StatsCollector
from .store import VisitRecord, VisitStore
from .types import (
    CrawlStage,
    CrawlStats,
    ErrorRecord,
    FetchResult,
    FrontierItem,
    LogRef,
    VisitOutcome,
    utc_now_iso,
)
from .url import is_log_url, iter_links, join_url, normalize_url, parse_log_url

__all__ = [
    "Announcement",
    "ConfigError",
    "CrawlDispatcher",
    "CrawlStage",
    "CrawlStats",
    "DuplicateVisitError",
    "EnqueueResult",
    "EnqueueStatus",
    "ErrorRecord",
    "FailureLog",
    "FetchResult",
    "Fetcher",
    "Frontier",
    "FrontierItem",
    "InvalidLogURLError",
    "LogClassifier",
    "LogNotifier",
    "LogRef",
    "MatrixConfig",
    "MatrixNotifier",
    "MonitorConfig",
    "MonitorError",
    "NotificationQueue",
    "Notifier",
    "NotifyError",
    "StatsCollector",
    "StoreError",
    "TransportError",
    "VisitOutcome",
    "VisitRecord",
    "VisitStore",
    "build_notifier",
    "classify_log",
    "is_log_url",
    "iter_links",
    "join_url",
    "load_config",
    "normalize_url",
    "parse_duration",
    "parse_log_url",
    "save_config",
    "utc_now_iso",
]
