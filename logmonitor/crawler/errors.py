"""Exception hierarchy used across the monitor."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all monitor errors."""


class ConfigError(MonitorError, ValueError):
    """Invalid or inconsistent configuration value."""


class TransportError(MonitorError):
    """A URL could not be fetched (network failure or non-2xx status)."""

    def __init__(self, url: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status_code = status_code


class InvalidLogURLError(MonitorError):
    """A terminal log URL does not carry `<package>/<date>.log` segments."""


class StoreError(MonitorError):
    """Persistent store failure (connectivity, schema, constraint)."""


class DuplicateVisitError(StoreError):
    """A visit for the same (package, date) was already recorded."""

    def __init__(self, package_id: int, date: str) -> None:
        super().__init__(f"visit already recorded for package_id={package_id} date={date}")
        self.package_id = package_id
        self.date = date


class NotifyError(MonitorError):
    """The notification channel rejected or failed to deliver a message."""


__all__ = [
    "ConfigError",
    "DuplicateVisitError",
    "InvalidLogURLError",
    "MonitorError",
    "NotifyError",
    "StoreError",
    "TransportError",
]
