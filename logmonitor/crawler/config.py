"""Typed monitor configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlsplit

import yaml  # type: ignore

from .constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DB_PATH,
    DEFAULT_ERROR_SIGNATURE,
    DEFAULT_HANDSHAKE_TIMEOUT_SECONDS,
    DEFAULT_HOMESERVER,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_LOG_PATTERN,
    DEFAULT_MAX_CONNECTIONS_PER_HOST,
    DEFAULT_READ_TIMEOUT_SECONDS,
    DEFAULT_RECRAWL_INTERVAL_SECONDS,
    DEFAULT_ROOT_URL,
    DEFAULT_USER_AGENT,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import ConfigError
from .types import JSONDict, JSONValue
from .url import is_http_url, normalize_url


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any, key: str = "delay") -> float:
    """Parse seconds (number) or a duration string like `24h` or `1h30m`."""

    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration for '{key}': {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid duration for '{key}': {value!r}")

    raw = value.strip().lower()
    try:
        return float(raw)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(raw):
        raise ConfigError(f"Invalid duration for '{key}': {value!r}")
    return total


def _as_float(value: Any, key: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Invalid bool for '{key}': {value!r}")


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class MatrixConfig:
    """Credentials and target room for Matrix announcements."""

    enabled: bool = False
    username: str | None = None
    password: str | None = None
    access_token: str | None = None
    room: str | None = None

    def __post_init__(self) -> None:
        if not self.enabled:
            return
        if not self.room:
            raise ConfigError("matrix.room is required when matrix is enabled")
        if not self.access_token and not (self.username and self.password):
            raise ConfigError(
                "matrix.access_token or matrix.username/matrix.password is required "
                "when matrix is enabled"
            )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "MatrixConfig":
        payload = payload or {}
        return cls(
            enabled=_as_bool(payload.get("enabled", False), "matrix.enabled"),
            username=_as_optional_str(payload.get("username")),
            password=_as_optional_str(payload.get("password")),
            access_token=_as_optional_str(payload.get("access_token")),
            room=_as_optional_str(payload.get("room")),
        )

    def to_dict(self, *, include_secrets: bool = False) -> JSONDict:
        return {
            "enabled": self.enabled,
            "username": self.username,
            "password": self.password if include_secrets else None,
            "access_token": self.access_token if include_secrets else None,
            "room": self.room,
        }


@dataclass(slots=True)
class MonitorConfig:
    """Everything the dispatcher needs, passed in explicitly at construction."""

    url: str = DEFAULT_ROOT_URL
    db: str = DEFAULT_DB_PATH
    delay: float = DEFAULT_RECRAWL_INTERVAL_SECONDS

    concurrency: int = DEFAULT_CONCURRENCY
    max_connections_per_host: int = DEFAULT_MAX_CONNECTIONS_PER_HOST
    handshake_timeout_seconds: float = DEFAULT_HANDSHAKE_TIMEOUT_SECONDS
    read_timeout_seconds: float | None = DEFAULT_READ_TIMEOUT_SECONDS

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))

    log_pattern: str = DEFAULT_LOG_PATTERN
    error_signature: str = DEFAULT_ERROR_SIGNATURE
    errors_path: str | None = None

    homeserver: str = DEFAULT_HOMESERVER
    matrix: MatrixConfig = field(default_factory=MatrixConfig)

    def __post_init__(self) -> None:
        self.url = (self.url or "").strip()
        if not is_http_url(self.url):
            raise ConfigError(f"url must be an absolute http(s) URL: {self.url!r}")
        if not str(self.db).strip():
            raise ConfigError("db must be a non-empty path")
        if self.delay <= 0:
            raise ConfigError("delay must be > 0")
        if self.concurrency <= 0:
            raise ConfigError("concurrency must be > 0")
        if self.max_connections_per_host <= 0:
            raise ConfigError("max_connections_per_host must be > 0")
        if self.handshake_timeout_seconds <= 0:
            raise ConfigError("handshake_timeout_seconds must be > 0")
        if self.read_timeout_seconds is not None and self.read_timeout_seconds <= 0:
            raise ConfigError("read_timeout_seconds must be > 0 when set")
        if not self.error_signature:
            raise ConfigError("error_signature must be non-empty")
        try:
            re.compile(self.log_pattern)
        except re.error as exc:
            raise ConfigError(f"Invalid log_pattern {self.log_pattern!r}: {exc}") from exc

    @property
    def request_timeout(self) -> tuple[float, float | None]:
        """`(connect, read)` timeout tuple in the form requests expects."""

        return (self.handshake_timeout_seconds, self.read_timeout_seconds)

    def is_url_allowed(self, url: str) -> bool:
        """Check URL against the root listing's scheme, host and path prefix."""

        normalized = normalize_url(url)
        root = normalize_url(self.url)
        if normalized is None or root is None:
            return False

        parsed = urlsplit(normalized)
        root_parsed = urlsplit(root)
        if (parsed.scheme, parsed.netloc) != (root_parsed.scheme, root_parsed.netloc):
            return False

        path = parsed.path or "/"
        prefix = root_parsed.path.rstrip("/") + "/"
        return path == root_parsed.path or path.startswith(prefix)

    def headers(self) -> dict[str, str]:
        merged = dict(self.default_headers)
        merged.setdefault("User-Agent", self.user_agent)
        return merged

    def to_dict(self) -> JSONDict:
        """Serialize config for logs and reproducibility (secrets omitted)."""

        return {
            "url": self.url,
            "db": self.db,
            "delay": self.delay,
            "concurrency": self.concurrency,
            "max_connections_per_host": self.max_connections_per_host,
            "handshake_timeout_seconds": self.handshake_timeout_seconds,
            "read_timeout_seconds": self.read_timeout_seconds,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
            "log_pattern": self.log_pattern,
            "error_signature": self.error_signature,
            "errors_path": self.errors_path,
            "homeserver": self.homeserver,
            "matrix": self.matrix.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, JSONValue] | Mapping[str, Any]) -> "MonitorConfig":
        matrix_payload = payload.get("matrix")
        if matrix_payload is not None and not isinstance(matrix_payload, Mapping):
            raise ConfigError(f"matrix must be a mapping, got {type(matrix_payload)!r}")

        return cls(
            url=str(payload.get("url", DEFAULT_ROOT_URL)),
            db=str(payload.get("db", DEFAULT_DB_PATH)),
            delay=parse_duration(payload.get("delay", DEFAULT_RECRAWL_INTERVAL_SECONDS)),
            concurrency=_as_int(payload.get("concurrency", DEFAULT_CONCURRENCY), "concurrency"),
            max_connections_per_host=_as_int(
                payload.get("max_connections_per_host", DEFAULT_MAX_CONNECTIONS_PER_HOST),
                "max_connections_per_host",
            ),
            handshake_timeout_seconds=float(
                _as_float(
                    payload.get("handshake_timeout_seconds", DEFAULT_HANDSHAKE_TIMEOUT_SECONDS),
                    "handshake_timeout_seconds",
                )
                or 0.0
            ),
            read_timeout_seconds=_as_float(
                payload.get("read_timeout_seconds", DEFAULT_READ_TIMEOUT_SECONDS),
                "read_timeout_seconds",
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(payload.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
            log_pattern=str(payload.get("log_pattern", DEFAULT_LOG_PATTERN)),
            error_signature=str(payload.get("error_signature", DEFAULT_ERROR_SIGNATURE)),
            errors_path=_as_optional_str(payload.get("errors_path")),
            homeserver=str(payload.get("homeserver", DEFAULT_HOMESERVER)),
            matrix=MatrixConfig.from_dict(matrix_payload),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config_payload(path: str | Path) -> dict[str, Any]:
    """Read a raw JSON/YAML config mapping without validating it."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ConfigError(f"Config at {config_path} must be a mapping")
    return payload


def load_config(path: str | Path) -> MonitorConfig:
    """Load MonitorConfig from JSON/YAML path."""

    return MonitorConfig.from_dict(load_config_payload(path))


def save_config(config: MonitorConfig, path: str | Path) -> None:
    """Save MonitorConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ConfigError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "MatrixConfig",
    "MonitorConfig",
    "load_config",
    "load_config_payload",
    "parse_duration",
    "save_config",
]
