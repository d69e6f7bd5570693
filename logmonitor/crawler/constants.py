"""Default values shared by config, fetcher, and dispatcher."""

from __future__ import annotations

DEFAULT_ROOT_URL = "https://nixpkgs-update-logs.nix-community.org"
DEFAULT_DB_PATH = "data.db"
DEFAULT_HOMESERVER = "matrix.org"

DEFAULT_RECRAWL_INTERVAL_SECONDS = 24 * 60 * 60.0
DEFAULT_CONCURRENCY = 8
DEFAULT_MAX_CONNECTIONS_PER_HOST = 5
DEFAULT_HANDSHAKE_TIMEOUT_SECONDS = 30.0
DEFAULT_READ_TIMEOUT_SECONDS: float | None = None

DEFAULT_USER_AGENT = "logmonitor/0.1 (+https://github.com/nix-community)"
DEFAULT_HTTP_HEADERS = {
    "Accept": "text/html,text/plain;q=0.9,*/*;q=0.8",
}

DEFAULT_LOG_PATTERN = r"\.log$"
DEFAULT_ERROR_SIGNATURE = "error"
LOG_SUFFIX = ".log"

PARENT_DIRECTORY_HREF = "../"

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
