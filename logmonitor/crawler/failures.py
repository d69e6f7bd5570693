"""Per-URL failure records: logged, kept in memory, optionally appended to JSONL."""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from pathlib import Path

from .types import ErrorRecord


logger = logging.getLogger(__name__)

DEFAULT_MAX_RECENT = 1000


class FailureLog:
    """Collect failures reported by crawl tasks without stopping the crawl."""

    def __init__(self, path: str | Path | None = None, *, max_recent: int = DEFAULT_MAX_RECENT) -> None:
        self.path = Path(path) if path else None
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._recent: deque[ErrorRecord] = deque(maxlen=max_recent)

    def record(self, error: ErrorRecord) -> None:
        logger.warning(
            "%s failed for %s: %s%s",
            error.stage.value,
            error.url,
            f"{error.error_type}: " if error.error_type else "",
            error.message,
        )

        line = json.dumps(error.to_json(), ensure_ascii=False, sort_keys=True)
        with self._lock:
            self._recent.append(error)
            if self.path is not None:
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")

    def recent(self) -> list[ErrorRecord]:
        with self._lock:
            return list(self._recent)

    def __len__(self) -> int:
        with self._lock:
            return len(self._recent)


__all__ = ["FailureLog"]
