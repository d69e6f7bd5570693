"""URL joining, directory-listing link extraction, and log URL parsing."""

from __future__ import annotations

import posixpath
import re
from typing import Iterator, Pattern, Sequence
from urllib.parse import unquote, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from .constants import DEFAULT_LOG_PATTERN, LOG_SUFFIX, PARENT_DIRECTORY_HREF
from .errors import InvalidLogURLError
from .types import LogRef


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("#", "?", "javascript:", "mailto:", "tel:", "data:")

_DEFAULT_PORTS = {"http": 80, "https": 443}


def is_http_url(url: str, *, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> bool:
    """Return True for absolute URLs with an allowed scheme and a host."""

    if not url:
        return False
    parsed = urlsplit(url.strip())
    return parsed.scheme.lower() in allowed_schemes and bool(parsed.netloc)


def normalize_url(
    url: str,
    *,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Canonicalize an absolute URL for frontier dedup.

    Lowercases scheme and host, drops default ports and fragments. The path is
    kept byte-for-byte since listing entries are case-sensitive and a trailing
    slash marks a directory. Returns `None` for invalid or non-http URLs.
    """

    if not url or not url.strip():
        return None

    parsed = urlsplit(url.strip())
    scheme = parsed.scheme.lower()
    if scheme not in allowed_schemes or not parsed.netloc:
        return None

    try:
        port = parsed.port
    except ValueError:
        return None

    host = (parsed.hostname or "").lower()
    if not host:
        return None

    netloc = host
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"
    if parsed.username:
        userinfo = parsed.username
        if parsed.password:
            userinfo = f"{userinfo}:{parsed.password}"
        netloc = f"{userinfo}@{netloc}"

    return urlunsplit((scheme, netloc, parsed.path or "/", parsed.query, ""))


def join_url(base_url: str, href: str) -> str | None:
    """Resolve `href` against `base_url` by joining paths.

    Relative hrefs are appended to the base path (even when the base lacks a
    trailing slash) and `.`/`..` segments are cleaned; a trailing slash on the
    href is preserved. Absolute http(s) hrefs are returned unchanged apart
    from their fragment. Returns `None` for hrefs that do not point at a
    crawlable resource.
    """

    candidate = (href or "").strip()
    if not candidate:
        return None

    lowered = candidate.lower()
    if any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES):
        return None

    parts = urlsplit(candidate)
    if parts.scheme or parts.netloc:
        if not is_http_url(candidate):
            return None
        return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))

    base = urlsplit(base_url)
    if not base.scheme or not base.netloc:
        return None

    joined = (base.path or "/").rstrip("/") + "/" + parts.path.lstrip("/")
    path = posixpath.normpath(joined)
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    if parts.path.endswith("/") and not path.endswith("/"):
        path += "/"

    return urlunsplit((base.scheme, base.netloc, path, parts.query, ""))


def iter_links(html: str | bytes, base_url: str) -> Iterator[str]:
    """Yield absolute link targets of `<a href>` elements in document order.

    The parent-directory entry (`../`) of directory listings is skipped so a
    crawl never climbs above the listing it started from. Broken markup is
    tolerated: whatever the parser recovers is yielded.
    """

    soup = BeautifulSoup(html, "lxml")
    for element in soup.find_all("a"):
        href = element.get("href")
        if not href or href == PARENT_DIRECTORY_HREF:
            continue

        resolved = join_url(base_url, href)
        if resolved:
            yield resolved


def compile_log_pattern(pattern: str | Pattern[str] = DEFAULT_LOG_PATTERN) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def is_log_url(url: str, pattern: str | Pattern[str] = DEFAULT_LOG_PATTERN) -> bool:
    """Return True when the URL path names a terminal log file."""

    path = urlsplit(url).path
    return compile_log_pattern(pattern).search(path) is not None


def parse_log_url(url: str) -> LogRef:
    """Split `<root>/.../<package>/<date>.log` into package and date."""

    segments = [segment for segment in urlsplit(url).path.split("/") if segment]
    if len(segments) < 2:
        raise InvalidLogURLError(f"log URL needs <package>/<date>{LOG_SUFFIX} segments: {url}")

    package = unquote(segments[-2])
    filename = unquote(segments[-1])
    date = filename[: -len(LOG_SUFFIX)] if filename.endswith(LOG_SUFFIX) else filename
    if not package.strip() or not date.strip():
        raise InvalidLogURLError(f"empty package or date in log URL: {url}")

    return LogRef(package=package, date=date, url=url)


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_HREF_PREFIXES",
    "compile_log_pattern",
    "is_http_url",
    "is_log_url",
    "iter_links",
    "join_url",
    "normalize_url",
    "parse_log_url",
]
