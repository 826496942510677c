"""
URL helpers shared by the organizer and the background worker.

normalize_url() is the identity key for saved tabs and live tabs: two URLs
are "the same page" when their normalized forms are equal.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, TypeVar
from urllib.parse import urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

T = TypeVar("T")


def _origin(scheme: str, hostname: str, port: Optional[int]) -> str:
    host = hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    origin = f"{scheme}://{host}"
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        origin += f":{port}"
    return origin


def normalize_url(url: str) -> str:
    """
    Canonical form of a URL for duplicate detection.

    Keeps origin + path (one trailing slash stripped) + query string and drops
    the fragment, so ``https://x.com/a/``, ``https://x.com/a#top`` and
    ``https://x.com/a`` collapse to one key while ``?x=1`` and ``?x=2`` stay
    distinct. URLs without a host (``file:///tmp/a/``) get the same path
    and fragment treatment. Anything without a scheme, or that does not
    parse, is returned unchanged.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    if not parts.scheme:
        return url

    path = parts.path or "/"
    if path.endswith("/"):
        path = path[:-1]
    if not parts.hostname:
        return urlunsplit((parts.scheme.lower(), parts.netloc, path, parts.query, ""))
    search = f"?{parts.query}" if parts.query else ""
    return _origin(parts.scheme.lower(), parts.hostname, port) + path + search


def same_page(a: str, b: str) -> bool:
    return normalize_url(a) == normalize_url(b)


def get_hostname(url: Optional[str]) -> str:
    """Hostname of a URL; the input itself if it does not parse, '' for empty input."""
    if not url:
        return ""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return url
    return hostname or url


def is_internal_url(url: Optional[str]) -> bool:
    """Browser-internal pages are never deduplicated or protected."""
    if not url:
        return True
    return url.startswith(("chrome://", "about:", "edge://", "chrome-extension://"))


def filter_tabs(tabs: Iterable[T], query: Optional[str]) -> List[T]:
    """Case-insensitive match of ``query`` against title and URL; empty query keeps all."""
    items = list(tabs)
    if not query:
        return items
    needle = query.lower()
    return [
        tab for tab in items
        if needle in (getattr(tab, "title", "") or "").lower()
        or needle in (getattr(tab, "url", "") or "").lower()
    ]
