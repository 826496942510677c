"""
Duplicate detection by normalized URL.

Deduplication suppresses identities on insert; it is not a standing
constraint. Once two entries diverge they are independent, and nothing
re-scans collections in the background.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Optional

from .tab_info import LiveTab
from utils.url_utils import is_internal_url, normalize_url


def is_duplicate(candidate_url: str, collection: Iterable[Any]) -> bool:
    """True if any item of ``collection`` has the same normalized URL."""
    key = normalize_url(candidate_url)
    return any(normalize_url(item.url) == key for item in collection)


def find_existing(url: str, open_tabs: Iterable[LiveTab], exclude_id: Any = None) -> Optional[LiveTab]:
    """First open tab showing the same page as ``url`` (ignoring ``exclude_id``)."""
    key = normalize_url(url)
    for tab in open_tabs:
        if exclude_id is not None and tab.id == exclude_id:
            continue
        if normalize_url(tab.url) == key:
            return tab
    return None


def find_duplicates(tab: LiveTab, open_tabs: Iterable[LiveTab]) -> List[LiveTab]:
    """Other open tabs showing the same page as ``tab``; internal pages never match."""
    if is_internal_url(tab.url):
        return []
    key = normalize_url(tab.url)
    return [t for t in open_tabs if t.id != tab.id and normalize_url(t.url) == key]
