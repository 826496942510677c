"""
In-memory owner of the five persisted collections.

A Store is created per process and passed to every component that needs
the data; nothing in the organizer keeps collections in module state.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as RecordValidationError

from models.entities import (
    COLLECTION_KEYS,
    DAILY_TABS,
    GROUPS,
    PINNED_TABS,
    RECORD_TYPES,
    SAVED_TABS,
    TIMED_TABS,
    Group,
    Tab,
    TimedTab,
)


def parse_records(key: str, raw: Any) -> Tuple[List[Any], int]:
    """
    Turn a persisted JSON array into records of the collection's type.

    Returns the parsed records and the number of malformed entries that were
    dropped. A missing or non-list value is an empty collection.
    """
    if key not in RECORD_TYPES:
        raise KeyError(key)
    if not isinstance(raw, list):
        return [], 0 if raw is None else 1

    record_type = RECORD_TYPES[key]
    records: List[Any] = []
    dropped = 0
    for item in raw:
        if isinstance(item, record_type):
            records.append(item.model_copy(deep=True))
            continue
        try:
            records.append(record_type.model_validate(item))
        except RecordValidationError:
            dropped += 1
    return records, dropped


class Store:
    """Canonical arrays of saved tabs, groups, daily, pinned and timed tabs."""

    def __init__(self):
        self.saved_tabs: List[Tab] = []
        self.groups: List[Group] = []
        self.daily_tabs: List[Tab] = []
        self.pinned_tabs: List[Tab] = []
        self.timed_tabs: List[TimedTab] = []

    _ATTRS = {
        SAVED_TABS: "saved_tabs",
        GROUPS: "groups",
        DAILY_TABS: "daily_tabs",
        PINNED_TABS: "pinned_tabs",
        TIMED_TABS: "timed_tabs",
    }

    def collection(self, key: str) -> List[Any]:
        return getattr(self, self._ATTRS[key])

    def replace(self, key: str, records: Iterable[Any]) -> None:
        setattr(self, self._ATTRS[key], list(records))

    def serialize(self, key: str) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.collection(key)]

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Full five-collection record as written to storage."""
        return {key: self.serialize(key) for key in COLLECTION_KEYS}

    def load(self, data: Dict[str, Any]) -> int:
        """Replace every collection from a storage read; returns dropped record count."""
        dropped = 0
        for key in COLLECTION_KEYS:
            records, bad = parse_records(key, data.get(key))
            self.replace(key, records)
            dropped += bad
        return dropped

    def counts(self) -> Dict[str, int]:
        return {key: len(self.collection(key)) for key in COLLECTION_KEYS}

    # ----------------- lookups -----------------
    def find_tab(self, tab_id: str) -> Optional[Tab]:
        return next((t for t in self.saved_tabs if t.id == tab_id), None)

    def find_group(self, group_id: Optional[str]) -> Optional[Group]:
        if group_id is None:
            return None
        return next((g for g in self.groups if g.id == group_id), None)

    def find_timed(self, tab_id: str) -> Optional[TimedTab]:
        return next((t for t in self.timed_tabs if t.id == tab_id), None)

    def is_daily(self, tab_id: str) -> bool:
        return any(t.id == tab_id for t in self.daily_tabs)

    def is_pinned(self, tab_id: str) -> bool:
        return any(t.id == tab_id for t in self.pinned_tabs)
