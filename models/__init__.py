"""
Data models for the tab organizer.
"""
from .entities import (
    COLLECTION_KEYS,
    DAILY_TABS,
    GROUPS,
    PINNED_TABS,
    RECORD_TYPES,
    SAVED_TABS,
    THEME,
    TIMED_TABS,
    Group,
    Tab,
    TimedTab,
    new_id,
)

__all__ = [
    "COLLECTION_KEYS",
    "DAILY_TABS",
    "GROUPS",
    "PINNED_TABS",
    "RECORD_TYPES",
    "SAVED_TABS",
    "THEME",
    "TIMED_TABS",
    "Group",
    "Tab",
    "TimedTab",
    "new_id",
]
