"""
Persisted records of the tab organizer.

Field names are snake_case in Python and camelCase on the wire (the
persisted layout shared with other processes), so every record is dumped
with ``by_alias=True``.
"""
from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


SAVED_TABS = "savedTabs"
GROUPS = "groups"
DAILY_TABS = "dailyTabs"
PINNED_TABS = "pinnedTabs"
TIMED_TABS = "timedTabs"
THEME = "theme"

COLLECTION_KEYS = (SAVED_TABS, GROUPS, DAILY_TABS, PINNED_TABS, TIMED_TABS)


def new_id(now_ms: Optional[int] = None) -> str:
    """Unique, roughly time-ordered identifier (millisecond prefix + random suffix)."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{uuid.uuid4().hex[:8]}"


def _coerce_id(value: Any) -> Any:
    # Ids written by older clients are numbers; keep them as opaque strings.
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Tab(Record):
    """A saved reference to a browser tab."""

    id: str
    title: str = ""
    url: str
    favicon: Optional[str] = None
    saved_at: str = Field(default="", alias="savedAt")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    reminder: Optional[str] = None
    has_time: bool = Field(default=False, alias="hasTime")

    @field_validator("id", "group_id", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("has_time", mode="before")
    @classmethod
    def _has_time(cls, value: Any) -> Any:
        return bool(value)

    def snapshot(self) -> Tab:
        """Plain Tab copy, used for the daily and pinned collections."""
        return Tab(**_tab_fields(self))


def _tab_fields(tab: Tab) -> Dict[str, Any]:
    return {name: getattr(tab, name) for name in Tab.model_fields}


class Group(Record):
    """A node of the group forest; ``parent_id`` None means a root."""

    id: str
    name: str
    expanded: bool = True
    parent_id: Optional[str] = Field(default=None, alias="parentId")

    @field_validator("id", "parent_id", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _coerce_id(value)


class TimedTab(Tab):
    """A tab snapshot with a countdown timer."""

    timer_end: int = Field(alias="timerEnd")
    timer_duration: int = Field(default=0, alias="timerDuration")
    notified: bool = False

    @field_validator("timer_end", "timer_duration", mode="before")
    @classmethod
    def _millis(cls, value: Any) -> Any:
        if isinstance(value, float):
            return int(value)
        return value

    @classmethod
    def from_tab(cls, tab: Tab, timer_end: int, timer_duration: int) -> TimedTab:
        return cls(
            **_tab_fields(tab),
            timer_end=timer_end,
            timer_duration=timer_duration,
        )

    def is_armed(self, now_ms: int) -> bool:
        return not self.notified and self.timer_end > now_ms

    def is_due(self, now_ms: int) -> bool:
        return self.timer_end <= now_ms


RECORD_TYPES = {
    SAVED_TABS: Tab,
    GROUPS: Group,
    DAILY_TABS: Tab,
    PINNED_TABS: Tab,
    TIMED_TABS: TimedTab,
}
