"""
Reminder categorization for the Due Soon view.

A reminder is the ``reminder``/``has_time`` pair on a saved tab. Buckets are
computed on demand from the current time and local day boundaries:

    overdue   reminder < now
    today     reminder < start of tomorrow
    tomorrow  reminder < start of the day after tomorrow
    thisWeek  reminder < start of today + 7 days
    later     everything else

Boundaries are half-open, so midnight belongs to the day it starts.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple, Union

from error_handling import ValidationError
from models.entities import Tab
from utils.time_utils import parse_iso, to_iso
from utils.url_utils import filter_tabs

OVERDUE = "overdue"
TODAY = "today"
TOMORROW = "tomorrow"
THIS_WEEK = "thisWeek"
LATER = "later"

CATEGORIES = (OVERDUE, TODAY, TOMORROW, THIS_WEEK, LATER)

CATEGORY_TITLES = {
    OVERDUE: "Overdue",
    TODAY: "Today",
    TOMORROW: "Tomorrow",
    THIS_WEEK: "This Week",
    LATER: "Later",
}


def _local_midnight(day: date, tz: Optional[tzinfo]) -> datetime:
    midnight = datetime.combine(day, time.min, tzinfo=tz)
    return _as_utc(midnight)


def _as_utc(moment: datetime) -> datetime:
    # same-zone datetimes compare by wall time and ignore fold
    return moment.astimezone(timezone.utc) if moment.tzinfo is not None else moment


@dataclass(frozen=True)
class DayBoundaries:
    """Category edges derived from one reading of the clock."""

    now: datetime
    start_of_today: datetime
    start_of_tomorrow: datetime
    start_of_day_after_tomorrow: datetime
    end_of_week: datetime

    @classmethod
    def from_now(cls, now: datetime) -> DayBoundaries:
        # Calendar arithmetic on dates keeps every edge at local midnight across DST changes.
        today = now.date()
        return cls(
            now=_as_utc(now),
            start_of_today=_local_midnight(today, now.tzinfo),
            start_of_tomorrow=_local_midnight(today + timedelta(days=1), now.tzinfo),
            start_of_day_after_tomorrow=_local_midnight(today + timedelta(days=2), now.tzinfo),
            end_of_week=_local_midnight(today + timedelta(days=7), now.tzinfo),
        )

    def categorize(self, reminder: datetime) -> str:
        if self.now.tzinfo is not None:
            reminder = _as_utc(reminder)
        if reminder < self.now:
            return OVERDUE
        if reminder < self.start_of_tomorrow:
            return TODAY
        if reminder < self.start_of_day_after_tomorrow:
            return TOMORROW
        if reminder < self.end_of_week:
            return THIS_WEEK
        return LATER


def categorize(reminder: datetime, now: datetime) -> str:
    """Bucket of a single reminder at ``now``."""
    return DayBoundaries.from_now(now).categorize(reminder)


def reminder_datetime(tab: Tab) -> Optional[datetime]:
    return parse_iso(tab.reminder) if tab.reminder else None


def due_soon(tabs: Iterable[Tab], now: datetime, query: str = "") -> Dict[str, List[Tab]]:
    """
    Saved tabs with a reminder, split into the five buckets.

    Every bucket is present (possibly empty) and sorted by reminder time,
    earliest first. Tabs whose reminder cannot be parsed are left out.
    """
    boundaries = DayBoundaries.from_now(now)
    buckets: Dict[str, List[Tuple[datetime, Tab]]] = {category: [] for category in CATEGORIES}

    for tab in filter_tabs((t for t in tabs if t.reminder), query):
        when = reminder_datetime(tab)
        if when is None:
            continue
        buckets[boundaries.categorize(when)].append((when, tab))

    return {
        category: [tab for _, tab in sorted(entries, key=lambda entry: entry[0])]
        for category, entries in buckets.items()
    }


# ----------------- input -----------------
def _parse_date(value: Union[str, date, None]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid reminder date: {value}", operation="set_reminder")


def _parse_time(value: Union[str, time, None]) -> Optional[time]:
    if isinstance(value, time):
        return value
    if not value or not str(value).strip():
        return None
    text = str(value).strip()
    try:
        hours, minutes = text.split(":")[:2]
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValidationError(f"Invalid reminder time: {value}", operation="set_reminder")


def build_reminder(date_value: Union[str, date, None], time_value: Union[str, time, None],
                   tz: Optional[tzinfo]) -> Tuple[str, bool]:
    """
    Persisted reminder timestamp and ``has_time`` flag from form input.

    Without a time the reminder is local midnight of that day (an all-day
    reminder).

    Raises:
        ValidationError: the date is missing or malformed
    """
    day = _parse_date(date_value)
    if day is None:
        raise ValidationError("A reminder date is required", operation="set_reminder")
    clock_time = _parse_time(time_value)
    when = datetime.combine(day, clock_time or time.min, tzinfo=tz)
    return to_iso(when), clock_time is not None


def reminder_form_defaults(tab: Optional[Tab], now: datetime) -> Tuple[str, str]:
    """Date and time strings to pre-fill the reminder form with."""
    when = reminder_datetime(tab) if tab is not None else None
    if when is None:
        return (now.date() + timedelta(days=1)).isoformat(), ""
    local = when.astimezone(now.tzinfo) if now.tzinfo is not None else when
    return local.date().isoformat(), local.strftime("%H:%M") if tab.has_time else ""


# ----------------- display -----------------
def _month_day(moment: datetime) -> str:
    return f"{moment.strftime('%b')} {moment.day}"


def reminder_label(tab: Tab, category: str, tz: Optional[tzinfo] = None) -> str:
    """Short text shown next to a Due Soon entry."""
    when = reminder_datetime(tab)
    if when is None:
        return ""
    if tz is not None:
        when = when.astimezone(tz)

    if tab.has_time:
        clock = when.strftime("%H:%M")
        if category in (TODAY, TOMORROW):
            return clock
        if category == THIS_WEEK:
            return f"{when.strftime('%a')} {clock}"
        return f"{_month_day(when)} {clock}"

    if category in (TODAY, TOMORROW):
        return "All day"
    if category == THIS_WEEK:
        return when.strftime("%A")
    return _month_day(when)
