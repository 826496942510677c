"""
Unit tests for reminder input handling and Due Soon categorization.

The clock fixture reads Monday 2025-03-10 12:00 UTC.
"""
import time
from datetime import datetime, timedelta, timezone

import pytest

from error_handling import ValidationError
from models.entities import Tab
from organizer import reminders
from organizer.reminders import (
    CATEGORIES,
    LATER,
    OVERDUE,
    THIS_WEEK,
    TODAY,
    TOMORROW,
    build_reminder,
    categorize,
    due_soon,
    reminder_form_defaults,
    reminder_label,
)
from utils.time_utils import LOCAL_TZ, parse_iso, system_clock, to_ms

UTC = timezone.utc
NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def _at(*args):
    return datetime(*args, tzinfo=UTC)


def _tab(tab_id, reminder, has_time=True, title=""):
    return Tab(id=tab_id, title=title, url=f"https://{tab_id}.com", reminder=reminder, has_time=has_time)


class TestCategorize:
    """Half-open day boundaries"""

    @pytest.mark.parametrize("when, category", [
        (_at(2025, 3, 10, 11, 59), OVERDUE),
        (_at(2025, 3, 1, 0, 0), OVERDUE),
        (_at(2025, 3, 10, 12, 0), TODAY),
        (_at(2025, 3, 10, 23, 59, 59, 999000), TODAY),
        (_at(2025, 3, 11, 0, 0), TOMORROW),
        (_at(2025, 3, 11, 23, 59), TOMORROW),
        (_at(2025, 3, 12, 0, 0), THIS_WEEK),
        (_at(2025, 3, 16, 23, 59, 59, 999000), THIS_WEEK),
        (_at(2025, 3, 17, 0, 0), LATER),
        (_at(2026, 1, 1, 0, 0), LATER),
    ])
    def test_boundaries(self, when, category):
        assert categorize(when, NOW) == category

    def test_all_day_reminder_for_today_is_overdue_after_midnight(self):
        assert categorize(_at(2025, 3, 10, 0, 0), NOW) == OVERDUE

    def test_boundaries_follow_local_day(self):
        """Test that day edges are local midnight, not UTC midnight"""
        local = timezone(timedelta(hours=-5))
        now = datetime(2025, 3, 10, 20, 0, tzinfo=local)  # 01:00 UTC on the 11th
        assert categorize(_at(2025, 3, 11, 4, 59), now) == TODAY
        assert categorize(_at(2025, 3, 11, 5, 0), now) == TOMORROW


class TestDueSoon:

    def test_every_bucket_present_and_sorted(self):
        tabs = [
            _tab("late", "2025-03-20T09:00:00.000Z"),
            _tab("soon", "2025-03-10T15:00:00.000Z"),
            _tab("sooner", "2025-03-10T13:00:00.000Z"),
            _tab("none", None),
            _tab("past", "2025-03-09T09:00:00.000Z"),
            _tab("broken", "not-a-date"),
        ]
        buckets = due_soon(tabs, NOW)
        assert set(buckets) == set(CATEGORIES)
        assert [t.id for t in buckets[TODAY]] == ["sooner", "soon"]
        assert [t.id for t in buckets[OVERDUE]] == ["past"]
        assert [t.id for t in buckets[LATER]] == ["late"]
        assert buckets[TOMORROW] == []
        assert buckets[THIS_WEEK] == []

    def test_query_filters_buckets(self):
        tabs = [
            _tab("a", "2025-03-10T15:00:00.000Z", title="Dentist"),
            _tab("b", "2025-03-10T16:00:00.000Z", title="Taxes"),
        ]
        assert [t.id for t in due_soon(tabs, NOW, "dent")[TODAY]] == ["a"]


class TestBuildReminder:

    def test_date_and_time(self):
        assert build_reminder("2025-03-12", "09:30", UTC) == ("2025-03-12T09:30:00.000Z", True)

    def test_date_only_is_local_midnight(self):
        local = timezone(timedelta(hours=-5))
        assert build_reminder("2025-03-12", "", local) == ("2025-03-12T05:00:00.000Z", False)

    @pytest.mark.parametrize("date_value, time_value", [
        ("", "09:00"),
        (None, None),
        ("2025-13-01", None),
        ("2025-03-12", "25:00"),
        ("2025-03-12", "noon"),
    ])
    def test_invalid_input(self, date_value, time_value):
        with pytest.raises(ValidationError):
            build_reminder(date_value, time_value, UTC)


class TestLabels:

    def test_timed_labels(self):
        assert reminder_label(_tab("a", "2025-03-10T15:05:00.000Z"), TODAY, UTC) == "15:05"
        assert reminder_label(_tab("a", "2025-03-12T09:30:00.000Z"), THIS_WEEK, UTC) == "Wed 09:30"
        assert reminder_label(_tab("a", "2025-03-20T09:30:00.000Z"), LATER, UTC) == "Mar 20 09:30"

    def test_all_day_labels(self):
        assert reminder_label(_tab("a", "2025-03-11T00:00:00.000Z", False), TOMORROW, UTC) == "All day"
        assert reminder_label(_tab("a", "2025-03-12T00:00:00.000Z", False), THIS_WEEK, UTC) == "Wednesday"
        assert reminder_label(_tab("a", "2025-04-02T00:00:00.000Z", False), LATER, UTC) == "Apr 2"

    def test_no_reminder(self):
        assert reminder_label(_tab("a", None), TODAY, UTC) == ""


class TestFormDefaults:

    def test_new_reminder_defaults_to_tomorrow(self):
        assert reminder_form_defaults(None, NOW) == ("2025-03-11", "")

    def test_existing_reminder_is_prefilled(self):
        tab = _tab("a", "2025-03-12T09:30:00.000Z")
        assert reminder_form_defaults(tab, NOW) == ("2025-03-12", "09:30")
        all_day = _tab("b", "2025-03-12T00:00:00.000Z", False)
        assert reminder_form_defaults(all_day, NOW) == ("2025-03-12", "")

    def test_category_titles(self):
        assert reminders.CATEGORY_TITLES[THIS_WEEK] == "This Week"


@pytest.fixture
def eastern_host(monkeypatch):
    """Host zone switched to US Eastern (EDT until 2026-11-01 02:00, then EST)"""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "EST5EDT,M3.2.0,M11.1.0")
    time.tzset()
    yield LOCAL_TZ
    monkeypatch.undo()
    time.tzset()


class TestHostZoneAcrossDst:

    def test_offset_follows_the_date(self, eastern_host):
        assert eastern_host.utcoffset(datetime(2026, 7, 1, 12, 0)) == timedelta(hours=-4)
        assert eastern_host.utcoffset(datetime(2026, 11, 5, 23, 30)) == timedelta(hours=-5)

    def test_clock_readings_use_the_current_offset(self, eastern_host):
        """Test that instants on both sides of the change get their own offset"""
        summer = datetime.fromtimestamp(to_ms(_at(2026, 7, 1, 16, 0)) / 1000, eastern_host)
        winter = datetime.fromtimestamp(to_ms(_at(2026, 11, 6, 4, 30)) / 1000, eastern_host)
        assert (summer.hour, summer.utcoffset()) == (12, timedelta(hours=-4))
        assert (winter.day, winter.hour, winter.utcoffset()) == (5, 23, timedelta(hours=-5))
        assert system_clock()().tzinfo is eastern_host

    def test_repeated_hour_is_told_apart_by_fold(self, eastern_host):
        first = datetime.fromtimestamp(to_ms(_at(2026, 11, 1, 5, 30)) / 1000, eastern_host)
        second = datetime.fromtimestamp(to_ms(_at(2026, 11, 1, 6, 30)) / 1000, eastern_host)
        assert (first.hour, first.fold) == (1, 0)
        assert (second.hour, second.fold) == (1, 1)
        assert to_ms(second) - to_ms(first) == 3_600_000

    def test_reminder_after_midnight_is_tomorrow_after_dst_ends(self, eastern_host):
        now = datetime(2026, 11, 5, 23, 30, tzinfo=eastern_host)
        stored, _ = build_reminder("2026-11-06", "00:30", eastern_host)
        assert stored == "2026-11-06T05:30:00.000Z"
        assert categorize(parse_iso(stored), now) == TOMORROW

    def test_day_edges_on_the_transition_day(self, eastern_host):
        """Test that today starts at EDT midnight and ends at EST midnight"""
        now = datetime(2026, 11, 1, 0, 10, tzinfo=eastern_host)
        assert categorize(_at(2026, 11, 1, 4, 30), now) == TODAY
        assert categorize(_at(2026, 11, 2, 4, 30), now) == TODAY
        assert categorize(_at(2026, 11, 2, 5, 0), now) == TOMORROW

    def test_reminder_set_before_the_change_for_a_day_after_it(self, eastern_host):
        stored, _ = build_reminder("2026-12-01", "09:00", eastern_host)
        assert stored == "2026-12-01T14:00:00.000Z"
