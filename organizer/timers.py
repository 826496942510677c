"""
Countdown timers for saved tabs.

A tab's timer is absent, armed or expired. Expiry can be observed by two
independent schedulers, a foreground tick calling check_expirations() and the
host alarm calling handle_alarm(). Both funnel into _expire(), which flips
``notified`` exactly once, so a timer produces at most one notification.
"""
from __future__ import annotations

from typing import Any, List, Optional

from error_handling import NotFoundError, ValidationError
from models.entities import Tab, TimedTab
from organizer.alarms import AlarmScheduler
from organizer.notifications import Notifier
from organizer.store import Store
from organizer_config import OrganizerConfig
from utils.event_logger import EventLogger, get_event_logger
from utils.time_utils import Clock, to_ms

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS

NOTIFICATION_PREFIXES = ("timer-notification-", "timer-sidepanel-")


def _as_count(value: Any) -> int:
    """Form input to a non-negative whole number (blank or garbage is 0)."""
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(number, 0)


def duration_ms(hours: Any, minutes: Any) -> int:
    return (_as_count(hours) * 60 + _as_count(minutes)) * MINUTE_MS


def format_countdown(remaining_ms: int) -> str:
    """
    Remaining time as ``Xh Ym Zs`` starting from the most significant
    non-zero unit; ``Time up!`` once nothing is left.
    """
    if remaining_ms <= 0:
        return "Time up!"
    hours = remaining_ms // HOUR_MS
    minutes = (remaining_ms % HOUR_MS) // MINUTE_MS
    seconds = (remaining_ms % MINUTE_MS) // SECOND_MS
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def notification_tab_id(notification_id: str) -> Optional[str]:
    for prefix in NOTIFICATION_PREFIXES:
        if notification_id.startswith(prefix):
            return notification_id[len(prefix):]
    return None


class TimerScheduler:
    """Arms, cancels and expires TimedTab entries in ``store.timed_tabs``."""

    def __init__(
        self,
        store: Store,
        alarms: AlarmScheduler,
        notifier: Notifier,
        clock: Clock,
        config: Optional[OrganizerConfig] = None,
        logger: Optional[EventLogger] = None,
    ):
        self.store = store
        self.alarms = alarms
        self.notifier = notifier
        self.clock = clock
        self.config = config or OrganizerConfig()
        self.logger = logger or get_event_logger()

    # ----------------- naming -----------------
    def alarm_name(self, tab_id: str) -> str:
        return f"{self.config.scheduling.alarm_prefix}{tab_id}"

    def tab_id_from_alarm(self, name: str) -> Optional[str]:
        prefix = self.config.scheduling.alarm_prefix
        if not name.startswith(prefix):
            return None
        return name[len(prefix):] or None

    def now_ms(self) -> int:
        return to_ms(self.clock())

    # ----------------- lifecycle -----------------
    def arm(self, tab: Tab, hours: Any, minutes: Any) -> TimedTab:
        """
        Start (or restart) the countdown for ``tab``.

        Raises:
            ValidationError: the duration is zero
        """
        span = duration_ms(hours, minutes)
        if span <= 0:
            raise ValidationError("Timer duration must be greater than zero",
                                  operation="set_timer", entity_id=tab.id)

        timer_end = self.now_ms() + span
        timed = TimedTab.from_tab(tab, timer_end=timer_end, timer_duration=span)

        # Re-arming replaces the previous timer for this tab.
        self.store.timed_tabs = [t for t in self.store.timed_tabs if t.id != tab.id]
        self.store.timed_tabs.append(timed)
        self.alarms.schedule(self.alarm_name(tab.id), timer_end)

        self.logger.timer_armed(tab.id, span, timer_end)
        return timed

    def remove(self, tab_id: str) -> bool:
        """Drop the timer and cancel its alarm; True if a timer existed."""
        existed = self.store.find_timed(tab_id) is not None
        self.store.timed_tabs = [t for t in self.store.timed_tabs if t.id != tab_id]
        self.alarms.cancel(self.alarm_name(tab_id))
        if existed:
            self.logger.timer_removed(tab_id)
        return existed

    def check_expirations(self, now_ms: Optional[int] = None) -> List[TimedTab]:
        """Expire every timer whose end has passed; returns the ones newly notified."""
        if now_ms is None:
            now_ms = self.now_ms()
        expired = []
        for timed in list(self.store.timed_tabs):
            if timed.is_due(now_ms) and self._expire(timed, "tick"):
                expired.append(timed)
        return expired

    def handle_alarm(self, name: str) -> Optional[TimedTab]:
        """
        Expiry signal from the host scheduler.

        Alarms for other features, or for timers that were removed after the
        alarm was scheduled, are ignored.
        """
        tab_id = self.tab_id_from_alarm(name)
        if tab_id is None:
            return None
        timed = self.store.find_timed(tab_id)
        if timed is None:
            self.logger.system_debug(f"Alarm {name} has no timer; ignoring")
            return None
        if self._expire(timed, "alarm"):
            return timed
        return None

    def _expire(self, timed: TimedTab, source: str) -> bool:
        if timed.notified:
            return False
        timed.notified = True
        self.logger.timer_expired(timed.id, source)

        notifications = self.config.notifications
        self.notifier.notify(
            f"{NOTIFICATION_PREFIXES[0]}{timed.id}",
            notifications.timer_title,
            timed.title or notifications.timer_fallback_message,
        )
        return True

    # ----------------- queries -----------------
    def get(self, tab_id: str) -> TimedTab:
        timed = self.store.find_timed(tab_id)
        if timed is None:
            raise NotFoundError(f"No timer for tab: {tab_id}", entity_id=tab_id)
        return timed

    def sorted_timers(self) -> List[TimedTab]:
        return sorted(self.store.timed_tabs, key=lambda t: t.timer_end)

    def remaining_ms(self, timed: TimedTab, now_ms: Optional[int] = None) -> int:
        if now_ms is None:
            now_ms = self.now_ms()
        return timed.timer_end - now_ms

    def countdown_text(self, timed: TimedTab, now_ms: Optional[int] = None) -> str:
        return format_countdown(self.remaining_ms(timed, now_ms))
