"""
Event log for the tab organizer.

Every component reports what it did as a typed OrganizerEvent. Events are
kept in a bounded in-memory history (tests and the side panel read it back),
fanned out to registered callbacks, and echoed to the console with rich
when debug mode is on. Logging must never take an operation down with it,
so delivery failures are contained here.
"""
from collections import deque
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional
import time

from rich import print as rprint
from rich.markup import escape


class EventType(str, Enum):
    """Kinds of organizer events"""
    # Saved tab events
    TAB_SAVED = "tab_saved"
    TAB_DUPLICATE = "tab_duplicate"
    TAB_DELETED = "tab_deleted"
    TAB_MOVED = "tab_moved"
    TAB_OPENED = "tab_opened"
    TAB_FOCUSED = "tab_focused"
    COLLECTION_CHANGED = "collection_changed"

    # Group events
    GROUP_CREATED = "group_created"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"
    GROUP_MOVED = "group_moved"
    CYCLE_REJECTED = "cycle_rejected"

    # Scheduling events
    TIMER_ARMED = "timer_armed"
    TIMER_EXPIRED = "timer_expired"
    TIMER_REMOVED = "timer_removed"
    NOTIFICATION_SENT = "notification_sent"
    REMINDER_SET = "reminder_set"
    REMINDER_REMOVED = "reminder_removed"

    # Storage / sync events
    STORAGE_LOADED = "storage_loaded"
    STORAGE_PERSISTED = "storage_persisted"
    STORAGE_WARNING = "storage_warning"
    REMOTE_DELTA_APPLIED = "remote_delta_applied"
    REMOTE_DELTA_IGNORED = "remote_delta_ignored"

    # Background events
    PINNED_TAB_REOPENED = "pinned_tab_reopened"
    PINNED_CLOSE_CONFIRMED = "pinned_close_confirmed"
    LIVE_DUPLICATE_CLOSED = "live_duplicate_closed"

    # Catch-all
    SYSTEM_INFO = "system_info"
    SYSTEM_WARNING = "system_warning"
    SYSTEM_ERROR = "system_error"
    SYSTEM_DEBUG = "system_debug"


LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "cyan",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "bold red",
}

EventCallback = Callable[["OrganizerEvent"], None]


@dataclass
class OrganizerEvent:
    event_type: EventType
    message: str
    level: str = "INFO"
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        when = datetime.fromtimestamp(self.created_at, tz=timezone.utc)
        return {
            "event_type": self.event_type.value,
            "level": self.level,
            "message": self.message,
            "created_at": when.isoformat(),
            "details": dict(self.details),
        }

    def render(self) -> List[str]:
        """Rich markup lines for the console: the message, then scalar details."""
        style = LEVEL_STYLES.get(self.level, "white")
        lines = [f"[{style}]{self.level:<7}[/{style}] {escape(self.message)}"]
        for key, value in self.details.items():
            if isinstance(value, (str, int, float, bool)):
                lines.append(f"   [dim]{key}:[/dim] {escape(str(value))}")
        return lines


class EventLogger:
    """
    Records organizer events and forwards them to callbacks.

    debug_mode additionally prints each event to the console.
    """

    def __init__(self, debug_mode: bool = False, max_history: int = 1000):
        self.debug_mode = debug_mode
        self._callbacks: List[EventCallback] = []
        self._history: Deque[OrganizerEvent] = deque(maxlen=max_history)

    def register_callback(self, callback: EventCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: EventCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def events(self, event_type: Optional[EventType] = None) -> List[OrganizerEvent]:
        """Recorded events, optionally filtered by type"""
        return [e for e in self._history if event_type is None or e.event_type == event_type]

    def clear(self) -> None:
        self._history.clear()

    def emit(self, event_type: EventType, message: str, level: str = "INFO", **details) -> None:
        event = OrganizerEvent(event_type=event_type, message=message, level=level, details=details)
        self._history.append(event)

        if self.debug_mode:
            with suppress(Exception):
                for line in event.render():
                    rprint(line)

        for callback in list(self._callbacks):
            with suppress(Exception):
                callback(event)

    # Convenience methods
    def tab_saved(self, tab_id: str, url: str, **details):
        self.emit(EventType.TAB_SAVED, f"Saved tab: {url}", "SUCCESS", tab_id=tab_id, url=url, **details)

    def tab_duplicate(self, url: str, **details):
        self.emit(EventType.TAB_DUPLICATE, f"Tab already saved, skipping: {url}", "DEBUG", url=url, **details)

    def tab_deleted(self, tab_id: str, **details):
        self.emit(EventType.TAB_DELETED, f"Deleted tab: {tab_id}", "INFO", tab_id=tab_id, **details)

    def tab_moved(self, tab_id: str, group_id: Optional[str], **details):
        target = group_id or "ungrouped"
        self.emit(EventType.TAB_MOVED, f"Moved tab {tab_id} to {target}", "INFO",
                  tab_id=tab_id, group_id=group_id, **details)

    def tab_opened(self, url: str, new_tab: bool, **details):
        how = "new tab" if new_tab else "current tab"
        self.emit(EventType.TAB_OPENED, f"Opened {url} in {how}", "INFO", url=url, new_tab=new_tab, **details)

    def tab_focused(self, live_tab_id: Any, url: str, **details):
        self.emit(EventType.TAB_FOCUSED, f"Focused existing tab {live_tab_id} ({url})", "INFO",
                  live_tab_id=live_tab_id, url=url, **details)

    def collection_changed(self, collection: str, tab_id: str, action: str, **details):
        self.emit(EventType.COLLECTION_CHANGED, f"{collection}: {action} {tab_id}", "INFO",
                  collection=collection, tab_id=tab_id, action=action, **details)

    def group_created(self, group_id: str, name: str, parent_id: Optional[str] = None, **details):
        msg = f"Created group '{name}'"
        if parent_id:
            msg += f" under {parent_id}"
        self.emit(EventType.GROUP_CREATED, msg, "SUCCESS", group_id=group_id, name=name,
                  parent_id=parent_id, **details)

    def group_updated(self, group_id: str, **details):
        self.emit(EventType.GROUP_UPDATED, f"Updated group {group_id}", "INFO", group_id=group_id, **details)

    def group_deleted(self, group_id: str, removed: int, ungrouped: int, **details):
        self.emit(EventType.GROUP_DELETED,
                  f"Deleted group {group_id} ({removed} group(s), {ungrouped} tab(s) ungrouped)", "INFO",
                  group_id=group_id, removed=removed, ungrouped=ungrouped, **details)

    def group_moved(self, group_id: str, parent_id: Optional[str], **details):
        target = parent_id or "root"
        self.emit(EventType.GROUP_MOVED, f"Moved group {group_id} to {target}", "INFO",
                  group_id=group_id, parent_id=parent_id, **details)

    def cycle_rejected(self, group_id: str, parent_id: str, **details):
        self.emit(EventType.CYCLE_REJECTED, f"Rejected moving group {group_id} under {parent_id}", "WARNING",
                  group_id=group_id, parent_id=parent_id, **details)

    def timer_armed(self, tab_id: str, duration_ms: int, timer_end: int, **details):
        self.emit(EventType.TIMER_ARMED, f"Timer armed for tab {tab_id} ({duration_ms // 60000} min)", "INFO",
                  tab_id=tab_id, duration_ms=duration_ms, timer_end=timer_end, **details)

    def timer_expired(self, tab_id: str, source: str, **details):
        self.emit(EventType.TIMER_EXPIRED, f"Timer expired for tab {tab_id} (via {source})", "INFO",
                  tab_id=tab_id, source=source, **details)

    def timer_removed(self, tab_id: str, **details):
        self.emit(EventType.TIMER_REMOVED, f"Timer removed for tab {tab_id}", "INFO", tab_id=tab_id, **details)

    def notification_sent(self, notification_id: str, title: str, message: str, **details):
        self.emit(EventType.NOTIFICATION_SENT, f"{title} {message}", "SUCCESS",
                  notification_id=notification_id, title=title, body=message, **details)

    def reminder_set(self, tab_id: str, reminder: str, has_time: bool, **details):
        self.emit(EventType.REMINDER_SET, f"Reminder set for tab {tab_id}: {reminder}", "INFO",
                  tab_id=tab_id, reminder=reminder, has_time=has_time, **details)

    def reminder_removed(self, tab_id: str, **details):
        self.emit(EventType.REMINDER_REMOVED, f"Reminder removed for tab {tab_id}", "INFO", tab_id=tab_id, **details)

    def storage_loaded(self, counts: Dict[str, int], **details):
        self.emit(EventType.STORAGE_LOADED, "Data loaded from storage", "INFO", **counts, **details)

    def storage_persisted(self, size_bytes: Optional[int] = None, **details):
        self.emit(EventType.STORAGE_PERSISTED, "Data saved to storage", "DEBUG", size_bytes=size_bytes, **details)

    def storage_warning(self, message: str, **details):
        self.emit(EventType.STORAGE_WARNING, message, "WARNING", **details)

    def remote_delta_applied(self, key: str, count: int, views: List[str], **details):
        self.emit(EventType.REMOTE_DELTA_APPLIED, f"Storage changed externally: {key} ({count} item(s))", "INFO",
                  key=key, count=count, views=",".join(views), **details)

    def remote_delta_ignored(self, key: str, reason: str, **details):
        self.emit(EventType.REMOTE_DELTA_IGNORED, f"Ignored storage change for {key}: {reason}", "DEBUG",
                  key=key, reason=reason, **details)

    def pinned_tab_reopened(self, url: str, **details):
        self.emit(EventType.PINNED_TAB_REOPENED, f"Re-opened pinned tab: {url}", "WARNING", url=url, **details)

    def pinned_close_confirmed(self, url: str, **details):
        self.emit(EventType.PINNED_CLOSE_CONFIRMED, f"Pinned tab close confirmed: {url}", "INFO", url=url, **details)

    def live_duplicate_closed(self, closed_id: Any, kept_id: Any, url: str, **details):
        self.emit(EventType.LIVE_DUPLICATE_CLOSED, f"Closed duplicate tab {closed_id}, kept {kept_id} ({url})",
                  "INFO", closed_id=closed_id, kept_id=kept_id, url=url, **details)

    def system_info(self, message: str, **details):
        self.emit(EventType.SYSTEM_INFO, message, "INFO", **details)

    def system_warning(self, message: str, **details):
        self.emit(EventType.SYSTEM_WARNING, message, "WARNING", **details)

    def system_error(self, message: str, error: Exception = None, **details):
        msg = message
        if error:
            msg += f" - {str(error)}"
        self.emit(EventType.SYSTEM_ERROR, msg, "ERROR", error=str(error) if error else None, **details)

    def system_debug(self, message: str, **details):
        self.emit(EventType.SYSTEM_DEBUG, message, "DEBUG", **details)


_event_logger: Optional[EventLogger] = None


def get_event_logger() -> EventLogger:
    """Process-wide logger, created quiet on first use"""
    global _event_logger
    if _event_logger is None:
        _event_logger = EventLogger()
    return _event_logger


def set_event_logger(logger: EventLogger) -> None:
    global _event_logger
    _event_logger = logger
