"""
TabOrganizer - the entry point for every user and background action.

Each mutating operation validates first, then changes the in-memory Store,
then persists the full five-collection snapshot and invalidates the views
that read the touched collections. Persistence is fire-and-forget: a failed
write is reported as a warning and the in-memory edit is kept.

Error policy at this seam:
- ValidationError and CycleError propagate; nothing was changed.
- DuplicateError and NotFoundError are benign: the operation returns
  None/False and the error is recorded.
- PersistenceError never escapes; it becomes a user-visible warning.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, time as dtime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from error_handling import (
    DuplicateError,
    ErrorHandler,
    NotFoundError,
    OrganizerError,
    PersistenceError,
    ValidationError,
)
from models.entities import (
    COLLECTION_KEYS,
    DAILY_TABS,
    GROUPS,
    PINNED_TABS,
    SAVED_TABS,
    TIMED_TABS,
    Group,
    Tab,
    TimedTab,
    new_id,
)
from organizer import reminders
from organizer.alarms import AlarmScheduler, InMemoryAlarms
from organizer.group_tree import GroupTree
from organizer.notifications import EventLogNotifier, Notifier
from organizer.storage import SyncStorage
from organizer.store import Store
from organizer.sync import ALL_VIEWS, Reconciler, ViewListener, views_for
from organizer.timers import TimerScheduler, notification_tab_id
from organizer_config import OrganizerConfig
from tab_management.dedup import find_existing, is_duplicate
from tab_management.tab_info import LiveTab
from tab_management.tab_manager import LiveTabProvider
from utils.event_logger import EventLogger, set_event_logger
from utils.time_utils import Clock, system_clock, to_iso, to_ms
from utils.url_utils import filter_tabs, normalize_url

OPEN_FOCUSED = "focused"
OPEN_CREATED = "created"
OPEN_REPLACED = "replaced"


@dataclass
class GroupNode:
    """One row of the group outline (pre-order, with depth)."""
    group: Group
    depth: int
    count: int
    tabs: List[Tab]


class TabOrganizer:
    """
    Saved tabs, groups, daily/pinned sets, timers and reminders for one process.

    Several organizers (a side panel, a background worker) can share one
    SyncStorage; each keeps its own Store and follows the others through
    storage change notifications.
    """

    def __init__(
        self,
        storage: Optional[SyncStorage] = None,
        live_tabs: Optional[LiveTabProvider] = None,
        alarms: Optional[AlarmScheduler] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        config: Optional[OrganizerConfig] = None,
        logger: Optional[EventLogger] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.config = config or OrganizerConfig()
        if logger is None:
            logger = EventLogger(
                debug_mode=self.config.logging.debug_mode,
                max_history=self.config.logging.max_history,
            )
            set_event_logger(logger)
        self.logger = logger
        self.tz = self.config.scheduling.tz()
        self.clock = clock or system_clock(self.tz)
        self.storage = storage or SyncStorage.from_config(self.config.storage, logger=self.logger)
        self.live_tabs = live_tabs
        self.alarms = alarms or InMemoryAlarms()
        self.notifier = notifier or EventLogNotifier(self.logger)
        self.errors = error_handler or ErrorHandler()

        self.store = Store()
        self.tree = GroupTree(self.store)
        self.timers = TimerScheduler(
            self.store, self.alarms, self.notifier, self.clock, config=self.config, logger=self.logger
        )
        self.reconciler = Reconciler(self.store, area_name=self.config.storage.area_name, logger=self.logger)
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._ticker: Optional[threading.Thread] = None
        self._ticker_stop = threading.Event()

    # ----------------- lifecycle -----------------
    def start(self) -> TabOrganizer:
        """Load persisted state and start following external changes."""
        self.load()
        if self._unsubscribe is None:
            self._unsubscribe = self.storage.subscribe(self.reconciler.handle_storage_change)
        return self

    def stop(self) -> None:
        self.stop_ticker()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def load(self) -> None:
        try:
            data = self.storage.get(COLLECTION_KEYS)
        except PersistenceError as e:
            self.errors.handle_error(e, operation="load")
            self.logger.system_error("Failed to load data from storage", error=e)
            return
        dropped = self.store.load(data)
        if dropped:
            self.logger.system_warning(f"Dropped {dropped} malformed stored record(s)")
        self.logger.storage_loaded(self.store.counts())
        self.reconciler.invalidate(list(ALL_VIEWS))

    def add_view_listener(self, listener: ViewListener) -> None:
        self.reconciler.add_view_listener(listener)

    def apply_remote_delta(self, key: str, new_value: Any) -> List[str]:
        return self.reconciler.apply_remote_delta(key, new_value)

    def now_ms(self) -> int:
        return to_ms(self.clock())

    def pop_warnings(self) -> List[str]:
        """User-visible advisories (e.g. storage quota exceeded) since the last call."""
        return self.errors.pop_warnings()

    # ----------------- persistence -----------------
    def _persist(self) -> bool:
        try:
            self.storage.set(self.store.snapshot())
        except PersistenceError as e:
            self.errors.handle_error(e, operation="persist")
            self.logger.storage_warning(e.user_message)
            return False
        self.logger.storage_persisted()
        return True

    def _commit(self, *keys: str) -> bool:
        saved = self._persist()
        self.reconciler.invalidate(views_for(keys))
        return saved

    def _skip(self, error: OrganizerError, operation: str) -> None:
        self.errors.handle_error(error, operation=operation)
        self.logger.system_debug(f"{operation}: {error.message}")

    def _require_tab(self, tab_id: str, operation: str) -> Tab:
        tab = self.store.find_tab(tab_id)
        if tab is None:
            raise NotFoundError(f"Tab not found: {tab_id}", operation=operation, entity_id=tab_id)
        return tab

    # ----------------- saved tabs -----------------
    def _build_tab(self, url: str, title: str, favicon: Optional[str]) -> Tab:
        if not url or not url.strip():
            raise ValidationError("A URL is required", operation="create_tab")
        if is_duplicate(url, self.store.saved_tabs):
            raise DuplicateError(f"Tab already saved: {url}", operation="create_tab", url=url)
        now = self.clock()
        return Tab(
            id=new_id(to_ms(now)),
            title=title or "",
            url=url,
            favicon=favicon or None,
            saved_at=to_iso(now),
            group_id=None,
        )

    def create_tab(self, url: str, title: str = "", favicon: Optional[str] = None) -> Optional[Tab]:
        """
        Save a tab reference at the top of the saved list.

        Saving a URL that is already saved (after normalization) is a no-op
        and returns None.
        """
        try:
            tab = self._build_tab(url, title, favicon)
        except DuplicateError as e:
            self._skip(e, "create_tab")
            self.logger.tab_duplicate(url)
            return None

        self.store.saved_tabs.insert(0, tab)
        self.logger.tab_saved(tab.id, tab.url)
        self._commit(SAVED_TABS)
        return tab

    def save_current_tab(self) -> Optional[Tab]:
        """Save the active tab of the current window."""
        if self.live_tabs is None:
            return None
        current = self.live_tabs.current_tab()
        if current is None:
            return None
        return self.create_tab(current.url, current.title, current.favicon)

    def picker_entries(self, all_windows: bool = False) -> List[Tuple[LiveTab, bool]]:
        """Open tabs for the multi-select picker, flagged when already saved."""
        if self.live_tabs is None:
            return []
        open_tabs = self.live_tabs.query_open_tabs(current_window=not all_windows)
        return [(tab, is_duplicate(tab.url, self.store.saved_tabs)) for tab in open_tabs]

    def save_tabs(
        self,
        tabs: Iterable[LiveTab],
        group_id: Optional[str] = None,
        new_group_name: Optional[str] = None,
    ) -> List[Tab]:
        """
        Save several open tabs at once, optionally into a group.

        ``new_group_name`` creates a root group inline and takes precedence over
        ``group_id``. Already-saved URLs are skipped. Everything is written in
        a single commit.
        """
        new_group: Optional[Group] = None
        if new_group_name is not None:
            name = new_group_name.strip()
            if not name:
                raise ValidationError("Group name cannot be empty", operation="save_tabs")
            new_group = Group(id=new_id(self.now_ms()), name=name, expanded=True, parent_id=None)
            target = new_group.id
        elif group_id is not None and self.store.find_group(group_id) is None:
            self._skip(NotFoundError(f"Group not found: {group_id}", entity_id=group_id), "save_tabs")
            target = None
        else:
            target = group_id

        built: List[Tab] = []
        for live in tabs:
            try:
                tab = self._build_tab(live.url, live.title, live.favicon)
            except DuplicateError as e:
                self._skip(e, "save_tabs")
                continue
            except ValidationError as e:
                self._skip(e, "save_tabs")
                continue
            if is_duplicate(tab.url, built):
                continue
            tab.group_id = target
            built.append(tab)

        if new_group is not None:
            self.store.groups.append(new_group)
            self.logger.group_created(new_group.id, new_group.name)
        for tab in built:
            self.store.saved_tabs.insert(0, tab)
            self.logger.tab_saved(tab.id, tab.url, group_id=target)

        if built or new_group is not None:
            self._commit(SAVED_TABS, GROUPS)
        return built

    def delete_tab(self, tab_id: str) -> bool:
        """Remove a tab from saved, daily, pinned and timed, cancelling its timer."""
        store = self.store
        present = (
            store.find_tab(tab_id) is not None
            or store.is_daily(tab_id)
            or store.is_pinned(tab_id)
            or store.find_timed(tab_id) is not None
        )
        if not present:
            self._skip(NotFoundError(f"Tab not found: {tab_id}", entity_id=tab_id), "delete_tab")
            return False

        store.saved_tabs = [t for t in store.saved_tabs if t.id != tab_id]
        store.daily_tabs = [t for t in store.daily_tabs if t.id != tab_id]
        store.pinned_tabs = [t for t in store.pinned_tabs if t.id != tab_id]
        self.timers.remove(tab_id)

        self.logger.tab_deleted(tab_id)
        self._commit(SAVED_TABS, DAILY_TABS, PINNED_TABS, TIMED_TABS)
        return True

    def move_to_group(self, tab_id: str, group_id: Optional[str]) -> Optional[Tab]:
        """Assign a tab to a group (None = ungrouped)."""
        try:
            tab = self._require_tab(tab_id, "move_to_group")
            if group_id is not None and self.store.find_group(group_id) is None:
                raise NotFoundError(f"Group not found: {group_id}", operation="move_to_group", entity_id=group_id)
        except NotFoundError as e:
            self._skip(e, "move_to_group")
            return None

        tab.group_id = group_id
        self.logger.tab_moved(tab_id, group_id)
        self._commit(SAVED_TABS)
        return tab

    def saved_tabs(self, query: str = "") -> List[Tab]:
        return filter_tabs(self.store.saved_tabs, query)

    def ungrouped_tabs(self, query: str = "") -> List[Tab]:
        """Tabs without a group, including ones pointing at a group that no longer exists."""
        return filter_tabs(
            (t for t in self.store.saved_tabs if self.store.find_group(t.group_id) is None),
            query,
        )

    # ----------------- daily / pinned -----------------
    def _add_copy(self, key: str, tab_id: str) -> Optional[Tab]:
        try:
            tab = self._require_tab(tab_id, f"add_to_{key}")
        except NotFoundError as e:
            self._skip(e, f"add_to_{key}")
            return None
        collection = self.store.collection(key)
        existing = next((t for t in collection if t.id == tab_id), None)
        if existing is not None:
            return existing
        copy = tab.snapshot()
        collection.append(copy)
        self.logger.collection_changed(key, tab_id, "added")
        self._commit(key)
        return copy

    def _remove_copy(self, key: str, tab_id: str) -> bool:
        collection = self.store.collection(key)
        remaining = [t for t in collection if t.id != tab_id]
        if len(remaining) == len(collection):
            return False
        self.store.replace(key, remaining)
        self.logger.collection_changed(key, tab_id, "removed")
        self._commit(key)
        return True

    def add_to_daily(self, tab_id: str) -> Optional[Tab]:
        return self._add_copy(DAILY_TABS, tab_id)

    def remove_from_daily(self, tab_id: str) -> bool:
        return self._remove_copy(DAILY_TABS, tab_id)

    def add_to_pinned(self, tab_id: str) -> Optional[Tab]:
        return self._add_copy(PINNED_TABS, tab_id)

    def remove_from_pinned(self, tab_id: str) -> bool:
        return self._remove_copy(PINNED_TABS, tab_id)

    def remove_pinned_url(self, url: str) -> int:
        """Unpin every entry showing the same page as ``url``; returns how many."""
        key = normalize_url(url)
        remaining = [t for t in self.store.pinned_tabs if normalize_url(t.url) != key]
        removed = len(self.store.pinned_tabs) - len(remaining)
        if removed:
            self.store.pinned_tabs = remaining
            self.logger.collection_changed(PINNED_TABS, url, "removed", count=removed)
            self._commit(PINNED_TABS)
        return removed

    def pinned_entry_for(self, url: str) -> Optional[Tab]:
        key = normalize_url(url)
        return next((t for t in self.store.pinned_tabs if normalize_url(t.url) == key), None)

    def daily_tabs(self, query: str = "") -> List[Tab]:
        return filter_tabs(self.store.daily_tabs, query)

    def pinned_tabs(self, query: str = "") -> List[Tab]:
        return filter_tabs(self.store.pinned_tabs, query)

    # ----------------- groups -----------------
    @staticmethod
    def _clean_name(name: Optional[str], operation: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Group name cannot be empty", operation=operation)
        return cleaned

    def create_group(self, name: str, parent_id: Optional[str] = None) -> Optional[Group]:
        """
        Create an expanded group, at the root or under ``parent_id``.

        Raises:
            ValidationError: the name is empty after trimming
        """
        cleaned = self._clean_name(name, "create_group")
        if parent_id is not None and self.store.find_group(parent_id) is None:
            self._skip(NotFoundError(f"Group not found: {parent_id}", entity_id=parent_id), "create_group")
            return None

        group = Group(id=new_id(self.now_ms()), name=cleaned, expanded=True, parent_id=parent_id)
        self.store.groups.append(group)
        self.logger.group_created(group.id, group.name, parent_id)
        self._commit(GROUPS)
        return group

    def edit_group(self, group_id: str, name: str) -> Optional[Group]:
        cleaned = self._clean_name(name, "edit_group")
        group = self.store.find_group(group_id)
        if group is None:
            self._skip(NotFoundError(f"Group not found: {group_id}", entity_id=group_id), "edit_group")
            return None
        group.name = cleaned
        self.logger.group_updated(group_id, name=cleaned)
        self._commit(GROUPS)
        return group

    def toggle_group(self, group_id: str) -> Optional[bool]:
        """Flip the expanded flag; returns the new value."""
        group = self.store.find_group(group_id)
        if group is None:
            self._skip(NotFoundError(f"Group not found: {group_id}", entity_id=group_id), "toggle_group")
            return None
        group.expanded = not group.expanded
        self.logger.group_updated(group_id, expanded=group.expanded)
        self._commit(GROUPS)
        return group.expanded

    def delete_group(self, group_id: str) -> bool:
        """
        Delete a group with all of its subgroups.

        Tabs that belonged to any removed group become ungrouped.
        """
        if self.store.find_group(group_id) is None:
            self._skip(NotFoundError(f"Group not found: {group_id}", entity_id=group_id), "delete_group")
            return False

        doomed = set(self.tree.descendants_of(group_id))
        ungrouped = 0
        for tab in self.store.saved_tabs:
            if tab.group_id in doomed:
                tab.group_id = None
                ungrouped += 1
        self.store.groups = [g for g in self.store.groups if g.id not in doomed]

        self.logger.group_deleted(group_id, removed=len(doomed), ungrouped=ungrouped)
        self._commit(SAVED_TABS, GROUPS)
        return True

    def move_group(self, group_id: str, new_parent_id: Optional[str]) -> Optional[Group]:
        """
        Re-parent a group (None moves it to the root).

        Raises:
            CycleError: the target is the group itself or one of its descendants
        """
        try:
            group = self.tree.check_move(group_id, new_parent_id)
        except NotFoundError as e:
            self._skip(e, "move_group")
            return None
        except OrganizerError as e:
            self.errors.handle_error(e, operation="move_group")
            self.logger.cycle_rejected(group_id, str(new_parent_id))
            raise

        group.parent_id = new_parent_id
        self.logger.group_moved(group_id, new_parent_id)
        self._commit(GROUPS)
        return group

    def count_tabs(self, group_id: str) -> int:
        return self.tree.count_tabs(group_id)

    def tabs_in_subtree(self, group_id: str) -> List[Tab]:
        return self.tree.tabs_in_subtree(group_id)

    def groups_sorted_by_name(self) -> List[Group]:
        return sorted(self.store.groups, key=lambda g: g.name.casefold())

    def outline(self, query: str = "") -> List[GroupNode]:
        """Pre-order walk of the group forest with depth, recursive count and matching tabs."""
        nodes: List[GroupNode] = []
        seen = set()

        def _walk(group: Group, depth: int) -> None:
            if group.id in seen:
                return
            seen.add(group.id)
            nodes.append(GroupNode(
                group=group,
                depth=depth,
                count=self.tree.count_tabs(group.id),
                tabs=filter_tabs(self.tree.direct_tabs(group.id), query),
            ))
            for child in self.tree.children_of(group.id):
                _walk(child, depth + 1)

        for root in self.tree.roots():
            _walk(root, 0)
        return nodes

    # ----------------- reminders -----------------
    def set_reminder(
        self,
        tab_id: str,
        date_value: Union[str, date, None],
        time_value: Union[str, dtime, None] = None,
    ) -> Optional[Tab]:
        """
        Set or replace a tab's reminder.

        Raises:
            ValidationError: the date is missing or malformed
        """
        try:
            tab = self._require_tab(tab_id, "set_reminder")
        except NotFoundError as e:
            self._skip(e, "set_reminder")
            return None

        reminder, has_time = reminders.build_reminder(date_value, time_value, self.clock().tzinfo)
        tab.reminder = reminder
        tab.has_time = has_time
        self.logger.reminder_set(tab_id, reminder, has_time)
        self._commit(SAVED_TABS)
        return tab

    def remove_reminder(self, tab_id: str) -> bool:
        tab = self.store.find_tab(tab_id)
        if tab is None or tab.reminder is None:
            return False
        tab.reminder = None
        tab.has_time = False
        self.logger.reminder_removed(tab_id)
        self._commit(SAVED_TABS)
        return True

    def due_soon(self, query: str = "") -> Dict[str, List[Tab]]:
        return reminders.due_soon(self.store.saved_tabs, self.clock(), query)

    def reminder_label(self, tab: Tab, category: str) -> str:
        return reminders.reminder_label(tab, category, self.clock().tzinfo)

    def reminder_form_defaults(self, tab_id: Optional[str] = None) -> Tuple[str, str]:
        tab = self.store.find_tab(tab_id) if tab_id is not None else None
        return reminders.reminder_form_defaults(tab, self.clock())

    # ----------------- timers -----------------
    def set_timer(self, tab_id: str, hours: Any = 0, minutes: Any = None) -> Optional[TimedTab]:
        """
        Arm (or re-arm) a countdown for a saved tab.

        Raises:
            ValidationError: hours and minutes add up to zero
        """
        if minutes is None:
            minutes = self.config.scheduling.default_timer_minutes
        try:
            tab = self._require_tab(tab_id, "set_timer")
        except NotFoundError as e:
            self._skip(e, "set_timer")
            return None

        timed = self.timers.arm(tab, hours, minutes)
        self._commit(TIMED_TABS)
        return timed

    def remove_timer(self, tab_id: str) -> bool:
        removed = self.timers.remove(tab_id)
        if removed:
            self._commit(TIMED_TABS)
        return removed

    def check_expirations(self, now_ms: Optional[int] = None) -> List[TimedTab]:
        """Idempotent expiry pass; safe to call from any ticker."""
        expired = self.timers.check_expirations(now_ms)
        if expired:
            self._commit(TIMED_TABS)
        return expired

    def handle_alarm(self, name: str) -> Optional[TimedTab]:
        timed = self.timers.handle_alarm(name)
        if timed is not None:
            self._commit(TIMED_TABS)
        return timed

    def timed_tabs(self, query: str = "") -> List[TimedTab]:
        return filter_tabs(self.timers.sorted_timers(), query)

    def countdowns(self, now_ms: Optional[int] = None) -> List[Tuple[TimedTab, str]]:
        if now_ms is None:
            now_ms = self.now_ms()
        return [(timed, self.timers.countdown_text(timed, now_ms)) for timed in self.timers.sorted_timers()]

    def tick(self) -> List[Tuple[TimedTab, str]]:
        """One foreground countdown step: expire what is due, then project the rest."""
        now_ms = self.now_ms()
        self.check_expirations(now_ms)
        return self.countdowns(now_ms)

    def start_ticker(self, on_tick: Optional[Callable[[List[Tuple[TimedTab, str]]], None]] = None) -> None:
        """
        Run tick() every ``scheduling.tick_interval_seconds`` on a daemon thread.

        Each round first polls storage for writes from other processes, then
        hands the countdowns to ``on_tick``.
        """
        if self._ticker is not None and self._ticker.is_alive():
            return
        self._ticker_stop.clear()
        interval = self.config.scheduling.tick_interval_seconds

        def _run() -> None:
            while not self._ticker_stop.wait(interval):
                try:
                    self.storage.poll()
                    countdowns = self.tick()
                    if on_tick is not None:
                        on_tick(countdowns)
                except Exception as e:
                    self.logger.system_error("Countdown tick failed", error=e)

        self._ticker = threading.Thread(target=_run, name="organizer-ticker", daemon=True)
        self._ticker.start()

    def stop_ticker(self) -> None:
        self._ticker_stop.set()
        if self._ticker is not None:
            self._ticker.join(timeout=max(1.0, self.config.scheduling.tick_interval_seconds))
            self._ticker = None

    def handle_notification_click(self, notification_id: str) -> Optional[str]:
        """Body click on a timer notification opens the timed tab's page."""
        tab_id = notification_tab_id(notification_id)
        timed = self.store.find_timed(tab_id) if tab_id else None
        if timed is None:
            return None
        return self.open_tab(timed.url, new_tab=True)

    def handle_notification_button(self, notification_id: str, button_index: int) -> bool:
        """Button 0 opens the tab; any button dismisses the timer."""
        tab_id = notification_tab_id(notification_id)
        if tab_id is None:
            return False
        timed = self.store.find_timed(tab_id)
        if button_index == 0 and timed is not None:
            self.open_tab(timed.url, new_tab=True)
        return self.remove_timer(tab_id)

    # ----------------- opening -----------------
    def open_tab(self, url: str, new_tab: bool = False) -> Optional[str]:
        """
        Open ``url`` without creating a duplicate live tab.

        Focuses an open tab showing the same page if there is one; otherwise
        opens a new tab or reuses the current one.
        """
        if self.live_tabs is None:
            self.logger.system_warning("No live-tab provider; cannot open tabs")
            return None

        existing = find_existing(url, self.live_tabs.query_open_tabs())
        if existing is not None:
            self.live_tabs.focus_tab(existing.id)
            self.live_tabs.focus_window(existing.window_id)
            self.logger.tab_focused(existing.id, url)
            return OPEN_FOCUSED
        if new_tab:
            self.live_tabs.create_tab(url)
            self.logger.tab_opened(url, new_tab=True)
            return OPEN_CREATED
        self.live_tabs.replace_current_tab_url(url)
        self.logger.tab_opened(url, new_tab=False)
        return OPEN_REPLACED

    def _open_all(self, tabs: List[Tab]) -> List[Optional[str]]:
        return [self.open_tab(tab.url, new_tab=True) for tab in tabs]

    def open_all_daily(self) -> List[Optional[str]]:
        return self._open_all(list(self.store.daily_tabs))

    def open_all_pinned(self) -> List[Optional[str]]:
        return self._open_all(list(self.store.pinned_tabs))

    def open_group(self, group_id: str) -> List[Optional[str]]:
        """Open every tab of a group, nested groups included."""
        return self._open_all(self.tree.tabs_in_subtree(group_id))
