"""
BackgroundWorker - long-lived host process reacting to browser events.

It runs its own TabOrganizer over the shared storage and handles:
- timer alarms and notification clicks
- pinned-tab protection (a closed pinned tab is reopened until the user
  confirms closing it)
- live duplicate suppression (a tab that lands on an already-open page is
  closed and the existing tab is focused)
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Set

from organizer.engine import TabOrganizer
from organizer.storage import SyncStorage
from organizer.alarms import AlarmScheduler, InMemoryAlarms
from organizer.notifications import Notifier
from organizer_config import OrganizerConfig
from tab_management.dedup import find_duplicates
from tab_management.tab_info import LiveTab
from tab_management.tab_manager import LiveTabProvider
from utils.event_logger import EventLogger
from utils.time_utils import Clock
from utils.url_utils import is_internal_url, normalize_url


class BackgroundWorker:
    """
    Event handlers of the background process.

    Responsibilities:
    - Remember the URL of every open tab (it is gone once the tab closes)
    - Reopen pinned pages closed by accident
    - Close live duplicates and focus the original
    - Expire timers on alarms and react to notification clicks
    """

    def __init__(
        self,
        storage: SyncStorage,
        live_tabs: LiveTabProvider,
        alarms: Optional[AlarmScheduler] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        config: Optional[OrganizerConfig] = None,
        logger: Optional[EventLogger] = None,
        on_pinned_reopened: Optional[Callable[[LiveTab, str], None]] = None,
    ):
        """
        Initialize BackgroundWorker.

        Args:
            storage: Storage shared with the foreground organizers
            live_tabs: Provider for the browser's open tabs
            alarms: Host alarm scheduler (shared with the foreground)
            notifier: Notification sink for expired timers
            clock: Injectable clock
            config: Organizer configuration
            logger: Event logger
            on_pinned_reopened: Called with the reopened tab and the pinned
                title so the host can ask the user to confirm the close
        """
        self.live_tabs = live_tabs
        self.alarms = alarms or InMemoryAlarms()
        self.organizer = TabOrganizer(
            storage,
            live_tabs=live_tabs,
            alarms=self.alarms,
            notifier=notifier,
            clock=clock,
            config=config,
            logger=logger,
        )
        self.logger = self.organizer.logger
        self.on_pinned_reopened = on_pinned_reopened

        self.open_tabs: Dict[Any, str] = {}  # live tab id -> last known url
        self.confirmed_closes: Set[str] = set()  # normalized urls
        self._self_closed: Set[Any] = set()

    def start(self) -> BackgroundWorker:
        self.organizer.start()
        self.alarms.add_listener(self.on_alarm)
        for tab in self.live_tabs.query_open_tabs():
            self._track(tab)
        self.logger.system_info("Background worker started")
        return self

    def stop(self) -> None:
        self.organizer.stop()

    # ----------------- alarms & notifications -----------------
    def on_alarm(self, name: str) -> None:
        self.organizer.handle_alarm(name)

    def on_notification_clicked(self, notification_id: str) -> Optional[str]:
        return self.organizer.handle_notification_click(notification_id)

    def on_notification_button(self, notification_id: str, button_index: int) -> bool:
        return self.organizer.handle_notification_button(notification_id, button_index)

    # ----------------- live tab events -----------------
    def _track(self, tab: LiveTab) -> None:
        if tab.url and not is_internal_url(tab.url):
            self.open_tabs[tab.id] = tab.url

    def on_tab_created(self, tab: LiveTab) -> Optional[LiveTab]:
        """Track the new tab; close it if the page is already open elsewhere."""
        self._track(tab)
        return self._suppress_duplicate(tab)

    def on_tab_updated(self, tab: LiveTab, url_changed: bool = True) -> Optional[LiveTab]:
        """Track navigation; a tab that lands on an already-open page is closed."""
        self._track(tab)
        if not url_changed:
            return None
        return self._suppress_duplicate(tab)

    def _suppress_duplicate(self, tab: LiveTab) -> Optional[LiveTab]:
        if not tab.url or is_internal_url(tab.url):
            return None
        duplicates = find_duplicates(tab, self.live_tabs.query_open_tabs())
        if not duplicates:
            return None

        existing = duplicates[0]
        self._self_closed.add(tab.id)
        if not self.live_tabs.close_tab(tab.id):
            self._self_closed.discard(tab.id)
            return None
        self.live_tabs.focus_tab(existing.id)
        self.live_tabs.focus_window(existing.window_id)
        self.logger.live_duplicate_closed(tab.id, existing.id, tab.url)
        return existing

    def on_tab_removed(self, tab_id: Any) -> Optional[LiveTab]:
        """
        Reopen a closed pinned page unless its close was confirmed.

        Returns the reopened tab, if any.
        """
        closed_url = self.open_tabs.pop(tab_id, None)
        if tab_id in self._self_closed:
            self._self_closed.discard(tab_id)
            return None
        if not closed_url or is_internal_url(closed_url):
            return None

        key = normalize_url(closed_url)
        if key in self.confirmed_closes:
            self.confirmed_closes.discard(key)
            return None

        pinned = self.organizer.pinned_entry_for(closed_url)
        if pinned is None:
            return None

        reopened = self.live_tabs.create_tab(closed_url, active=True)
        self.logger.pinned_tab_reopened(closed_url)
        if reopened is not None:
            self._track(reopened)
            if self.on_pinned_reopened is not None:
                try:
                    self.on_pinned_reopened(reopened, pinned.title or closed_url)
                except Exception as e:
                    self.logger.system_warning(f"Pinned-close prompt failed: {e}")
        return reopened

    def confirm_close(self, url: str, live_tab_id: Any = None) -> int:
        """
        The user confirmed closing a pinned page.

        Unpins every entry for the page and closes ``live_tab_id`` if given;
        that close is not reopened. Returns the number of entries unpinned.
        """
        self.confirmed_closes.add(normalize_url(url))
        removed = self.organizer.remove_pinned_url(url)
        self.logger.pinned_close_confirmed(url, unpinned=removed)
        if live_tab_id is not None:
            self.live_tabs.close_tab(live_tab_id)
            self.on_tab_removed(live_tab_id)
        return removed

    def tracked_urls(self) -> List[str]:
        return list(self.open_tabs.values())
