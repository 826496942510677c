"""
Shared pytest fixtures for all tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from unittest.mock import Mock

from organizer import EventLogNotifier, InMemoryAlarms, MemorySyncStorage, TabOrganizer
from tab_management import LiveTab, LiveTabProvider
from utils.event_logger import EventLogger, set_event_logger


START = datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)  # a Monday


class FakeClock:
    """Controllable clock returning aware datetimes."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeLiveTabs(LiveTabProvider):
    """In-memory browser: records every call the organizer makes."""

    def __init__(self):
        self.tabs: Dict[int, LiveTab] = {}
        self.active_id: Optional[int] = None
        self._next_id = 1
        self.created: List[str] = []
        self.closed: List[Any] = []
        self.focused: List[Any] = []
        self.focused_windows: List[Any] = []
        self.replaced: List[str] = []

    def open(self, url: str, title: str = "", window_id: int = 1, active: bool = False) -> LiveTab:
        tab = LiveTab(id=self._next_id, url=url, title=title, window_id=window_id)
        self._next_id += 1
        self.tabs[tab.id] = tab
        if active or self.active_id is None:
            self.active_id = tab.id
        return tab

    def query_open_tabs(self, current_window: bool = False, active: Optional[bool] = None) -> List[LiveTab]:
        current = self.tabs[self.active_id].window_id if self.active_id in self.tabs else None
        result = []
        for tab in self.tabs.values():
            if current_window and tab.window_id != current:
                continue
            if active is not None and (tab.id == self.active_id) != active:
                continue
            result.append(LiveTab(
                id=tab.id, url=tab.url, title=tab.title, favicon=tab.favicon,
                window_id=tab.window_id, active=tab.id == self.active_id,
            ))
        return result

    def focus_tab(self, tab_id: Any) -> bool:
        if tab_id not in self.tabs:
            return False
        self.focused.append(tab_id)
        self.active_id = tab_id
        return True

    def create_tab(self, url: str, active: bool = True) -> Optional[LiveTab]:
        self.created.append(url)
        window_id = self.tabs[self.active_id].window_id if self.active_id in self.tabs else 1
        return self.open(url, window_id=window_id, active=active)

    def replace_current_tab_url(self, url: str) -> bool:
        self.replaced.append(url)
        if self.active_id not in self.tabs:
            return self.create_tab(url) is not None
        self.tabs[self.active_id].url = url
        return True

    def focus_window(self, window_id: Any) -> bool:
        self.focused_windows.append(window_id)
        return True

    def close_tab(self, tab_id: Any) -> bool:
        if tab_id not in self.tabs:
            return False
        del self.tabs[tab_id]
        self.closed.append(tab_id)
        if self.active_id == tab_id:
            self.active_id = next(iter(self.tabs), None)
        return True


@pytest.fixture(autouse=True)
def event_logger():
    """Fresh global event logger per test"""
    logger = EventLogger(debug_mode=False)
    set_event_logger(logger)
    yield logger
    set_event_logger(EventLogger(debug_mode=False))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    """Shared sync storage area"""
    return MemorySyncStorage()


@pytest.fixture
def alarms():
    return InMemoryAlarms()


@pytest.fixture
def live_tabs():
    return FakeLiveTabs()


@pytest.fixture
def notifier(event_logger):
    return EventLogNotifier(event_logger)


@pytest.fixture
def organizer_factory(storage, alarms, notifier, live_tabs, clock, event_logger):
    """Factory for started TabOrganizer instances over the shared storage"""
    created = []

    def _create(**overrides):
        kwargs = dict(
            storage=storage,
            live_tabs=live_tabs,
            alarms=alarms,
            notifier=notifier,
            clock=clock,
            logger=event_logger,
        )
        kwargs.update(overrides)
        organizer = TabOrganizer(**kwargs).start()
        created.append(organizer)
        return organizer

    yield _create
    for organizer in created:
        organizer.stop()


@pytest.fixture
def organizer(organizer_factory):
    return organizer_factory()


@pytest.fixture
def mock_page():
    """Mock Playwright Page object"""
    page = Mock()
    page.url = "https://example.com/"
    page.title.return_value = "Example Page"
    page.is_closed.return_value = False
    page.goto = Mock()
    page.close = Mock()
    page.bring_to_front = Mock()
    return page


@pytest.fixture
def mock_browser_context(mock_page):
    """Mock browser context holding one page"""
    context = Mock()
    context.pages = [mock_page]

    def _new_page():
        page = Mock()
        page.url = "about:blank"
        page.title.return_value = ""
        page.is_closed.return_value = False
        context.pages.append(page)
        return page

    context.new_page.side_effect = _new_page
    return context
