"""
Live-tab providers - query and steer the tabs open in the browser.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
import uuid

from playwright.sync_api import BrowserContext, Page

from .tab_info import LiveTab
from utils.event_logger import get_event_logger


class LiveTabProvider(ABC):
    """
    Narrow interface to the browser's tab and window APIs.

    The organizer only ever asks for these operations, so any browser
    binding (Playwright, an extension bridge, a test double) can sit behind it.
    """

    @abstractmethod
    def query_open_tabs(self, current_window: bool = False, active: Optional[bool] = None) -> List[LiveTab]:
        """Open tabs, optionally limited to the current window and/or the active tab."""
        pass

    @abstractmethod
    def focus_tab(self, tab_id: Any) -> bool:
        pass

    @abstractmethod
    def create_tab(self, url: str, active: bool = True) -> Optional[LiveTab]:
        pass

    @abstractmethod
    def replace_current_tab_url(self, url: str) -> bool:
        pass

    @abstractmethod
    def focus_window(self, window_id: Any) -> bool:
        pass

    @abstractmethod
    def close_tab(self, tab_id: Any) -> bool:
        pass

    def current_tab(self) -> Optional[LiveTab]:
        tabs = self.query_open_tabs(current_window=True, active=True)
        return tabs[0] if tabs else None


class PlaywrightLiveTabs(LiveTabProvider):
    """
    Live tabs backed by Playwright.

    Each BrowserContext is treated as one window and each Page as one tab.
    Pages get a stable id the first time they are seen.

    Responsibilities:
    - Register and track pages across contexts
    - Track the active tab (and through it, the current window)
    - Open, focus, navigate and close tabs
    - Forward page lifecycle events to listeners
    """

    def __init__(self, contexts: List[BrowserContext]):
        """
        Initialize PlaywrightLiveTabs.

        Args:
            contexts: Playwright BrowserContexts, one per window
        """
        self.contexts = list(contexts)
        self.pages: Dict[str, Tuple[Page, int]] = {}  # tab_id -> (page, window index)
        self.active_tab_id: Optional[str] = None
        self._known_pages: Dict[int, str] = {}  # id(page) -> tab_id
        self.logger = get_event_logger()

    # ----------------- registry -----------------
    def _register(self, page: Page, window_id: int) -> str:
        page_key = id(page)
        if page_key in self._known_pages:
            return self._known_pages[page_key]

        tab_id = f"tab_{uuid.uuid4().hex[:12]}"
        self.pages[tab_id] = (page, window_id)
        self._known_pages[page_key] = tab_id

        # Set as active if it's the first tab
        if self.active_tab_id is None:
            self.active_tab_id = tab_id
        return tab_id

    def _forget(self, tab_id: str) -> None:
        entry = self.pages.pop(tab_id, None)
        if entry is None:
            return
        self._known_pages.pop(id(entry[0]), None)
        if self.active_tab_id == tab_id:
            self.active_tab_id = next(iter(self.pages), None)

    def refresh(self) -> None:
        """Pick up pages opened outside the provider and drop closed ones."""
        for window_id, context in enumerate(self.contexts):
            for page in list(context.pages):
                self._register(page, window_id)
        closed = [tab_id for tab_id, (page, _) in self.pages.items() if page.is_closed()]
        for tab_id in closed:
            self._forget(tab_id)

    def _snapshot(self, tab_id: str) -> LiveTab:
        page, window_id = self.pages[tab_id]
        try:
            title = page.title()
        except Exception:
            title = ""
        return LiveTab(
            id=tab_id,
            url=page.url,
            title=title,
            favicon=None,
            window_id=window_id,
            active=tab_id == self.active_tab_id,
        )

    def _current_window(self) -> int:
        if self.active_tab_id in self.pages:
            return self.pages[self.active_tab_id][1]
        return 0

    # ----------------- LiveTabProvider -----------------
    def query_open_tabs(self, current_window: bool = False, active: Optional[bool] = None) -> List[LiveTab]:
        self.refresh()
        window = self._current_window()
        result = []
        for tab_id, (_, window_id) in self.pages.items():
            if current_window and window_id != window:
                continue
            if active is not None and (tab_id == self.active_tab_id) != active:
                continue
            result.append(self._snapshot(tab_id))
        return result

    def focus_tab(self, tab_id: Any) -> bool:
        if tab_id not in self.pages:
            self.logger.system_warning(f"Tab not found: {tab_id}")
            return False
        page, _ = self.pages[tab_id]
        try:
            page.bring_to_front()
        except Exception as e:
            self.logger.system_warning(f"Could not bring tab to front: {e}")
        self.active_tab_id = tab_id
        return True

    def create_tab(self, url: str, active: bool = True) -> Optional[LiveTab]:
        if not self.contexts:
            self.logger.system_warning("No browser window to open a tab in")
            return None
        window_id = self._current_window()
        try:
            page = self.contexts[window_id].new_page()
        except Exception as e:
            self.logger.system_error("Failed to open new tab", error=e)
            return None

        tab_id = self._register(page, window_id)
        try:
            page.goto(url)
        except Exception as e:
            self.logger.system_warning(f"Failed to navigate new tab {tab_id} to {url}: {e}")

        if active:
            self.focus_tab(tab_id)
        return self._snapshot(tab_id)

    def replace_current_tab_url(self, url: str) -> bool:
        self.refresh()
        if self.active_tab_id is None:
            return self.create_tab(url) is not None
        page, _ = self.pages[self.active_tab_id]
        try:
            page.goto(url)
        except Exception as e:
            self.logger.system_warning(f"Failed to navigate to {url}: {e}")
            return False
        return True

    def focus_window(self, window_id: Any) -> bool:
        candidates = [tab_id for tab_id, (_, w) in self.pages.items() if w == window_id]
        if not candidates:
            return False
        if self.active_tab_id in candidates:
            return self.focus_tab(self.active_tab_id)
        return self.focus_tab(candidates[0])

    def close_tab(self, tab_id: Any) -> bool:
        if tab_id not in self.pages:
            return False
        page, _ = self.pages[tab_id]
        try:
            page.close()
        except Exception as e:
            self.logger.system_warning(f"Error closing page: {e}")
        self._forget(tab_id)
        return True

    # ----------------- events -----------------
    def watch(
        self,
        on_created: Optional[Callable[[LiveTab], None]] = None,
        on_updated: Optional[Callable[[LiveTab], None]] = None,
        on_removed: Optional[Callable[[Any], None]] = None,
    ) -> None:
        """
        Forward Playwright page events as live-tab events.

        New pages are reported through ``on_created``, main-frame navigations
        through ``on_updated`` and closes through ``on_removed``.
        """
        def _hook_page(page: Page, window_id: int) -> None:
            tab_id = self._register(page, window_id)

            def _navigated(frame) -> None:
                if on_updated and frame == page.main_frame and tab_id in self.pages:
                    on_updated(self._snapshot(tab_id))

            def _closed(_page) -> None:
                self._forget(tab_id)
                if on_removed:
                    on_removed(tab_id)

            page.on("framenavigated", _navigated)
            page.on("close", _closed)
            if on_created:
                on_created(self._snapshot(tab_id))

        for window_id, context in enumerate(self.contexts):
            for page in list(context.pages):
                _hook_page(page, window_id)
            context.on("page", lambda page, w=window_id: _hook_page(page, w))
