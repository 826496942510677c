"""
Tab Management - live browser tabs and duplicate detection.

Provides the live-tab provider interface, its Playwright implementation, and
the normalized-URL dedup helpers shared by the organizer and the background worker.
"""
from .tab_info import LiveTab
from .tab_manager import LiveTabProvider, PlaywrightLiveTabs
from .dedup import find_duplicates, find_existing, is_duplicate

__all__ = [
    "LiveTab",
    "LiveTabProvider",
    "PlaywrightLiveTabs",
    "find_duplicates",
    "find_existing",
    "is_duplicate",
]
