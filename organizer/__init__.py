"""
Organizer - saved tabs, groups, timers and reminders kept in sync storage.

TabOrganizer is the entry point for the side panel; BackgroundWorker wraps
one for the long-lived background process.
"""
from .alarms import AlarmScheduler, InMemoryAlarms
from .background import BackgroundWorker
from .engine import GroupNode, TabOrganizer
from .group_tree import GroupTree
from .notifications import EventLogNotifier, NotificationIntent, Notifier
from .storage import JsonFileSyncStorage, MemorySyncStorage, StorageChange, SyncStorage
from .store import Store
from .sync import Reconciler, views_for
from .timers import TimerScheduler, format_countdown

__all__ = [
    "AlarmScheduler",
    "BackgroundWorker",
    "EventLogNotifier",
    "GroupNode",
    "GroupTree",
    "InMemoryAlarms",
    "JsonFileSyncStorage",
    "MemorySyncStorage",
    "NotificationIntent",
    "Notifier",
    "Reconciler",
    "StorageChange",
    "Store",
    "SyncStorage",
    "TabOrganizer",
    "TimerScheduler",
    "format_countdown",
    "views_for",
]
