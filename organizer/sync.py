"""
Synchronization Reconciler.

Remote changes arrive per storage key. Policy is whole-collection replace,
last writer wins: the local array for that key is swapped for the remote
value and only the views that read that collection are invalidated. Edits
to different collections from different processes therefore compose;
concurrent edits to the same collection resolve to whichever snapshot is
applied last.

A process also receives the change notifications caused by its own writes.
Those carry exactly what is already in memory and are absorbed without
touching any view.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from models.entities import COLLECTION_KEYS, DAILY_TABS, GROUPS, PINNED_TABS, SAVED_TABS, TIMED_TABS
from organizer.storage import StorageChange
from organizer.store import Store, parse_records
from utils.event_logger import EventLogger, get_event_logger

VIEW_SAVED = "saved"
VIEW_GROUPS = "groups"
VIEW_DUE_SOON = "dueSoon"
VIEW_DAILY = "daily"
VIEW_PINNED = "pinned"
VIEW_TIMED = "timed"

ALL_VIEWS = (VIEW_SAVED, VIEW_GROUPS, VIEW_DUE_SOON, VIEW_DAILY, VIEW_PINNED, VIEW_TIMED)

# Views that read each collection. Group counts and Due Soon are derived
# from saved tabs, so a savedTabs change reaches them too.
VIEW_DEPENDENCIES: Dict[str, tuple] = {
    SAVED_TABS: (VIEW_SAVED, VIEW_GROUPS, VIEW_DUE_SOON),
    GROUPS: (VIEW_GROUPS,),
    DAILY_TABS: (VIEW_DAILY,),
    PINNED_TABS: (VIEW_PINNED,),
    TIMED_TABS: (VIEW_TIMED,),
}

ViewListener = Callable[[List[str]], None]


def views_for(keys: Iterable[str]) -> List[str]:
    """Views depending on any of ``keys``, in canonical view order."""
    wanted = set()
    for key in keys:
        wanted.update(VIEW_DEPENDENCIES.get(key, ()))
    return [view for view in ALL_VIEWS if view in wanted]


class Reconciler:
    """Applies storage deltas to a Store and tells views what to recompute."""

    def __init__(self, store: Store, area_name: str = "sync", logger: Optional[EventLogger] = None):
        self.store = store
        self.area_name = area_name
        self.logger = logger or get_event_logger()
        self._listeners: List[ViewListener] = []
        self.applied_count = 0
        self.absorbed_count = 0
        self.ignored_count = 0

    def add_view_listener(self, listener: ViewListener) -> None:
        """``listener`` receives the list of views to recompute after each change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_view_listener(self, listener: ViewListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def invalidate(self, views: List[str]) -> None:
        if not views:
            return
        for listener in list(self._listeners):
            try:
                listener(list(views))
            except Exception as e:
                self.logger.system_error("View listener failed", error=e, views=",".join(views))

    def apply_remote_delta(self, key: str, new_value: Any) -> List[str]:
        """
        Replace the local collection ``key`` with ``new_value``.

        An absent value means an empty collection; any other non-list value
        is malformed and leaves local state alone. Returns the views that
        were invalidated (empty when the delta was ignored or matches local
        state).
        """
        if key not in COLLECTION_KEYS:
            self.logger.remote_delta_ignored(key, "not a collection")
            return []
        if new_value is not None and not isinstance(new_value, list):
            self.ignored_count += 1
            self.logger.remote_delta_ignored(key, f"malformed value ({type(new_value).__name__})")
            return []

        records, dropped = parse_records(key, new_value)
        if dropped:
            self.logger.system_warning(f"Dropped {dropped} malformed record(s) from {key}", key=key)

        incoming = [record.to_dict() for record in records]
        if incoming == self.store.serialize(key):
            self.absorbed_count += 1
            self.logger.remote_delta_ignored(key, "matches local state")
            return []

        self.store.replace(key, records)
        self.applied_count += 1
        views = views_for([key])
        self.logger.remote_delta_applied(key, len(records), views)
        self.invalidate(views)
        return views

    def handle_storage_change(self, changes: Dict[str, StorageChange], area_name: str) -> List[str]:
        """Storage change listener: applies each changed collection in turn."""
        if area_name != self.area_name:
            return []
        invalidated: List[str] = []
        for key in COLLECTION_KEYS:
            if key not in changes:
                continue
            for view in self.apply_remote_delta(key, changes[key].new_value):
                if view not in invalidated:
                    invalidated.append(view)
        for key in changes:
            if key not in COLLECTION_KEYS:
                self.logger.remote_delta_ignored(key, "not a collection")
        return invalidated
