"""
Unit tests for the Reconciler (remote delta application).
"""

import pytest

from models.entities import DAILY_TABS, GROUPS, PINNED_TABS, SAVED_TABS, TIMED_TABS, Group, Tab
from organizer.storage import StorageChange
from organizer.store import Store
from organizer.sync import Reconciler, views_for
from utils.event_logger import EventType


@pytest.fixture
def store():
    store = Store()
    store.saved_tabs = [Tab(id="1", title="A", url="https://a.com")]
    store.groups = [Group(id="g", name="G")]
    return store


@pytest.fixture
def reconciler(store, event_logger):
    return Reconciler(store, logger=event_logger)


@pytest.fixture
def invalidations(reconciler):
    seen = []
    reconciler.add_view_listener(seen.append)
    return seen


class TestViewsFor:

    def test_saved_tabs_reach_derived_views(self):
        assert views_for([SAVED_TABS]) == ["saved", "groups", "dueSoon"]

    def test_each_collection_maps_to_its_view(self):
        assert views_for([GROUPS]) == ["groups"]
        assert views_for([DAILY_TABS]) == ["daily"]
        assert views_for([PINNED_TABS]) == ["pinned"]
        assert views_for([TIMED_TABS]) == ["timed"]

    def test_union_in_canonical_order(self):
        assert views_for([TIMED_TABS, GROUPS, "theme"]) == ["groups", "timed"]


class TestApplyRemoteDelta:

    def test_replaces_only_that_collection(self, reconciler, store, invalidations):
        """Test that a groups delta leaves every other collection untouched"""
        saved_before = store.serialize(SAVED_TABS)
        views = reconciler.apply_remote_delta(GROUPS, [{"id": "h", "name": "H", "expanded": False}])

        assert views == ["groups"]
        assert invalidations == [["groups"]]
        assert [g.id for g in store.groups] == ["h"]
        assert store.groups[0].expanded is False
        assert store.serialize(SAVED_TABS) == saved_before

    def test_absent_value_empties_collection(self, reconciler, store):
        reconciler.apply_remote_delta(SAVED_TABS, None)
        assert store.saved_tabs == []

    def test_matching_value_is_absorbed(self, reconciler, store, invalidations):
        """Test that the echo of an own write changes nothing"""
        assert reconciler.apply_remote_delta(GROUPS, store.serialize(GROUPS)) == []
        assert invalidations == []
        assert reconciler.absorbed_count == 1
        assert reconciler.applied_count == 0

    def test_non_collection_key_is_ignored(self, reconciler, invalidations, event_logger):
        assert reconciler.apply_remote_delta("theme", "dark") == []
        assert invalidations == []
        assert event_logger.events(EventType.REMOTE_DELTA_IGNORED)

    @pytest.mark.parametrize("value", [{"id": "2"}, "oops", 42])
    def test_non_list_value_is_ignored(self, reconciler, store, invalidations, event_logger, value):
        """Test that a malformed collection value keeps the local collection intact"""
        assert reconciler.apply_remote_delta(SAVED_TABS, value) == []
        assert [t.id for t in store.saved_tabs] == ["1"]
        assert invalidations == []
        assert reconciler.ignored_count == 1
        assert "malformed" in event_logger.events(EventType.REMOTE_DELTA_IGNORED)[0].details["reason"]

    def test_malformed_records_are_dropped(self, reconciler, store):
        reconciler.apply_remote_delta(SAVED_TABS, [{"id": "2", "url": "https://b.com"}, {"bad": True}])
        assert [t.id for t in store.saved_tabs] == ["2"]

    def test_listener_failure_does_not_stop_others(self, reconciler, event_logger):
        seen = []

        def broken(views):
            raise RuntimeError("boom")

        reconciler.add_view_listener(broken)
        reconciler.add_view_listener(seen.append)
        reconciler.apply_remote_delta(PINNED_TABS, [{"id": "1", "url": "https://a.com"}])
        assert seen == [["pinned"]]
        assert event_logger.events(EventType.SYSTEM_ERROR)


class TestHandleStorageChange:

    def test_applies_each_changed_collection(self, reconciler, store):
        views = reconciler.handle_storage_change({
            DAILY_TABS: StorageChange([], [{"id": "1", "url": "https://a.com"}]),
            TIMED_TABS: StorageChange([], [{"id": "1", "url": "https://a.com", "timerEnd": 5}]),
        }, "sync")
        assert views == ["daily", "timed"]
        assert store.is_daily("1")
        assert store.find_timed("1").timer_end == 5

    def test_other_area_is_ignored(self, reconciler, store):
        views = reconciler.handle_storage_change({GROUPS: StorageChange([], [])}, "local")
        assert views == []
        assert [g.id for g in store.groups] == ["g"]
