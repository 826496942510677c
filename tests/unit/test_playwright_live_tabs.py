"""
Unit tests for PlaywrightLiveTabs using mocked pages and contexts.
"""
from unittest.mock import Mock

import pytest

from tab_management import PlaywrightLiveTabs


def _page(url, title=""):
    page = Mock()
    page.url = url
    page.title.return_value = title
    page.is_closed.return_value = False

    def _close():
        page.is_closed.return_value = True

    page.close.side_effect = _close
    return page


def _context(*pages):
    context = Mock()
    context.pages = list(pages)

    def _new_page():
        page = _page("about:blank")
        context.pages.append(page)
        return page

    context.new_page.side_effect = _new_page
    return context


def _handler(mock, event):
    for call in mock.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"no handler for {event}")


class TestQueries:

    def test_first_page_becomes_active(self, mock_browser_context):
        provider = PlaywrightLiveTabs([mock_browser_context])
        tabs = provider.query_open_tabs()
        assert len(tabs) == 1
        assert tabs[0].url == "https://example.com/"
        assert tabs[0].title == "Example Page"
        assert tabs[0].active is True
        assert provider.current_tab().id == tabs[0].id

    def test_ids_are_stable(self, mock_browser_context):
        provider = PlaywrightLiveTabs([mock_browser_context])
        first = provider.query_open_tabs()[0].id
        assert provider.query_open_tabs()[0].id == first
        assert first.startswith("tab_")

    def test_current_window_filter(self):
        window_a = _context(_page("https://a.com"))
        window_b = _context(_page("https://b.com"), _page("https://c.com"))
        provider = PlaywrightLiveTabs([window_a, window_b])
        assert [t.url for t in provider.query_open_tabs(current_window=True)] == ["https://a.com"]
        assert len(provider.query_open_tabs()) == 3

    def test_title_failure_is_tolerated(self):
        page = _page("https://a.com")
        page.title.side_effect = RuntimeError("detached")
        provider = PlaywrightLiveTabs([_context(page)])
        assert provider.query_open_tabs()[0].title == ""

    def test_closed_pages_are_dropped(self):
        page = _page("https://a.com")
        provider = PlaywrightLiveTabs([_context(page)])
        assert len(provider.query_open_tabs()) == 1
        page.is_closed.return_value = True
        assert provider.query_open_tabs() == []


class TestActions:

    def test_create_tab_navigates_and_focuses(self, mock_browser_context):
        provider = PlaywrightLiveTabs([mock_browser_context])
        provider.refresh()
        tab = provider.create_tab("https://new.com")
        new_page = mock_browser_context.pages[-1]
        new_page.goto.assert_called_once_with("https://new.com")
        new_page.bring_to_front.assert_called_once()
        assert provider.active_tab_id == tab.id

    def test_create_tab_without_window(self):
        assert PlaywrightLiveTabs([]).create_tab("https://x.com") is None

    def test_replace_current_tab_url(self, mock_browser_context, mock_page):
        provider = PlaywrightLiveTabs([mock_browser_context])
        assert provider.replace_current_tab_url("https://other.com") is True
        mock_page.goto.assert_called_once_with("https://other.com")

    def test_focus_unknown_tab(self, mock_browser_context):
        provider = PlaywrightLiveTabs([mock_browser_context])
        assert provider.focus_tab("tab_missing") is False

    def test_focus_window(self):
        window_a = _context(_page("https://a.com"))
        page_b = _page("https://b.com")
        provider = PlaywrightLiveTabs([window_a, _context(page_b)])
        provider.refresh()
        assert provider.focus_window(1) is True
        page_b.bring_to_front.assert_called_once()
        assert provider.current_tab().url == "https://b.com"
        assert provider.focus_window(7) is False

    def test_close_tab(self):
        page = _page("https://a.com")
        provider = PlaywrightLiveTabs([_context(page)])
        tab_id = provider.query_open_tabs()[0].id
        assert provider.close_tab(tab_id) is True
        page.close.assert_called_once()
        assert provider.query_open_tabs() == []
        assert provider.close_tab(tab_id) is False


class TestWatch:

    @pytest.fixture
    def watched(self):
        page = _page("https://a.com")
        context = _context(page)
        provider = PlaywrightLiveTabs([context])
        created, updated, removed = [], [], []
        provider.watch(on_created=created.append, on_updated=updated.append, on_removed=removed.append)
        return provider, context, page, created, updated, removed

    def test_existing_pages_are_reported(self, watched):
        _, _, _, created, _, _ = watched
        assert [t.url for t in created] == ["https://a.com"]

    def test_new_page_event(self, watched):
        _, context, _, created, _, _ = watched
        new_page = _page("https://b.com")
        _handler(context, "page")(new_page)
        assert [t.url for t in created] == ["https://a.com", "https://b.com"]

    def test_main_frame_navigation(self, watched):
        _, _, page, _, updated, _ = watched
        page.url = "https://a.com/next"
        _handler(page, "framenavigated")(page.main_frame)
        _handler(page, "framenavigated")(Mock())  # subframe
        assert [t.url for t in updated] == ["https://a.com/next"]

    def test_close_event(self, watched):
        provider, _, page, created, _, removed = watched
        _handler(page, "close")(page)
        assert removed == [created[0].id]
        assert created[0].id not in provider.pages
