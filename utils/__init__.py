"""
Utility modules for the tab organizer.
"""
from .event_logger import EventLogger, EventType, get_event_logger, set_event_logger
from .url_utils import filter_tabs, normalize_url

__all__ = ["EventLogger", "EventType", "get_event_logger", "set_event_logger", "filter_tabs", "normalize_url"]
