"""
LiveTab - Snapshot of a tab that is currently open in the browser.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class LiveTab:
    """
    A browser tab as reported by the live-tab provider.

    Attributes:
        id: Provider-assigned tab handle
        url: Current URL of the tab
        title: Current title of the tab
        favicon: Favicon URL, if the provider knows it
        window_id: Handle of the window holding the tab
        active: Whether this is the focused tab of its window
    """
    id: Any
    url: str
    title: str = ""
    favicon: Optional[str] = None
    window_id: Any = None
    active: bool = False

    def __post_init__(self):
        """Validate tab info"""
        if self.id is None:
            raise ValueError("id is required")
        if self.url is None:
            self.url = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "favicon": self.favicon,
            "window_id": self.window_id,
            "active": self.active,
        }
