"""
Alarm collaborator.

The host scheduler fires named alarms at absolute times; timers use the
``timer-{tab_id}`` naming convention. InMemoryAlarms is the in-process
implementation used by the background worker and tests: the host loop calls
fire_due() and every due alarm is delivered to the registered listeners.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

AlarmListener = Callable[[str], None]


class AlarmScheduler(ABC):
    """Abstract base class for alarm schedulers."""

    @abstractmethod
    def schedule(self, name: str, when_ms: int) -> None:
        """Create or replace the alarm ``name`` firing at epoch millis ``when_ms``."""
        pass

    @abstractmethod
    def cancel(self, name: str) -> bool:
        """Remove a pending alarm; True if one existed."""
        pass

    @abstractmethod
    def add_listener(self, listener: AlarmListener) -> None:
        """Register a callback receiving the name of each fired alarm."""
        pass


class InMemoryAlarms(AlarmScheduler):
    """Alarm table kept in memory; firing is driven by fire_due()."""

    def __init__(self):
        self._pending: Dict[str, int] = {}
        self._listeners: List[AlarmListener] = []
        self._lock = threading.RLock()

    def schedule(self, name: str, when_ms: int) -> None:
        with self._lock:
            self._pending[name] = int(when_ms)

    def cancel(self, name: str) -> bool:
        with self._lock:
            return self._pending.pop(name, None) is not None

    def add_listener(self, listener: AlarmListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def pending(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._pending)

    def when(self, name: str) -> Optional[int]:
        with self._lock:
            return self._pending.get(name)

    def fire(self, name: str) -> None:
        """Deliver ``name`` to listeners, whether or not it is still pending."""
        with self._lock:
            self._pending.pop(name, None)
        for listener in list(self._listeners):
            listener(name)

    def fire_due(self, now_ms: int) -> List[str]:
        """Fire every alarm whose time has come, earliest first."""
        with self._lock:
            due = sorted(
                (when, name) for name, when in self._pending.items() if when <= now_ms
            )
            for _, name in due:
                del self._pending[name]
        names = [name for _, name in due]
        for name in names:
            for listener in list(self._listeners):
                listener(name)
        return names
