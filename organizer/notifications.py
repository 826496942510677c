"""
Notification-intent collaborator.

Notifications are fire-and-forget: the organizer only records that it asked
for one. Delivery failures are logged, never raised.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import time

from utils.event_logger import EventLogger, get_event_logger


@dataclass
class NotificationIntent:
    notification_id: str
    title: str
    message: str
    created_at: float = field(default_factory=time.time)


class Notifier(ABC):
    """Abstract base class for notification sinks."""

    @abstractmethod
    def notify(self, notification_id: str, title: str, message: str) -> None:
        pass


class EventLogNotifier(Notifier):
    """
    Records notification intents and reports them through the event logger.

    An optional ``deliver`` callback hands the intent to the real host
    (desktop notification, toast, ...); its failures are logged and dropped.
    """

    def __init__(
        self,
        logger: Optional[EventLogger] = None,
        deliver: Optional[Callable[[NotificationIntent], None]] = None,
    ):
        self.logger = logger or get_event_logger()
        self.deliver = deliver
        self.sent: List[NotificationIntent] = []

    def notify(self, notification_id: str, title: str, message: str) -> None:
        intent = NotificationIntent(notification_id=notification_id, title=title, message=message)
        self.sent.append(intent)
        self.logger.notification_sent(notification_id, title, message)
        if self.deliver is None:
            return
        try:
            self.deliver(intent)
        except Exception as e:
            self.logger.system_error(f"Notification {notification_id} could not be delivered", error=e)

    def for_id(self, notification_id: str) -> List[NotificationIntent]:
        return [n for n in self.sent if n.notification_id == notification_id]
