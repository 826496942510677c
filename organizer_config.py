"""
Configuration models for the tab organizer.

This module provides structured, type-safe configuration using Pydantic models.
Settings are grouped by concern so that a side panel and a background worker
can share one OrganizerConfig.

Example:
    >>> from organizer import TabOrganizer
    >>> from organizer_config import OrganizerConfig, StorageConfig
    >>> config = OrganizerConfig(
    ...     storage=StorageConfig(file_path="tabs.json", quota_bytes=50_000),
    ... )
    >>> organizer = TabOrganizer(config=config).start()
"""
from __future__ import annotations

from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    """Synchronized key/value storage settings."""

    area_name: str = Field(
        default="sync",
        description="Storage area whose change notifications are observed"
    )
    quota_bytes: int = Field(
        default=102_400,
        ge=1,
        description="Total size budget of the storage area in bytes"
    )
    file_path: Optional[str] = Field(
        default=None,
        description="JSON file shared by every process; an in-memory area when unset"
    )


class SchedulingConfig(BaseModel):
    """Timer and reminder settings."""

    default_timer_minutes: int = Field(
        default=30,
        ge=0,
        description="Minutes pre-filled when arming a new timer"
    )
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Interval of the countdown ticker started by TabOrganizer.start_ticker"
    )
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone for day boundaries (None = local zone)"
    )
    alarm_prefix: str = Field(
        default="timer-",
        description="Prefix of alarm names; the tab id follows it"
    )

    def tz(self) -> Optional[tzinfo]:
        """
        The configured IANA zone, or None for the host zone.

        None is resolved by the clock on every reading, so day boundaries
        follow daylight-saving changes in a long-running process.
        """
        if self.timezone:
            return ZoneInfo(self.timezone)
        return None


class NotificationConfig(BaseModel):
    """Notification-intent text."""

    timer_title: str = Field(
        default="Timer Complete!",
        description="Title of the timer-expiry notification"
    )
    timer_fallback_message: str = Field(
        default="Your timer has finished",
        description="Message used when the timed tab has no title"
    )


class LoggingConfig(BaseModel):
    """Event logging settings."""

    debug_mode: bool = Field(
        default=False,
        description="Print events to the console"
    )
    max_history: int = Field(
        default=1000,
        ge=1,
        description="Number of events kept in memory"
    )


class OrganizerConfig(BaseModel):
    """
    Complete organizer configuration.

    Groups all settings into logical categories for easier management.
    """

    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Storage settings"
    )
    scheduling: SchedulingConfig = Field(
        default_factory=SchedulingConfig,
        description="Timer and reminder settings"
    )
    notifications: NotificationConfig = Field(
        default_factory=NotificationConfig,
        description="Notification settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )

    @classmethod
    def debug(cls) -> OrganizerConfig:
        """
        Create a configuration optimized for debugging.

        Returns:
            OrganizerConfig with console event output enabled
        """
        return cls(logging=LoggingConfig(debug_mode=True))

    @classmethod
    def minimal(cls) -> OrganizerConfig:
        """
        Create a minimal configuration with defaults.

        Returns:
            OrganizerConfig with all default settings
        """
        return cls()
