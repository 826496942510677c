"""
Structured error handling for the tab organizer.

Every failure the organizer knows about is an OrganizerError subclass that
carries how bad it is and what the caller should do next:

    ValidationError   reject the input, nothing changed
    DuplicateError    skip, the entry is already there
    NotFoundError     skip, the target vanished (stale selection, remote delete)
    CycleError        abort the move, the tree is untouched
    PersistenceError  keep the in-memory edit and warn the user
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecoveryStrategy(Enum):
    """What the caller does after an error."""
    SKIP = "skip"
    REJECT = "reject"
    ABORT = "abort"
    KEEP_IN_MEMORY = "keep_in_memory"


QUOTA_WARNING = "Storage quota exceeded! Please delete some tabs to free up space."


@dataclass
class ErrorRecord:
    """One handled error, detached from the exception object."""

    kind: str
    message: str
    operation: Optional[str] = None
    entity_id: Optional[str] = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "kind": self.kind,
            "message": self.message,
            "at": self.at.isoformat(),
        }
        if self.operation:
            data["operation"] = self.operation
        if self.entity_id is not None:
            data["entity_id"] = self.entity_id
        if self.details:
            data["details"] = dict(self.details)
        return data


class OrganizerError(Exception):
    """
    Base exception for all organizer errors.

    Extra keyword arguments land in ``details`` (e.g. the parent id of a
    rejected move).
    """

    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    recovery_strategy: RecoveryStrategy = RecoveryStrategy.ABORT

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        entity_id: Any = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.entity_id = None if entity_id is None else str(entity_id)
        self.details = details

    def to_record(self) -> ErrorRecord:
        return ErrorRecord(
            kind=type(self).__name__,
            message=self.message,
            operation=self.operation,
            entity_id=self.entity_id,
            details=dict(self.details),
        )


class ValidationError(OrganizerError):
    """Input rejected before any state change (empty name, zero timer, missing date)."""
    severity = ErrorSeverity.LOW
    recovery_strategy = RecoveryStrategy.REJECT


class DuplicateError(OrganizerError):
    """Entry already known; inserts treat this as an idempotent no-op."""
    severity = ErrorSeverity.LOW
    recovery_strategy = RecoveryStrategy.SKIP


class CycleError(OrganizerError):
    """Re-parenting would make a group its own ancestor."""
    severity = ErrorSeverity.MEDIUM
    recovery_strategy = RecoveryStrategy.ABORT


class NotFoundError(OrganizerError):
    """Referenced entity no longer exists (e.g. a stale selection)."""
    severity = ErrorSeverity.LOW
    recovery_strategy = RecoveryStrategy.SKIP


class PersistenceError(OrganizerError):
    """Storage write failed; in-memory state stays authoritative."""
    severity = ErrorSeverity.HIGH
    recovery_strategy = RecoveryStrategy.KEEP_IN_MEMORY

    def __init__(self, message: str, is_quota: bool = False, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.is_quota = is_quota

    @property
    def user_message(self) -> str:
        if self.is_quota:
            return QUOTA_WARNING
        return f"Failed to save data: {self.message}"


@dataclass
class ErrorHandler:
    """
    Records handled errors and collects user-visible warnings.

    Nothing here raises; callers decide whether to re-raise from the
    returned strategy.
    """

    max_history: int = 100
    history: List[ErrorRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def handle_error(
        self,
        error: Exception,
        operation: Optional[str] = None,
        entity_id: Any = None,
    ) -> RecoveryStrategy:
        if isinstance(error, OrganizerError):
            record = error.to_record()
            strategy = error.recovery_strategy
        else:
            record = ErrorRecord(kind=type(error).__name__, message=str(error))
            strategy = RecoveryStrategy.ABORT

        record.operation = record.operation or operation
        if record.entity_id is None and entity_id is not None:
            record.entity_id = str(entity_id)

        self.history.append(record)
        del self.history[:-self.max_history]

        if isinstance(error, PersistenceError):
            self.warnings.append(error.user_message)
        return strategy

    @property
    def last(self) -> Optional[ErrorRecord]:
        return self.history[-1] if self.history else None

    def pop_warnings(self) -> List[str]:
        """Return and clear the pending user-visible warnings."""
        pending, self.warnings = self.warnings, []
        return pending

    def summary(self) -> Dict[str, Any]:
        """Counts by error kind and by operation, plus the latest few records."""
        by_kind: Dict[str, int] = {}
        by_operation: Dict[str, int] = {}
        for record in self.history:
            by_kind[record.kind] = by_kind.get(record.kind, 0) + 1
            if record.operation:
                by_operation[record.operation] = by_operation.get(record.operation, 0) + 1
        return {
            "total": len(self.history),
            "by_kind": by_kind,
            "by_operation": by_operation,
            "recent": [r.to_dict() for r in self.history[-5:]],
        }

    def clear(self) -> None:
        self.history.clear()
        self.warnings.clear()
