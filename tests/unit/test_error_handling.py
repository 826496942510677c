"""
Unit tests for the error taxonomy and ErrorHandler.
"""

from error_handling import (
    QUOTA_WARNING,
    CycleError,
    DuplicateError,
    ErrorHandler,
    ErrorSeverity,
    NotFoundError,
    OrganizerError,
    PersistenceError,
    RecoveryStrategy,
    ValidationError,
)


class TestOrganizerErrors:

    def test_extra_kwargs_become_details(self):
        error = NotFoundError("Group not found: g", operation="move_group", entity_id="g", parent_id="p")
        record = error.to_record()
        assert record.operation == "move_group"
        assert record.entity_id == "g"
        assert record.details == {"parent_id": "p"}
        assert record.kind == "NotFoundError"
        assert str(error) == "Group not found: g"

    def test_recovery_strategies(self):
        assert ValidationError("x").recovery_strategy == RecoveryStrategy.REJECT
        assert DuplicateError("x").recovery_strategy == RecoveryStrategy.SKIP
        assert CycleError("x").recovery_strategy == RecoveryStrategy.ABORT
        assert PersistenceError("x").recovery_strategy == RecoveryStrategy.KEEP_IN_MEMORY
        assert PersistenceError("x").severity == ErrorSeverity.HIGH

    def test_all_errors_share_a_base(self):
        for cls in (ValidationError, DuplicateError, CycleError, NotFoundError, PersistenceError):
            assert issubclass(cls, OrganizerError)

    def test_persistence_user_message(self):
        assert PersistenceError("QUOTA_BYTES", is_quota=True).user_message == QUOTA_WARNING
        assert PersistenceError("disk full").user_message == "Failed to save data: disk full"


class TestErrorHandler:

    def test_records_and_returns_strategy(self):
        handler = ErrorHandler()
        strategy = handler.handle_error(DuplicateError("dup"), operation="create_tab", entity_id=5)
        assert strategy == RecoveryStrategy.SKIP
        assert handler.last.operation == "create_tab"
        assert handler.last.entity_id == "5"

    def test_error_operation_wins_over_caller(self):
        handler = ErrorHandler()
        handler.handle_error(NotFoundError("gone", operation="move_group"), operation="outer")
        assert handler.last.operation == "move_group"

    def test_foreign_exceptions_abort(self):
        handler = ErrorHandler()
        assert handler.handle_error(RuntimeError("boom")) == RecoveryStrategy.ABORT
        assert handler.last.kind == "RuntimeError"

    def test_persistence_failure_becomes_warning(self):
        handler = ErrorHandler()
        handler.handle_error(PersistenceError("QUOTA_BYTES quota exceeded", is_quota=True))
        handler.handle_error(PersistenceError("disk full"))
        assert handler.pop_warnings() == [QUOTA_WARNING, "Failed to save data: disk full"]
        assert handler.pop_warnings() == []

    def test_history_is_bounded(self):
        handler = ErrorHandler(max_history=3)
        for i in range(5):
            handler.handle_error(NotFoundError(f"missing {i}"))
        assert [r.message for r in handler.history] == ["missing 2", "missing 3", "missing 4"]

    def test_summary_and_clear(self):
        handler = ErrorHandler()
        handler.handle_error(NotFoundError("a"), operation="delete_tab")
        handler.handle_error(NotFoundError("b"), operation="delete_tab")
        handler.handle_error(CycleError("c"))
        summary = handler.summary()
        assert summary["total"] == 3
        assert summary["by_kind"] == {"NotFoundError": 2, "CycleError": 1}
        assert summary["by_operation"] == {"delete_tab": 2}
        assert summary["recent"][-1] == {"kind": "CycleError", "message": "c", "at": handler.last.at.isoformat()}
        handler.clear()
        assert handler.history == []
