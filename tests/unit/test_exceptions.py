"""Tests for exception hierarchy."""

import pytest


def test_exception_hierarchy():
    """All exceptions inherit from FocusCoreError."""
    from focuscore.core.exceptions import (
        FocusCoreError,
        ConfigurationError,
        ValidationError,
        PersistenceError,
        SubscriptionError,
        SessionError,
        SessionNotFoundError,
        InvalidTransitionError,
    )

    assert issubclass(ConfigurationError, FocusCoreError)
    assert issubclass(ValidationError, FocusCoreError)
    assert issubclass(PersistenceError, FocusCoreError)
    assert issubclass(SubscriptionError, FocusCoreError)
    assert issubclass(SessionError, FocusCoreError)
    assert issubclass(SessionNotFoundError, SessionError)
    assert issubclass(InvalidTransitionError, SessionError)


def test_exceptions_can_be_raised():
    """Exceptions can be raised and caught."""
    from focuscore.core.exceptions import SessionNotFoundError

    with pytest.raises(SessionNotFoundError):
        raise SessionNotFoundError("Session test-123 not found")


def test_exception_keeps_message():
    from focuscore.core.exceptions import InvalidTransitionError

    error = InvalidTransitionError("already completed", current_status="completed")

    assert error.message == "already completed"
    assert error.current_status == "completed"
    assert str(error) == "already completed"
