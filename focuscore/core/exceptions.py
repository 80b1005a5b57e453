"""
Custom exception hierarchy for the focus engine.

All application exceptions inherit from FocusCoreError.
"""


class FocusCoreError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(FocusCoreError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Input Errors
# =============================================================================


class ValidationError(FocusCoreError):
    """Input validation failed. Raised before any store call."""

    pass


# =============================================================================
# Backend Errors
# =============================================================================


class PersistenceError(FocusCoreError):
    """Store read or write failed."""

    pass


class SubscriptionError(FocusCoreError):
    """Change feed could not be opened or was disconnected."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(FocusCoreError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist."""

    pass


class InvalidTransitionError(SessionError):
    """Attempted transition is not allowed from the session's current status."""

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)
