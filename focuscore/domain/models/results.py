"""
Result objects returned across the engine's public contract.

Session and metrics entry points report failures as explicit results
instead of raising, so UI layers can render retry affordances.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from focuscore.core.exceptions import FocusCoreError
from focuscore.domain.models.session import Session

T = TypeVar("T")


class Outcome(str, Enum):
    """Outcome of an engine operation."""

    APPLIED = "applied"
    """The operation changed stored data."""

    NOOP = "noop"
    """Benign repeat of an already-applied terminal transition."""

    FAILED = "failed"


@dataclass
class TransitionResult:
    """Result of a terminal transition on the session state machine."""

    session: Session
    outcome: Outcome

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED


@dataclass
class OperationResult(Generic[T]):
    """Success-or-failure envelope used by FocusEngine entry points."""

    outcome: Outcome
    value: Optional[T] = None
    error: Optional[FocusCoreError] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error else None

    @classmethod
    def success(cls, value: T, outcome: Outcome = Outcome.APPLIED) -> "OperationResult[T]":
        return cls(outcome=outcome, value=value)

    @classmethod
    def failure(cls, error: FocusCoreError) -> "OperationResult[T]":
        return cls(outcome=Outcome.FAILED, error=error)
