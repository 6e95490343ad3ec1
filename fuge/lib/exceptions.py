"""
Custom exception hierarchy for Fuge.

All exceptions inherit from FugeException and carry an error ``code``
that maps to a user-facing notice in ``fuge.lib.errors``.

Validation errors (InvalidInput, InvalidChain, HabitNotFoundError) are
raised synchronously before any state change. SyncFailure is produced
after an optimistic update when the durable write did not succeed.
"""

from __future__ import annotations

from collections.abc import Sequence


class FugeException(Exception):
    """Base exception for all Fuge errors."""

    code: str = "INTERNAL_ERROR"


class ConfigurationError(FugeException):
    """Missing or malformed environment configuration."""

    code = "CONFIG_ERROR"


class ValidationError(FugeException):
    """Input rejected before mutation."""

    code = "VALIDATION_ERROR"


class InvalidInput(ValidationError):
    """A required text field is empty or a value is out of range."""

    code = "INVALID_INPUT"

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidChain(ValidationError):
    """Self-chain, unknown target, or cycle-introducing chain."""

    code = "INVALID_CHAIN"

    def __init__(self, from_id: str, to_id: str, reason: str) -> None:
        self.from_id = from_id
        self.to_id = to_id
        self.reason = reason
        super().__init__(f"Cannot chain {from_id} -> {to_id}: {reason}")


class HabitNotFoundError(ValidationError):
    """A command referenced a habit id that is not in the collection."""

    code = "NOT_FOUND"

    def __init__(self, habit_id: str) -> None:
        self.habit_id = habit_id
        super().__init__(f"Habit {habit_id} not found")


class ServiceError(FugeException):
    """Failures talking to collaborators (store, AI provider)."""

    code = "SERVICE_ERROR"


class SyncFailure(ServiceError):
    """The durable write for an optimistic update failed or timed out."""

    code = "SYNC_FAILED"

    def __init__(
        self,
        command_type: str,
        habit_ids: Sequence[str],
        rolled_back: bool,
        reason: str = "",
    ) -> None:
        self.command_type = command_type
        self.habit_ids = list(habit_ids)
        self.rolled_back = rolled_back
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Sync failed for {command_type} on {', '.join(self.habit_ids) or '-'}"
            f" (rolled_back={rolled_back}){detail}"
        )


class ExternalServiceError(ServiceError):
    """AI provider call failures (HTTP errors, timeouts, empty content)."""

    code = "AI_UNAVAILABLE"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
