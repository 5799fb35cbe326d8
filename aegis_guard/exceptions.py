"""
aegis-guard Custom Exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

All custom exception classes for aegis-guard, organized by domain.
Every distinct failure mode has its own exception type.

**Structured Errors**

Every exception carries the three fields the execution pipeline
surfaces to callers:

- ``code``: stable machine-readable identifier (e.g. ``PREVIEW_EXPIRED``)
- ``recoverable``: whether retrying or adjusting parameters can help
- ``suggestion``: concrete, actionable next step
"""

from __future__ import annotations

from typing import Any

from aegis_guard.core.models import ErrorInfo

__all__ = [
    # Base
    "AegisGuardError",
    # Config
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigValidationError",
    # Registration
    "HandlerRegistrationError",
    # Preview
    "PreviewError",
    "PreviewNotFoundError",
    "PreviewExpiredError",
    "PreviewNotApprovedError",
    "PreviewRejectedError",
    "PreviewAlreadyExecutedError",
    "PreviewCapacityError",
    # Rollback
    "RollbackError",
    "RollbackNotAvailableError",
    "RollbackGroupNotFoundError",
    # Execution
    "ExecutionError",
    "ExecutionTimeoutError",
    "HandlerNotFoundError",
    "ValidationFailedError",
    # Domain
    "DomainError",
    "TargetNotFoundError",
]


# ── Base Exception ───────────────────────────────────────────────────────────


class AegisGuardError(Exception):
    """Base exception for all aegis-guard errors."""

    code: str = "AEGIS_ERROR"
    recoverable: bool = False
    default_suggestion: str = "Check the error details and try again."

    def __init__(
        self,
        message: str = "",
        details: dict[str, Any] | None = None,
        *,
        suggestion: str | None = None,
        recoverable: bool | None = None,
    ) -> None:
        self.details = details or {}
        self.suggestion = suggestion or self.default_suggestion
        if recoverable is not None:
            self.recoverable = recoverable
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""

    def to_error_info(self) -> ErrorInfo:
        """Convert into the structured error carried by ExecutionResult."""
        return ErrorInfo(
            code=self.code,
            message=self.message,
            recoverable=self.recoverable,
            suggestion=self.suggestion,
        )


# ── Config Exceptions ────────────────────────────────────────────────────────


class ConfigError(AegisGuardError):
    """Base exception for configuration-related errors."""

    code = "CONFIG_ERROR"


class ConfigFileNotFoundError(ConfigError):
    """Raised when a configuration file cannot be found at the specified path."""


class ConfigValidationError(ConfigError):
    """Raised when configuration values fail validation."""


# ── Registration Exceptions ──────────────────────────────────────────────────


class HandlerRegistrationError(AegisGuardError):
    """Raised when a handler is registered without the metadata the registry requires."""

    code = "HANDLER_REGISTRATION_FAILED"


# ── Preview Exceptions ───────────────────────────────────────────────────────


class PreviewError(AegisGuardError):
    """Base exception for the preview/approval workflow."""

    code = "PREVIEW_ERROR"
    recoverable = True


class PreviewNotFoundError(PreviewError):
    """Raised when a preview id is unknown."""

    code = "PREVIEW_NOT_FOUND"
    default_suggestion = "Create a new preview by re-sending the command."

    def __init__(self, preview_id: str, message: str = "") -> None:
        self.preview_id = preview_id
        super().__init__(
            message or f"Preview {preview_id} not found or expired",
            {"preview_id": preview_id},
        )


class PreviewExpiredError(PreviewNotFoundError):
    """Raised when a preview is past its expiry (or already swept away)."""

    code = "PREVIEW_EXPIRED"

    def __init__(self, preview_id: str) -> None:
        super().__init__(preview_id, f"Action preview has expired: {preview_id}")


class PreviewNotApprovedError(PreviewError):
    """Raised when executing a preview that has not been approved."""

    code = "PREVIEW_NOT_APPROVED"
    default_suggestion = "Approve the preview before executing it."


class PreviewRejectedError(PreviewError):
    """Raised when approving or executing a preview that was rejected."""

    code = "PREVIEW_REJECTED"
    default_suggestion = "Re-send the command to obtain a fresh preview."


class PreviewAlreadyExecutedError(PreviewError):
    """Raised when a preview that already ran is approved, rejected or run again."""

    code = "PREVIEW_ALREADY_EXECUTED"
    default_suggestion = "Use the rollback id from the original result to undo it."


class PreviewCapacityError(PreviewError):
    """Raised when the pending preview limit is reached."""

    code = "PREVIEW_CAPACITY_EXCEEDED"
    default_suggestion = (
        "Approve, reject or wait for pending previews to expire before "
        "requesting new ones."
    )


# ── Rollback Exceptions ──────────────────────────────────────────────────────


class RollbackError(AegisGuardError):
    """Base exception for rollback errors."""

    code = "ROLLBACK_ERROR"


class RollbackNotAvailableError(RollbackError):
    """Raised when a rollback state is missing or was already rolled back."""

    code = "ROLLBACK_NOT_AVAILABLE"
    recoverable = True
    default_suggestion = "List the session's rollback history for undoable actions."


class RollbackGroupNotFoundError(RollbackError):
    """Raised when a rollback group id is unknown."""

    code = "ROLLBACK_GROUP_NOT_FOUND"


# ── Execution Exceptions ─────────────────────────────────────────────────────


class ExecutionError(AegisGuardError):
    """Base exception for action execution errors."""

    code = "EXECUTION_ERROR"
    recoverable = True
    default_suggestion = "Review the error details and retry with corrected parameters."


class ExecutionTimeoutError(ExecutionError):
    """
    Raised when a handler does not finish within its deadline.

    The handler itself keeps running; only its result is discarded.
    """

    default_suggestion = (
        "The action may still complete on the target. Inspect the target "
        "state before retrying."
    )

    def __init__(self, command: str, timeout_seconds: float) -> None:
        self.command = command
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f'Execution of "{command}" timed out after {timeout_seconds:g}s',
            {"command": command, "timeout_seconds": timeout_seconds, "timed_out": True},
        )


class HandlerNotFoundError(ExecutionError):
    """Raised when no handler is registered for a command."""

    code = "HANDLER_NOT_FOUND"
    recoverable = False
    default_suggestion = "Register a handler for this command or check its spelling."

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(
            f'No handler registered for command "{command}"', {"command": command}
        )


class ValidationFailedError(ExecutionError):
    """Raised when the policy collaborator rejects an action."""

    code = "VALIDATION_FAILED"
    default_suggestion = "Adjust the parameters or ask an operator to relax the policy."


# ── Domain Exceptions ────────────────────────────────────────────────────────


class DomainError(AegisGuardError):
    """
    Base class for typed errors raised by command handlers.

    Subclasses set their own ``code``, ``recoverable`` and suggestion, and
    the orchestrator passes them through to the caller unchanged.
    """

    code = "DOMAIN_ERROR"
    recoverable = True


class TargetNotFoundError(DomainError):
    """Raised by a handler when the remote entity does not exist."""

    code = "TARGET_NOT_FOUND"
    default_suggestion = (
        "Query the target for its current entities and verify the path, "
        "which is case-sensitive."
    )

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"Target not found: {target}", {"target": target})
