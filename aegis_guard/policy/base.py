"""
aegis-guard Base Policy
~~~~~~~~~~~~~~~~~~~~~~~

Abstract base class for the policy collaborator consulted by the
orchestrator before every action. Custom policies extend this class
and implement validate_action() and record_action().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

__all__ = ["BasePolicy", "ValidationResult"]


@dataclass(frozen=True)
class ValidationResult:
    """
    A policy's decision about one action.

    Attributes:
        valid: False blocks the action outright.
        reason: Human-readable explanation, surfaced on rejection.
        requires_approval: True routes the action through the preview gate.
    """

    valid: bool
    reason: str | None = None
    requires_approval: bool = False


class BasePolicy(ABC):
    """
    Abstract base class for policy collaborators.

    Subclasses must implement:
        - validate_action(): Decide whether an action may run.
        - record_action(): Audit hook called after every execution.

    Optionally override:
        - name: Identifier used in logs.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def validate_action(
        self,
        command: str,
        target: str,
        params: dict[str, Any],
        session_id: str,
    ) -> ValidationResult:
        """
        Validate an action before it is executed.

        Args:
            command: The command about to run.
            target: Identifier of the remote entity it touches.
            params: Its parameters.
            session_id: Owning session.

        Returns:
            ValidationResult with the decision.
        """
        ...

    @abstractmethod
    async def record_action(
        self,
        command: str,
        target: str,
        success: bool,
        session_id: str,
    ) -> None:
        """Record the outcome of an executed action."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
