"""
Static Policy
~~~~~~~~~~~~~

Configuration-driven policy: glob deny list, glob require-approval
list, and a bounded in-memory record of executed actions.
"""

from __future__ import annotations

import fnmatch
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any

from aegis_guard.config.schema import PolicyConfig
from aegis_guard.policy.base import BasePolicy, ValidationResult

__all__ = ["StaticPolicy", "RecordedAction"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedAction:
    """One entry of the policy's action record."""

    command: str
    target: str
    success: bool
    session_id: str


class StaticPolicy(BasePolicy):
    """
    Matches command names against glob patterns from the config.

    Example::

        policy = StaticPolicy(PolicyConfig(
            denied_commands=["drop_*"],
            require_approval_for=["delete_*"],
        ))
    """

    def __init__(self, config: PolicyConfig | None = None) -> None:
        self._config = config or PolicyConfig()
        self._actions: deque[RecordedAction] = deque(
            maxlen=self._config.max_recorded_actions
        )

    @property
    def name(self) -> str:
        return "static_policy"

    async def validate_action(
        self,
        command: str,
        target: str,
        params: dict[str, Any],
        session_id: str,
    ) -> ValidationResult:
        denied = _first_match(command, self._config.denied_commands)
        if denied is not None:
            logger.info("Command %s denied by pattern %r", command, denied)
            return ValidationResult(
                valid=False,
                reason=f'Command "{command}" is denied by policy pattern "{denied}"',
            )

        approval = _first_match(command, self._config.require_approval_for)
        return ValidationResult(valid=True, requires_approval=approval is not None)

    async def record_action(
        self,
        command: str,
        target: str,
        success: bool,
        session_id: str,
    ) -> None:
        self._actions.append(RecordedAction(command, target, success, session_id))

    def recorded_actions(self, session_id: str | None = None) -> list[RecordedAction]:
        """Recorded actions, oldest first, optionally for one session."""
        if session_id is None:
            return list(self._actions)
        return [a for a in self._actions if a.session_id == session_id]


def _first_match(command: str, patterns: list[str]) -> str | None:
    for pattern in patterns:
        if fnmatch.fnmatchcase(command, pattern):
            return pattern
    return None
