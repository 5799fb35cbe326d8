"""
Handler Registry
~~~~~~~~~~~~~~~~

Maps command names to their handlers, change analyzers and the
declarative metadata that describes how each command is undone.

Commands registered without inverse metadata fall back to the
name-based heuristics in :mod:`aegis_guard.rollback.inversion`, unless
the registry runs in strict mode.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from aegis_guard.core.levels import ChangeType
from aegis_guard.core.models import (
    ChangePreview,
    ExecutionContext,
    HandlerOutcome,
    PreparedRollback,
)
from aegis_guard.exceptions import HandlerNotFoundError, HandlerRegistrationError
from aegis_guard.rollback.inversion import (
    infer_change_type,
    invert_command,
    invert_params,
)

__all__ = ["CommandSpec", "HandlerRegistry", "Handler", "ChangeAnalyzer", "InverseParamsBuilder"]

logger = logging.getLogger(__name__)

Handler = Callable[
    [dict[str, Any], ExecutionContext],
    Awaitable[HandlerOutcome | dict[str, Any]] | HandlerOutcome | dict[str, Any],
]
ChangeAnalyzer = Callable[
    [dict[str, Any], ExecutionContext],
    Awaitable[list[ChangePreview]] | list[ChangePreview],
]
# (target, previous_state, params) -> inverse params
InverseParamsBuilder = Callable[[str, dict[str, Any], dict[str, Any]], dict[str, Any]]


@dataclass
class CommandSpec:
    """
    Everything the orchestrator knows about one command.

    Attributes:
        command: Command name.
        handler: Performs the mutation against the remote target.
        analyzer: Optional predictor of the command's changes.
        inverse_command: Command that undoes this one.
        inverse_params: Builds the inverse parameters from the target,
            its previous state and the original parameters.
        change_type: Kind of change, used for generic previews.
        reversible: When False, executions are never recorded for rollback.
    """

    command: str
    handler: Handler
    analyzer: ChangeAnalyzer | None = None
    inverse_command: str | None = None
    inverse_params: InverseParamsBuilder | None = None
    change_type: ChangeType | None = None
    reversible: bool = True

    @property
    def effective_change_type(self) -> ChangeType:
        return self.change_type or infer_change_type(self.command)

    def build_inverse(
        self,
        target: str,
        previous_state: dict[str, Any],
        params: dict[str, Any],
    ) -> PreparedRollback | None:
        """
        Return the declared inverse, or None to let the ledger derive one.

        A declared inverse command without a params builder reuses the
        heuristic parameters for that command.
        """
        if self.inverse_command is None and self.inverse_params is None:
            return None

        command = self.inverse_command or invert_command(self.command)
        if self.inverse_params is not None:
            inverse = self.inverse_params(target, previous_state, params)
        else:
            inverse = invert_params(self.command, target, previous_state)
        return PreparedRollback(command=command, params=dict(inverse))


class HandlerRegistry:
    """
    Registry mapping command names to CommandSpecs.

    Args:
        require_inverse_metadata: When True, reversible commands must
            declare ``inverse_command`` at registration.
    """

    def __init__(self, require_inverse_metadata: bool = False) -> None:
        self._specs: dict[str, CommandSpec] = {}
        self._strict = require_inverse_metadata

    def register(self, spec: CommandSpec) -> None:
        """
        Register (or replace) the spec for a command.

        Raises:
            HandlerRegistrationError: If the spec is incomplete.
        """
        if not spec.command:
            raise HandlerRegistrationError("Command name must not be empty")
        if not callable(spec.handler):
            raise HandlerRegistrationError(
                f"Handler for {spec.command!r} is not callable"
            )
        if self._strict and spec.reversible and spec.inverse_command is None:
            raise HandlerRegistrationError(
                f"Command {spec.command!r} is reversible but declares no inverse_command",
                {"command": spec.command},
                suggestion="Pass inverse_command=..., or reversible=False.",
            )

        if spec.command in self._specs:
            logger.warning("Replacing handler for command %s", spec.command)
        self._specs[spec.command] = spec
        logger.debug(
            "Registered handler for %s (analyzer=%s, inverse=%s)",
            spec.command,
            spec.analyzer is not None,
            spec.inverse_command,
        )

    def unregister(self, command: str) -> bool:
        """Remove a command. Returns True if it was registered."""
        return self._specs.pop(command, None) is not None

    def get(self, command: str) -> CommandSpec:
        """
        Return the spec for a command.

        Raises:
            HandlerNotFoundError: If nothing is registered for it.
        """
        spec = self._specs.get(command)
        if spec is None:
            raise HandlerNotFoundError(command)
        return spec

    def has(self, command: str) -> bool:
        return command in self._specs

    @property
    def commands(self) -> list[str]:
        """Registered command names, in registration order."""
        return list(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def clear(self) -> None:
        self._specs.clear()
