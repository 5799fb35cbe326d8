"""
Rollback Ledger
~~~~~~~~~~~~~~~

Records reversible state transitions and hands out the inverse actions
that undo them.

History is bounded two ways: by size (the single oldest state is
evicted when the ledger is full) and by age (a periodic sweep drops
states and groups older than the configured maximum age).
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from aegis_guard.clock import Clock, SystemClock
from aegis_guard.config.schema import RollbackConfig
from aegis_guard.core.models import (
    PreparedRollback,
    RollbackGroup,
    RollbackState,
    new_id,
)
from aegis_guard.core.sweeper import PeriodicSweeper
from aegis_guard.exceptions import (
    RollbackGroupNotFoundError,
    RollbackNotAvailableError,
)
from aegis_guard.rollback.inversion import invert_command, invert_params

__all__ = ["RollbackLedger"]

logger = logging.getLogger(__name__)


class RollbackLedger:
    """
    Owns every RollbackState and RollbackGroup.

    States are indexed by id and by session (in recording order) so a
    session's history can be walked newest-first.
    """

    def __init__(
        self,
        config: RollbackConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or RollbackConfig()
        self._clock = clock or SystemClock()
        self._history: dict[str, RollbackState] = {}
        self._groups: dict[str, RollbackGroup] = {}
        self._sessions: dict[str, list[str]] = {}
        self._sweeper = PeriodicSweeper(
            name="rollback",
            interval_seconds=self._config.cleanup_interval_seconds,
            sweep=self.sweep,
        )

        logger.info(
            "Rollback ledger initialized (max_size=%d, max_age=%ss)",
            self._config.max_history_size,
            self._config.max_history_age_seconds,
        )

    @property
    def config(self) -> RollbackConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._history)

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic age sweep if auto-cleanup is enabled."""
        if self._config.enable_auto_cleanup:
            self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()

    # ── Recording ──────────────────────────────────────────────────

    def record_state(
        self,
        action_id: str,
        command: str,
        target: str,
        previous_state: dict[str, Any],
        new_state: dict[str, Any],
        session_id: str,
        inverse: PreparedRollback | None = None,
    ) -> RollbackState:
        """
        Record an executed action for potential rollback.

        Args:
            action_id: Request id of the executed action.
            command: The command that was executed.
            target: Identifier of the remote entity it changed.
            previous_state: State of the target before the change.
            new_state: State of the target after the change.
            session_id: Owning session.
            inverse: Explicit inverse command/params. Derived from the
                command name when omitted.

        Returns:
            The new RollbackState.
        """
        if inverse is not None:
            rollback_command = inverse.command
            rollback_params = dict(inverse.params)
        else:
            rollback_command = invert_command(command)
            rollback_params = invert_params(command, target, previous_state)

        state = RollbackState(
            id=new_id(),
            action_id=action_id,
            command=command,
            target=target,
            previous_state=previous_state,
            new_state=new_state,
            rollback_command=rollback_command,
            rollback_params=rollback_params,
            session_id=session_id,
            created_at=self._clock.now(),
        )

        if len(self._history) >= self._config.max_history_size:
            self._evict_oldest()

        self._history[state.id] = state
        self._sessions.setdefault(session_id, []).append(state.id)

        logger.debug(
            "Rollback state %s recorded (action=%s, command=%s, target=%s, inverse=%s)",
            state.id,
            action_id,
            command,
            target,
            rollback_command,
        )
        return state

    # ── Queries ────────────────────────────────────────────────────

    def get_state(self, rollback_id: str) -> RollbackState | None:
        return self._history.get(rollback_id)

    def get_session_history(self, session_id: str, limit: int = 50) -> list[RollbackState]:
        """Undoable states of a session, newest first."""
        ids = self._sessions.get(session_id, [])
        states: list[RollbackState] = []
        for state_id in reversed(ids[-limit:]):
            state = self._history.get(state_id)
            if state is not None and not state.rolled_back:
                states.append(state)
        return states

    def get_latest_state_for_target(
        self, target: str, session_id: str
    ) -> RollbackState | None:
        """
        Most recent undoable state of a session that touched ``target``.

        Actions without an identifiable target are recorded with an empty
        target and never match.
        """
        if not target:
            return None
        for state_id in reversed(self._sessions.get(session_id, [])):
            state = self._history.get(state_id)
            if state is not None and state.target == target and not state.rolled_back:
                return state
        return None

    def can_rollback(self, rollback_id: str) -> bool:
        state = self._history.get(rollback_id)
        return state is not None and not state.rolled_back

    def get_available_rollback_count(self, session_id: str) -> int:
        """Number of undoable states recorded for a session."""
        return sum(
            1
            for state_id in self._sessions.get(session_id, [])
            if self.can_rollback(state_id)
        )

    # ── Groups ─────────────────────────────────────────────────────

    def create_group(
        self, name: str, session_id: str, description: str | None = None
    ) -> RollbackGroup:
        """Create an empty group for the states of one batch action."""
        group = RollbackGroup(
            id=new_id(),
            name=name,
            session_id=session_id,
            created_at=self._clock.now(),
            description=description,
        )
        self._groups[group.id] = group
        logger.debug("Rollback group %s created (%s)", group.id, name)
        return group

    def get_group(self, group_id: str) -> RollbackGroup | None:
        return self._groups.get(group_id)

    def add_to_group(self, group_id: str, state: RollbackState) -> None:
        """
        Append a state to a group, preserving application order.

        Raises:
            RollbackGroupNotFoundError: If the group is unknown.
        """
        group = self._groups.get(group_id)
        if group is None:
            raise RollbackGroupNotFoundError(f"Rollback group {group_id} not found")
        group.states.append(state)

    # ── Rollback ───────────────────────────────────────────────────

    def prepare_rollback(self, rollback_id: str) -> PreparedRollback:
        """
        Return the inverse action for a state.

        Raises:
            RollbackNotAvailableError: If the state is unknown or already
                rolled back.
        """
        state = self._history.get(rollback_id)
        if state is None:
            raise RollbackNotAvailableError(f"Rollback state {rollback_id} not found")
        if state.rolled_back:
            raise RollbackNotAvailableError(
                f"Rollback state {rollback_id} has already been rolled back"
            )
        return PreparedRollback(
            command=state.rollback_command,
            params=dict(state.rollback_params),
            state_id=state.id,
        )

    def prepare_group_rollback(self, group_id: str) -> list[PreparedRollback]:
        """
        Return the inverse actions of a group's pending members, last applied first.

        Raises:
            RollbackGroupNotFoundError: If the group is unknown.
        """
        group = self._groups.get(group_id)
        if group is None:
            raise RollbackGroupNotFoundError(f"Rollback group {group_id} not found")
        return [
            PreparedRollback(
                command=state.rollback_command,
                params=dict(state.rollback_params),
                state_id=state.id,
            )
            for state in reversed(group.states)
            if not state.rolled_back
        ]

    def mark_rolled_back(self, rollback_id: str) -> None:
        """Flag a state as rolled back. Idempotent; unknown ids are ignored."""
        state = self._history.get(rollback_id) or self._find_group_member(rollback_id)
        if state is None or state.rolled_back:
            return
        state.rolled_back = True
        state.rolled_back_at = self._clock.now()
        logger.info(
            "State %s rolled back (command=%s, target=%s)",
            rollback_id,
            state.command,
            state.target,
        )

    # ── Maintenance ────────────────────────────────────────────────

    def clear_session_history(self, session_id: str) -> None:
        """Forget every state recorded for a session."""
        for state_id in self._sessions.pop(session_id, []):
            self._history.pop(state_id, None)
        logger.info("Session %s rollback history cleared", session_id)

    def sweep(self) -> int:
        """
        Drop states and groups older than the configured maximum age.

        Returns:
            Number of states removed.
        """
        cutoff = self._clock.now() - timedelta(
            seconds=self._config.max_history_age_seconds
        )
        stale = [sid for sid, s in self._history.items() if s.created_at < cutoff]
        for state_id in stale:
            self._remove(state_id)

        for group_id in [g.id for g in self._groups.values() if g.created_at < cutoff]:
            del self._groups[group_id]

        if stale:
            logger.debug("Cleaned up %d old rollback state(s)", len(stale))
        return len(stale)

    def _evict_oldest(self) -> None:
        oldest = min(self._history.values(), key=lambda s: s.created_at, default=None)
        if oldest is not None:
            self._remove(oldest.id)
            logger.debug("Evicted oldest rollback state %s", oldest.id)

    def _remove(self, state_id: str) -> None:
        state = self._history.pop(state_id, None)
        if state is None:
            return
        session_ids = self._sessions.get(state.session_id)
        if session_ids and state_id in session_ids:
            session_ids.remove(state_id)

    def _find_group_member(self, state_id: str) -> RollbackState | None:
        for group in self._groups.values():
            for state in group.states:
                if state.id == state_id:
                    return state
        return None
