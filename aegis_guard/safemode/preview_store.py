"""
Preview Store
~~~~~~~~~~~~~

Gates risky actions behind an approval step and tracks their outcome.

A preview is created with its predicted changes and a risk assessment,
auto-approved when the risk is low enough, and otherwise waits for an
explicit approval or rejection until it expires. Expiry is enforced
lazily on every read and by a periodic sweep that bounds memory.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from aegis_guard.clock import Clock, SystemClock
from aegis_guard.config.schema import SafeModeConfig
from aegis_guard.core.models import (
    ActionPreview,
    ApprovalRequest,
    ChangePreview,
    RejectionRequest,
    new_id,
)
from aegis_guard.core.sweeper import PeriodicSweeper
from aegis_guard.exceptions import (
    PreviewAlreadyExecutedError,
    PreviewCapacityError,
    PreviewExpiredError,
    PreviewRejectedError,
)
from aegis_guard.safemode.risk import assess_risk, should_auto_approve

__all__ = ["PreviewStore", "ChangeAnalysis"]

logger = logging.getLogger(__name__)

ChangeAnalysis = Callable[[], Awaitable[list[ChangePreview]] | list[ChangePreview]]


class PreviewStore:
    """
    Owns every ActionPreview for the lifetime of the process.

    Capacity is a hard admission limit, not an LRU: when full, expired
    previews are swept and, if that frees nothing, creation fails.
    A slot is reserved before the change analyzer is awaited so that
    concurrent creations cannot overshoot the limit.
    """

    def __init__(
        self,
        config: SafeModeConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or SafeModeConfig()
        self._clock = clock or SystemClock()
        self._previews: dict[str, ActionPreview] = {}
        self._reserved = 0
        self._enabled = self._config.enabled
        self._sweeper = PeriodicSweeper(
            name="preview",
            interval_seconds=self._config.cleanup_interval_seconds,
            sweep=self.sweep,
        )

        logger.info(
            "Preview store initialized (enabled=%s, expiration=%ss, auto_approve=%s)",
            self._enabled,
            self._config.preview_expiration_seconds,
            self._config.auto_approve_level,
        )

    # ── Properties ─────────────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        """Whether safe mode gating is active."""
        return self._enabled

    @property
    def config(self) -> SafeModeConfig:
        return self._config

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable safe mode gating."""
        self._enabled = enabled
        logger.info("Safe mode %s", "enabled" if enabled else "disabled")

    def __len__(self) -> int:
        return len(self._previews)

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic expiry sweep (requires a running event loop)."""
        self._sweeper.start()

    async def stop(self) -> None:
        """Stop the periodic expiry sweep."""
        await self._sweeper.stop()

    # ── Creation ───────────────────────────────────────────────────

    async def create_preview(
        self,
        command: str,
        params: dict[str, Any],
        analyze_changes: ChangeAnalysis,
        session_id: str,
        user_id: str | None = None,
    ) -> ActionPreview:
        """
        Create a preview, assessing its risk and auto-approving if allowed.

        Args:
            command: The command to preview.
            params: Its parameters (copied; the caller's dict is not kept).
            analyze_changes: Callable predicting the changes. May be async
                and may itself query the remote target.
            session_id: Owning session.
            user_id: Optional requesting user.

        Returns:
            The stored ActionPreview.

        Raises:
            PreviewCapacityError: If the pending preview limit is reached.
        """
        self._reserve_slot()
        try:
            changes = analyze_changes()
            if inspect.isawaitable(changes):
                changes = await changes
            changes = list(changes)

            now = self._clock.now()
            assessment = assess_risk(command, changes)
            preview = ActionPreview(
                id=new_id(),
                command=command,
                params=dict(params),
                created_at=now,
                expires_at=now
                + timedelta(seconds=self._config.preview_expiration_seconds),
                changes=changes,
                risk_assessment=assessment,
                session_id=session_id,
                user_id=user_id,
            )

            if should_auto_approve(
                command,
                assessment,
                self._config.auto_approve_threshold,
                self._config.require_explicit_approval,
            ):
                preview.approved = True
                logger.info(
                    "Preview %s auto-approved (command=%s, risk=%s)",
                    preview.id,
                    command,
                    assessment.level.value,
                )

            self._previews[preview.id] = preview
        finally:
            self._reserved -= 1

        logger.info(
            "Preview %s created (command=%s, changes=%d, risk=%s, auto_approved=%s)",
            preview.id,
            command,
            len(changes),
            assessment.level.value,
            preview.approved,
        )
        return preview

    def _reserve_slot(self) -> None:
        limit = self._config.max_pending_previews
        if len(self._previews) + self._reserved >= limit:
            self.sweep()
            if len(self._previews) + self._reserved >= limit:
                raise PreviewCapacityError(
                    f"Maximum pending previews limit reached ({limit})",
                    {"limit": limit},
                )
        self._reserved += 1

    # ── Approval ───────────────────────────────────────────────────

    def approve_preview(self, request: ApprovalRequest) -> ActionPreview:
        """
        Approve a pending preview, merging any amended parameters.

        Raises:
            PreviewExpiredError: If the preview is unknown or expired.
            PreviewRejectedError: If it was rejected.
            PreviewAlreadyExecutedError: If it already ran.
        """
        preview = self._require_live(request.preview_id)

        if preview.rejected:
            raise PreviewRejectedError("Cannot approve a rejected preview")
        if preview.executed:
            raise PreviewAlreadyExecutedError("Preview has already been executed")

        if request.modified_params:
            preview.params = {**preview.params, **request.modified_params}

        preview.approved = True
        preview.approved_by = request.approved_by
        preview.approval_note = request.note

        logger.info(
            "Preview %s approved (by=%s, note=%s)",
            preview.id,
            request.approved_by,
            request.note,
        )
        return preview

    def reject_preview(self, request: RejectionRequest) -> ActionPreview:
        """
        Reject a preview. Rejected previews are kept for the audit trail.

        Raises:
            PreviewExpiredError: If the preview is unknown or expired.
            PreviewAlreadyExecutedError: If it already ran.
        """
        preview = self._require_live(request.preview_id)

        if preview.executed:
            raise PreviewAlreadyExecutedError("Preview has already been executed")

        preview.rejected = True
        preview.rejected_by = request.rejected_by
        preview.rejection_reason = request.reason

        logger.info(
            "Preview %s rejected (by=%s, reason=%s)",
            preview.id,
            request.rejected_by,
            request.reason,
        )
        return preview

    def mark_executed(
        self,
        preview_id: str,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        """Record the outcome of a preview's execution. No-op for unknown ids."""
        preview = self._previews.get(preview_id)
        if preview is None:
            return
        if preview.rejected:
            logger.warning("Ignoring execution report for rejected preview %s", preview_id)
            return

        preview.executed = True
        preview.executed_at = self._clock.now()
        preview.result = result
        preview.error = error

        logger.info(
            "Preview %s executed (success=%s, error=%s)",
            preview_id,
            error is None,
            error,
        )

    # ── Queries ────────────────────────────────────────────────────

    def get_preview(self, preview_id: str) -> ActionPreview | None:
        """Return a preview, or None if unknown or expired (expired ones are dropped)."""
        preview = self._previews.get(preview_id)
        if preview is not None and preview.is_expired(self._clock.now()):
            del self._previews[preview_id]
            logger.debug("Preview %s expired on read", preview_id)
            return None
        return preview

    def get_pending_previews(self, session_id: str) -> list[ActionPreview]:
        """Unexpired previews of a session still awaiting a decision, newest first."""
        now = self._clock.now()
        pending = [
            p
            for p in self._previews.values()
            if p.session_id == session_id
            and not p.executed
            and not p.rejected
            and p.expires_at > now
        ]
        return sorted(pending, key=lambda p: p.created_at, reverse=True)

    def get_execution_history(
        self, session_id: str, limit: int = 50
    ) -> list[ActionPreview]:
        """Executed previews of a session, most recently executed first."""
        history = [
            p for p in self._previews.values() if p.session_id == session_id and p.executed
        ]
        history.sort(key=lambda p: p.executed_at or p.created_at, reverse=True)
        return history[:limit]

    # ── Maintenance ────────────────────────────────────────────────

    def sweep(self) -> int:
        """
        Drop expired unexecuted previews and executed ones past retention.

        Returns:
            Number of previews removed.
        """
        now = self._clock.now()
        retention = timedelta(seconds=self._config.executed_retention_seconds)
        stale = [
            pid
            for pid, p in self._previews.items()
            if p.is_expired(now)
            or (p.executed and p.executed_at is not None and now - p.executed_at > retention)
        ]
        for pid in stale:
            del self._previews[pid]

        if stale:
            logger.debug("Cleaned up %d expired preview(s)", len(stale))
        return len(stale)

    def _require_live(self, preview_id: str) -> ActionPreview:
        preview = self._previews.get(preview_id)
        if preview is None:
            raise PreviewExpiredError(preview_id)
        if preview.is_expired(self._clock.now()):
            del self._previews[preview_id]
            raise PreviewExpiredError(preview_id)
        return preview
