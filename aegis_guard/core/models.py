"""
aegis-guard Data Models
~~~~~~~~~~~~~~~~~~~~~~~

Defines the dataclasses that flow through the execution pipeline:
previews and risk assessments (safe mode), rollback states and groups
(undo ledger), and the context/result pair every entry point shares.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from aegis_guard.core.levels import ChangeType, RiskLevel

__all__ = [
    "ChangePreview",
    "RiskAssessment",
    "ActionPreview",
    "ApprovalRequest",
    "RejectionRequest",
    "RollbackState",
    "RollbackGroup",
    "PreparedRollback",
    "ExecutionContext",
    "HandlerOutcome",
    "ErrorInfo",
    "ExecutionResult",
    "ExecutorMetrics",
    "GroupRollbackReport",
    "AuditEntry",
    "AuditFilter",
    "new_id",
    "new_request_id",
    "create_execution_context",
]


def new_id() -> str:
    """Return a fresh random identifier."""
    return str(uuid.uuid4())


def new_request_id() -> str:
    """Return a fresh request identifier."""
    return f"req_{uuid.uuid4().hex[:16]}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ── Safe Mode ────────────────────────────────────────────────────────────────


@dataclass
class ChangePreview:
    """
    One predicted effect of an action on a single target.

    Attributes:
        type: Kind of change (create, modify, delete, move).
        target: Identifier of the affected remote entity.
        description: Human-readable summary of the change.
        before: Optional snapshot of the target before the change.
        after: Optional snapshot of the target after the change.
        affected_dependencies: Identifiers of entities that depend on the target.
    """

    type: ChangeType
    target: str
    description: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    affected_dependencies: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "target": self.target,
            "description": self.description,
            "before": self.before,
            "after": self.after,
            "affected_dependencies": list(self.affected_dependencies),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """
    Deterministic danger classification of a preview. Never mutated.

    Attributes:
        level: Overall risk level.
        factors: Human-readable reasons that contributed to the level.
        reversible: Whether the action can be undone at all.
        rollback_possible: Whether the rollback ledger can undo it.
        estimated_impact: Summary such as "Will delete 2 object(s)".
        affected_objects: Number of predicted changes.
    """

    level: RiskLevel
    factors: tuple[str, ...] = ()
    reversible: bool = True
    rollback_possible: bool = True
    estimated_impact: str = "No changes detected"
    affected_objects: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "factors": list(self.factors),
            "reversible": self.reversible,
            "rollback_possible": self.rollback_possible,
            "estimated_impact": self.estimated_impact,
            "affected_objects": self.affected_objects,
        }


@dataclass
class ActionPreview:
    """
    A proposed action awaiting approval, with its predicted effects.

    Owned by the PreviewStore; other components hold it by id and change
    it only through the store's API. ``approved``, ``rejected`` and
    ``executed`` only ever go from False to True, and a preview is never
    both rejected and executed.
    """

    id: str
    command: str
    params: dict[str, Any]
    created_at: datetime
    expires_at: datetime
    changes: list[ChangePreview]
    risk_assessment: RiskAssessment
    session_id: str
    user_id: str | None = None
    approved: bool = False
    rejected: bool = False
    executed: bool = False
    executed_at: datetime | None = None
    result: Any = None
    error: str | None = None
    approved_by: str | None = None
    approval_note: str | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None

    def is_expired(self, now: datetime) -> bool:
        """Expired previews are only those that never ran."""
        return not self.executed and now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "command": self.command,
            "params": self.params,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "changes": [c.to_dict() for c in self.changes],
            "risk_assessment": self.risk_assessment.to_dict(),
            "approved": self.approved,
            "rejected": self.rejected,
            "executed": self.executed,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "result": self.result,
            "error": self.error,
            "session_id": self.session_id,
            "user_id": self.user_id,
        }


@dataclass(frozen=True)
class ApprovalRequest:
    """Approval of a pending preview, optionally amending its parameters."""

    preview_id: str
    approved_by: str | None = None
    note: str | None = None
    modified_params: dict[str, Any] | None = None


@dataclass(frozen=True)
class RejectionRequest:
    """Rejection of a pending preview."""

    preview_id: str
    rejected_by: str | None = None
    reason: str | None = None


# ── Rollback ─────────────────────────────────────────────────────────────────


@dataclass
class RollbackState:
    """
    Before/after snapshot of one executed action plus its inverse.

    Only ``rolled_back`` and ``rolled_back_at`` change after creation.
    """

    id: str
    action_id: str
    command: str
    target: str
    previous_state: dict[str, Any]
    new_state: dict[str, Any]
    rollback_command: str
    rollback_params: dict[str, Any]
    session_id: str
    created_at: datetime = field(default_factory=_utcnow)
    rolled_back: bool = False
    rolled_back_at: datetime | None = None


@dataclass
class RollbackGroup:
    """Ordered set of rollback states belonging to one batch action."""

    id: str
    name: str
    session_id: str
    created_at: datetime = field(default_factory=_utcnow)
    states: list[RollbackState] = field(default_factory=list)
    description: str | None = None


@dataclass(frozen=True)
class PreparedRollback:
    """The inverse command and parameters that undo one rollback state."""

    command: str
    params: dict[str, Any]
    state_id: str | None = None


# ── Execution ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExecutionContext:
    """
    Caller identity and pipeline switches for one execution.

    Passed by value; the pipeline derives new contexts with
    ``dataclasses.replace`` rather than mutating this one.

    Attributes:
        session_id: Session the action belongs to.
        user_id: Optional end-user identity.
        request_id: Unique id of this request (auto-generated).
        safe_mode_override: Skip the preview gate (already approved).
        skip_validation: Skip the policy check (used for rollbacks).
        metadata: Arbitrary caller metadata, readable by handlers.
        rollback_group_id: Add the recorded rollback state to this group.
    """

    session_id: str
    user_id: str | None = None
    request_id: str = field(default_factory=new_request_id)
    safe_mode_override: bool = False
    skip_validation: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)
    rollback_group_id: str | None = None


def create_execution_context(session_id: str, **options: Any) -> ExecutionContext:
    """Create an ExecutionContext with a fresh request id."""
    return ExecutionContext(session_id=session_id, **options)


@dataclass
class HandlerOutcome:
    """
    What a command handler reports back.

    Attributes:
        result: Opaque payload returned to the caller, passed through as is.
        previous_state: State of the target before the mutation. When
            present the action is recorded for rollback.
        new_state: State of the target after the mutation.
    """

    result: Any = None
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None

    @classmethod
    def coerce(cls, value: Any) -> HandlerOutcome:
        """
        Accept a HandlerOutcome, an outcome mapping, or a bare payload.

        A mapping is read as an outcome when it carries any of the
        ``result``, ``previous_state`` or ``new_state`` keys; anything
        else becomes the result unchanged.
        """
        if isinstance(value, HandlerOutcome):
            return value
        if isinstance(value, Mapping) and _OUTCOME_KEYS.intersection(value):
            return cls(
                result=value.get("result"),
                previous_state=value.get("previous_state"),
                new_state=value.get("new_state"),
            )
        return cls(result=value)

    @property
    def resulting_state(self) -> dict[str, Any]:
        """``new_state``, falling back to the result when none was reported."""
        if self.new_state is not None:
            return self.new_state
        if self.result is None:
            return {}
        if isinstance(self.result, Mapping):
            return dict(self.result)
        return {"result": self.result}


_OUTCOME_KEYS = frozenset({"result", "previous_state", "new_state"})


@dataclass(frozen=True)
class ErrorInfo:
    """Structured error surfaced in an ExecutionResult."""

    code: str
    message: str
    recoverable: bool = True
    suggestion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


@dataclass
class ExecutionResult:
    """
    The single return shape of every pipeline entry point.

    Attributes:
        success: Whether the request completed without error. A request
            parked behind an approval step also reports success.
        request_id: Matches the originating ExecutionContext.
        command: The command that was (or would have been) executed.
        result: Handler payload on success.
        error: Structured error on failure.
        preview: The preview attached when approval was involved.
        rollback_id: Id of the recorded rollback state, if any.
        execution_time_ms: Wall-clock time spent in the pipeline.
        metadata: Extra flags such as ``requires_approval``.
    """

    success: bool
    request_id: str
    command: str
    result: Any = None
    error: ErrorInfo | None = None
    preview: ActionPreview | None = None
    rollback_id: str | None = None
    execution_time_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def requires_approval(self) -> bool:
        return bool(self.metadata.get("requires_approval"))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "success": self.success,
            "request_id": self.request_id,
            "command": self.command,
            "result": self.result,
            "error": self.error.to_dict() if self.error else None,
            "preview": self.preview.to_dict() if self.preview else None,
            "rollback_id": self.rollback_id,
            "execution_time_ms": self.execution_time_ms,
            "metadata": self.metadata,
        }


@dataclass
class GroupRollbackReport:
    """Summary of undoing a rollback group."""

    group_id: str
    results: list[ExecutionResult] = field(default_factory=list)
    rolled_back: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Return True if every member was rolled back."""
        return not self.failed and not self.skipped


@dataclass
class ExecutorMetrics:
    """Prometheus-style metrics snapshot."""

    total_executions: int = 0
    success_count: int = 0
    error_count: int = 0
    total_execution_time_ms: float = 0.0
    previews_created: int = 0
    previews_auto_approved: int = 0
    pending_approvals: int = 0
    rollbacks_recorded: int = 0
    rollbacks_executed: int = 0
    timeouts: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of executions that succeeded."""
        if self.total_executions == 0:
            return 0.0
        return self.success_count / self.total_executions * 100

    @property
    def average_execution_time_ms(self) -> float:
        if self.total_executions == 0:
            return 0.0
        return self.total_execution_time_ms / self.total_executions

    def to_prometheus(self) -> str:
        """Render as Prometheus text exposition format."""
        lines = [
            f"aegis_guard_total_executions {self.total_executions}",
            f"aegis_guard_success_count {self.success_count}",
            f"aegis_guard_error_count {self.error_count}",
            f"aegis_guard_success_rate {self.success_rate}",
            f"aegis_guard_average_execution_time_ms {self.average_execution_time_ms}",
            f"aegis_guard_previews_created {self.previews_created}",
            f"aegis_guard_previews_auto_approved {self.previews_auto_approved}",
            f"aegis_guard_pending_approvals {self.pending_approvals}",
            f"aegis_guard_rollbacks_recorded {self.rollbacks_recorded}",
            f"aegis_guard_rollbacks_executed {self.rollbacks_executed}",
            f"aegis_guard_timeouts {self.timeouts}",
        ]
        return "\n".join(lines) + "\n"


# ── Audit ────────────────────────────────────────────────────────────────────


@dataclass
class AuditEntry:
    """
    Structured record of one pipeline outcome.

    Attributes:
        request_id: Id of the originating request.
        command: The command that was (or would have been) executed.
        target: Identifier of the remote entity it touched.
        session_id: Owning session.
        success: Whether the request completed without error.
        kind: "execute", "preview_execute" or "rollback".
        user_id: Optional end-user identity.
        error_code: Structured error code on failure.
        error_message: Error message on failure.
        preview_id: Preview involved, if any.
        rollback_id: Rollback state recorded or undone, if any.
        requires_approval: True if the action was parked behind a preview.
        timed_out: True if the handler missed its deadline.
        duration_ms: Wall-clock time spent in the pipeline.
        parameters: Sanitized command parameters.
        timestamp: When the entry was written.
    """

    request_id: str
    command: str
    target: str
    session_id: str
    success: bool
    kind: str = "execute"
    user_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    preview_id: str | None = None
    rollback_id: str | None = None
    requires_approval: bool = False
    timed_out: bool = False
    duration_ms: float = 0.0
    parameters: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "request_id": self.request_id,
            "command": self.command,
            "target": self.target,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "kind": self.kind,
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "preview_id": self.preview_id,
            "rollback_id": self.rollback_id,
            "requires_approval": self.requires_approval,
            "timed_out": self.timed_out,
            "duration_ms": self.duration_ms,
            "parameters": self.parameters,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AuditFilter:
    """Filter criteria for querying the audit log."""

    session_id: str | None = None
    command: str | None = None
    kind: str | None = None
    success: bool | None = None
    from_time: datetime | None = None
    to_time: datetime | None = None
    limit: int = 100
