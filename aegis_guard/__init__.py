"""
aegis-guard — Safety-gated execution pipeline for remote mutations.

aegis-guard sits between a caller (typically an AI agent) and the
handlers that mutate a remote target, providing:

- Policy validation before every action
- Risk-assessed previews with auto-approval and explicit approval
- Execution under a deadline with uniform, never-raising results
- Automatic rollback recording and inverse actions
- Audit logging and execution metrics

Quick Start::

    from aegis_guard import ActionOrchestrator, create_execution_context

    orchestrator = ActionOrchestrator.default()

    @orchestrator.handler("delete_actor", inverse_command="spawn_actor")
    async def delete_actor(params, context):
        state = await remote.describe(params["actor_path"])
        await remote.delete(params["actor_path"])
        return {"result": {"deleted": True}, "previous_state": state}

    result = await orchestrator.execute(
        "delete_actor",
        {"actor_path": "/Game/Map/Lamp_1"},
        create_execution_context("session-1"),
    )
    if result.requires_approval:
        ...

:license: Apache-2.0
"""

from aegis_guard.clock import Clock, ManualClock, SystemClock
from aegis_guard.config.schema import AegisConfig
from aegis_guard.core.levels import ChangeType, RiskLevel
from aegis_guard.core.models import (
    ActionPreview,
    ApprovalRequest,
    AuditEntry,
    AuditFilter,
    ChangePreview,
    ErrorInfo,
    ExecutionContext,
    ExecutionResult,
    ExecutorMetrics,
    GroupRollbackReport,
    HandlerOutcome,
    RejectionRequest,
    RiskAssessment,
    RollbackGroup,
    RollbackState,
    create_execution_context,
)
from aegis_guard.core.orchestrator import ActionOrchestrator
from aegis_guard.observability.exporters.stdout_exporter import StdoutExporter
from aegis_guard.policy.base import BasePolicy, ValidationResult
from aegis_guard.policy.static_policy import StaticPolicy
from aegis_guard.rollback.ledger import RollbackLedger
from aegis_guard.safemode.preview_store import PreviewStore

__version__ = "0.1.0"
__license__ = "Apache-2.0"

__all__ = [
    # Main class
    "ActionOrchestrator",
    # Components
    "PreviewStore",
    "RollbackLedger",
    # Enums
    "RiskLevel",
    "ChangeType",
    # Data models
    "ActionPreview",
    "ApprovalRequest",
    "AuditEntry",
    "AuditFilter",
    "ChangePreview",
    "ErrorInfo",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutorMetrics",
    "GroupRollbackReport",
    "HandlerOutcome",
    "RejectionRequest",
    "RiskAssessment",
    "RollbackGroup",
    "RollbackState",
    "create_execution_context",
    # Config
    "AegisConfig",
    # Clocks
    "Clock",
    "SystemClock",
    "ManualClock",
    # Extension bases
    "BasePolicy",
    "ValidationResult",
    "StaticPolicy",
    # Exporters
    "StdoutExporter",
    # Version
    "__version__",
]
