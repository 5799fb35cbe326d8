"""aegis-guard core: pipeline models and the orchestrator."""

from aegis_guard.core.levels import ChangeType, RiskLevel
from aegis_guard.core.models import (
    ActionPreview,
    AuditEntry,
    ChangePreview,
    ExecutionContext,
    ExecutionResult,
    HandlerOutcome,
    RiskAssessment,
    RollbackState,
)

__all__ = [
    "RiskLevel",
    "ChangeType",
    "ActionPreview",
    "AuditEntry",
    "ChangePreview",
    "ExecutionContext",
    "ExecutionResult",
    "HandlerOutcome",
    "RiskAssessment",
    "RollbackState",
]
