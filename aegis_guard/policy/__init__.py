"""aegis-guard policies — action validation and audit hooks."""

from aegis_guard.policy.base import BasePolicy, ValidationResult
from aegis_guard.policy.static_policy import RecordedAction, StaticPolicy

__all__ = [
    "BasePolicy",
    "ValidationResult",
    "StaticPolicy",
    "RecordedAction",
]
