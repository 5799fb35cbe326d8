"""Safe mode: previews, risk assessment and approvals."""

from aegis_guard.safemode.preview_store import PreviewStore
from aegis_guard.safemode.risk import assess_risk, describe_impact, should_auto_approve

__all__ = [
    "PreviewStore",
    "assess_risk",
    "describe_impact",
    "should_auto_approve",
]
