"""
Risk Assessment
~~~~~~~~~~~~~~~

Deterministic risk classification of a previewed action, computed from
its predicted changes and its command name.

Levels only ever move up while the signals are applied:

1. Deletions: more than 5 raises the floor to MEDIUM, more than 10 forces HIGH.
2. Critical commands force CRITICAL and mark the action irreversible.
3. Blueprint deletion raises the floor to MEDIUM.
4. More than 20 affected objects raises the floor to MEDIUM.
5. Dependency impacts add a factor but never change the level.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from aegis_guard.core.levels import ChangeType, RiskLevel
from aegis_guard.core.models import RiskAssessment

__all__ = [
    "CRITICAL_COMMANDS",
    "assess_risk",
    "describe_impact",
    "should_auto_approve",
]

CRITICAL_COMMANDS: tuple[str, ...] = (
    "delete_level",
    "clear_world",
    "reset_project",
    "clear_level",
)

_MEDIUM_DELETE_COUNT = 5
_HIGH_DELETE_COUNT = 10
_BATCH_OBJECT_COUNT = 20


def describe_impact(counts: Counter[ChangeType]) -> str:
    """Summarize change counts as "Will create 1 object(s), delete 2 object(s)"."""
    parts = [
        f"{verb} {counts[change_type]} object(s)"
        for change_type, verb in (
            (ChangeType.CREATE, "create"),
            (ChangeType.MODIFY, "modify"),
            (ChangeType.DELETE, "delete"),
            (ChangeType.MOVE, "move"),
        )
        if counts[change_type] > 0
    ]
    return f"Will {', '.join(parts)}" if parts else "No changes detected"


def assess_risk(command: str, changes: Sequence) -> RiskAssessment:
    """
    Classify the risk of running ``command`` with the given predicted changes.

    Args:
        command: The command name.
        changes: Predicted ChangePreview items.

    Returns:
        A frozen RiskAssessment.
    """
    factors: list[str] = []
    level = RiskLevel.LOW
    reversible = True
    rollback_possible = True

    counts: Counter[ChangeType] = Counter(ChangeType(c.type) for c in changes)
    delete_count = counts[ChangeType.DELETE]
    total_affected = len(changes)

    if delete_count > 0:
        factors.append(f"Deletes {delete_count} object(s)")
        if delete_count > _HIGH_DELETE_COUNT:
            level = level.at_least(RiskLevel.HIGH)
            factors.append("Large-scale deletion")
        elif delete_count > _MEDIUM_DELETE_COUNT:
            level = level.at_least(RiskLevel.MEDIUM)

    if any(fragment in command for fragment in CRITICAL_COMMANDS):
        factors.append("Critical operation")
        level = RiskLevel.CRITICAL
        reversible = False
        rollback_possible = False

    if "blueprint" in command and "delete" in command:
        factors.append("Blueprint deletion")
        level = level.at_least(RiskLevel.MEDIUM)

    if total_affected > _BATCH_OBJECT_COUNT:
        factors.append(f"Affects {total_affected} objects")
        level = level.at_least(RiskLevel.MEDIUM)

    if any(c.affected_dependencies for c in changes):
        factors.append("May affect dependent assets")

    return RiskAssessment(
        level=level,
        factors=tuple(factors),
        reversible=reversible,
        rollback_possible=rollback_possible,
        estimated_impact=describe_impact(counts),
        affected_objects=total_affected,
    )


def should_auto_approve(
    command: str,
    assessment: RiskAssessment,
    threshold: RiskLevel | None,
    explicit_approval: Sequence[str],
) -> bool:
    """
    Decide whether a preview may skip human approval.

    Args:
        command: The previewed command.
        assessment: Its risk assessment.
        threshold: Highest auto-approvable level; None never auto-approves.
        explicit_approval: Command fragments that always need a human.
    """
    if threshold is None:
        return False
    if any(fragment in command for fragment in explicit_approval):
        return False
    return assessment.level.is_within(threshold)
