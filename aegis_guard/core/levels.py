"""
aegis-guard Risk Level & Change Type Enums
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Core enums shared by the preview workflow, the rollback ledger and
the orchestrator.
"""

from __future__ import annotations

from enum import StrEnum

__all__ = ["RiskLevel", "ChangeType"]


class RiskLevel(StrEnum):
    """
    Danger classification of a previewed action.

    Totally ordered: LOW < MEDIUM < HIGH < CRITICAL.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def rank(self) -> int:
        """Return the position of this level in the total order."""
        return _RANK[self]

    def at_least(self, floor: RiskLevel) -> RiskLevel:
        """Raise this level to ``floor`` if it is lower. Never lowers."""
        return floor if floor.rank() > self.rank() else self

    def is_within(self, threshold: RiskLevel) -> bool:
        """Return True if this level is at or below ``threshold``."""
        return self.rank() <= threshold.rank()

    @classmethod
    def parse(cls, value: str | RiskLevel) -> RiskLevel:
        """Parse a level name case-insensitively."""
        if isinstance(value, RiskLevel):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown risk level {value!r}; expected one of "
                f"{', '.join(level.value for level in cls)}"
            ) from None


_RANK: dict[RiskLevel, int] = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class ChangeType(StrEnum):
    """Kind of effect a previewed action has on one target."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    MOVE = "move"
