"""aegis-guard rollback system — state recording and inverse synthesis."""

from aegis_guard.rollback.inversion import (
    infer_change_type,
    invert_command,
    invert_params,
)
from aegis_guard.rollback.ledger import RollbackLedger

__all__ = [
    "RollbackLedger",
    "invert_command",
    "invert_params",
    "infer_change_type",
]
