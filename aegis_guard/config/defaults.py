"""
Default Configuration
~~~~~~~~~~~~~~~~~~~~~

Sensible defaults for aegis-guard when no config file is provided.
"""

from __future__ import annotations

from aegis_guard.config.schema import DEFAULT_EXPLICIT_APPROVAL, DEFAULT_TARGET_KEYS

__all__ = ["DEFAULT_CONFIG"]

DEFAULT_CONFIG: dict = {
    "version": "1.0",
    "executor": {
        "timeout_seconds": 30.0,
        "enable_rollback": True,
        "enable_metrics": True,
        "target_keys": list(DEFAULT_TARGET_KEYS),
    },
    "safe_mode": {
        "enabled": True,
        "preview_expiration_seconds": 300.0,
        "auto_approve_level": "low",
        "require_explicit_approval": list(DEFAULT_EXPLICIT_APPROVAL),
        "max_pending_previews": 100,
        "cleanup_interval_seconds": 60.0,
        "executed_retention_seconds": 3600.0,
    },
    "rollback": {
        "max_history_size": 1000,
        "max_history_age_seconds": 86400.0,
        "enable_auto_cleanup": True,
        "cleanup_interval_seconds": 300.0,
    },
    "registry": {
        "require_inverse_metadata": False,
    },
    "policy": {
        "denied_commands": [],
        "require_approval_for": list(DEFAULT_EXPLICIT_APPROVAL),
        "max_recorded_actions": 1000,
    },
    "observability": {
        "exporters": [],
        "audit_log_max_entries": 10000,
    },
}
