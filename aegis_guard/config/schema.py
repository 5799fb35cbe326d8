"""
Configuration Schema
~~~~~~~~~~~~~~~~~~~~

Pydantic models for validating aegis-guard configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from aegis_guard.core.levels import RiskLevel

__all__ = [
    "AegisConfig",
    "ExecutorConfig",
    "SafeModeConfig",
    "RollbackConfig",
    "RegistryConfig",
    "PolicyConfig",
    "ObservabilityConfig",
    "DEFAULT_EXPLICIT_APPROVAL",
    "DEFAULT_TARGET_KEYS",
]

DEFAULT_EXPLICIT_APPROVAL = [
    "delete_actor",
    "delete_actors",
    "delete_blueprint",
    "delete_asset",
    "clear_level",
    "delete_level",
]

# Parameter names that identify the remote entity, in priority order.
DEFAULT_TARGET_KEYS = [
    "actor_path",
    "blueprint_path",
    "asset_path",
    "material_path",
    "level_path",
    "target",
    "path",
]


class ExecutorConfig(BaseModel):
    """Orchestrator settings."""

    timeout_seconds: float = Field(default=30.0, gt=0.0)
    enable_rollback: bool = True
    enable_metrics: bool = True
    target_keys: list[str] = Field(default_factory=lambda: list(DEFAULT_TARGET_KEYS))


class SafeModeConfig(BaseModel):
    """Preview/approval workflow settings."""

    enabled: bool = True
    preview_expiration_seconds: float = Field(default=300.0, gt=0.0)
    auto_approve_level: str = "low"
    require_explicit_approval: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXPLICIT_APPROVAL)
    )
    max_pending_previews: int = Field(default=100, ge=1)
    cleanup_interval_seconds: float = Field(default=60.0, gt=0.0)
    executed_retention_seconds: float = Field(default=3600.0, ge=0.0)

    @field_validator("auto_approve_level")
    @classmethod
    def validate_auto_approve_level(cls, v: str) -> str:
        """Accept "none" or any risk level name."""
        value = v.strip().lower()
        if value == "none":
            return value
        return RiskLevel.parse(value).value

    @property
    def auto_approve_threshold(self) -> RiskLevel | None:
        """The highest auto-approvable level, or None to never auto-approve."""
        if self.auto_approve_level == "none":
            return None
        return RiskLevel.parse(self.auto_approve_level)


class RollbackConfig(BaseModel):
    """Rollback ledger settings."""

    max_history_size: int = Field(default=1000, ge=1)
    max_history_age_seconds: float = Field(default=86400.0, gt=0.0)
    enable_auto_cleanup: bool = True
    cleanup_interval_seconds: float = Field(default=300.0, gt=0.0)


class RegistryConfig(BaseModel):
    """Handler registration settings."""

    require_inverse_metadata: bool = False


class PolicyConfig(BaseModel):
    """Settings for the built-in static policy."""

    denied_commands: list[str] = Field(default_factory=list)
    require_approval_for: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXPLICIT_APPROVAL)
    )
    max_recorded_actions: int = Field(default=1000, ge=1)


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    exporters: list[str] = Field(default_factory=list)
    audit_log_max_entries: int = Field(default=10000, ge=100)


class AegisConfig(BaseModel):
    """
    Root configuration model for aegis-guard.

    Validated on load with clear error messages for invalid values.
    """

    version: str = "1.0"
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    safe_mode: SafeModeConfig = Field(default_factory=SafeModeConfig)
    rollback: RollbackConfig = Field(default_factory=RollbackConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
