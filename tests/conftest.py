"""Shared fixtures for aegis-guard tests."""

from __future__ import annotations

import pytest

from aegis_guard import (
    ActionOrchestrator,
    ManualClock,
    PreviewStore,
    RollbackLedger,
    create_execution_context,
)
from aegis_guard.config.loader import load_config_from_dict
from aegis_guard.config.schema import RollbackConfig, SafeModeConfig
from aegis_guard.policy.base import BasePolicy, ValidationResult


class StubPolicy(BasePolicy):
    """Policy whose decisions are set by the test."""

    def __init__(self, valid=True, requires_approval=False, reason=None):
        self.valid = valid
        self.requires_approval = requires_approval
        self.reason = reason
        self.validated: list[tuple[str, str]] = []
        self.recorded: list[tuple[str, str, bool]] = []

    async def validate_action(self, command, target, params, session_id):
        self.validated.append((command, target))
        return ValidationResult(
            valid=self.valid,
            reason=self.reason,
            requires_approval=self.requires_approval,
        )

    async def record_action(self, command, target, success, session_id):
        self.recorded.append((command, target, success))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def preview_store(clock) -> PreviewStore:
    """Preview store with auto-approval up to MEDIUM."""
    return PreviewStore(
        SafeModeConfig(auto_approve_level="medium", max_pending_previews=5),
        clock=clock,
    )


@pytest.fixture
def ledger(clock) -> RollbackLedger:
    return RollbackLedger(RollbackConfig(max_history_size=3), clock=clock)


@pytest.fixture
def policy() -> StubPolicy:
    return StubPolicy()


@pytest.fixture
def context():
    return create_execution_context("session-1", user_id="tester")


@pytest.fixture
def make_orchestrator(policy, clock):
    """Build an orchestrator from config overrides, with the stub policy."""

    def _make(**overrides) -> ActionOrchestrator:
        return ActionOrchestrator(
            config=load_config_from_dict(overrides),
            policy=policy,
            clock=clock,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator) -> ActionOrchestrator:
    """Orchestrator with no explicit-approval list, so low risk auto-approves."""
    return make_orchestrator(safe_mode={"require_explicit_approval": []})

