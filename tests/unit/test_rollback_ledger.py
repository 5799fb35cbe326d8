"""Tests for the rollback ledger."""

import pytest

from aegis_guard import RollbackLedger
from aegis_guard.config.schema import RollbackConfig
from aegis_guard.core.models import PreparedRollback
from aegis_guard.exceptions import RollbackGroupNotFoundError, RollbackNotAvailableError


def _record(ledger, command="modify_actor", target="/A", session="s1", previous=None):
    return ledger.record_state(
        action_id="req_1",
        command=command,
        target=target,
        previous_state=previous if previous is not None else {"scale": 1},
        new_state={"scale": 2},
        session_id=session,
    )


class TestRecordState:
    """Tests for recording and inverse derivation."""

    def test_spawn_inverts_to_delete(self, ledger):
        state = _record(ledger, command="spawn_actor")
        assert state.rollback_command == "delete_actor"

    def test_delete_inverts_to_spawn(self, ledger):
        state = _record(ledger, command="delete_actor", previous={"class": "BP_X"})
        assert state.rollback_command == "spawn_actor"
        assert state.rollback_params["class"] == "BP_X"

    def test_explicit_inverse_wins(self, ledger):
        state = ledger.record_state(
            action_id="req_1",
            command="paint_foliage",
            target="/Landscape",
            previous_state={"density": 0.2},
            new_state={},
            session_id="s1",
            inverse=PreparedRollback(command="restore_foliage", params={"density": 0.2}),
        )
        assert state.rollback_command == "restore_foliage"
        assert state.rollback_params == {"density": 0.2}

    def test_capacity_evicts_single_oldest(self, ledger, clock):
        first = _record(ledger)
        clock.advance(seconds=1)
        second = _record(ledger)
        clock.advance(seconds=1)
        third = _record(ledger)
        clock.advance(seconds=1)
        fourth = _record(ledger)

        assert len(ledger) == 3
        assert ledger.get_state(first.id) is None
        for state in (second, third, fourth):
            assert ledger.get_state(state.id) is state
        assert [s.id for s in ledger.get_session_history("s1")] == [
            fourth.id,
            third.id,
            second.id,
        ]


class TestRollbackPreparation:
    """Tests for prepare/mark/can_rollback."""

    def test_prepare_and_mark(self, ledger):
        state = _record(ledger)
        prepared = ledger.prepare_rollback(state.id)
        assert prepared.command == "modify_actor"
        assert prepared.state_id == state.id

        ledger.mark_rolled_back(state.id)
        assert ledger.can_rollback(state.id) is False
        assert state.rolled_back_at is not None

        with pytest.raises(RollbackNotAvailableError):
            ledger.prepare_rollback(state.id)

    def test_mark_rolled_back_is_idempotent(self, ledger, clock):
        state = _record(ledger)
        ledger.mark_rolled_back(state.id)
        first_time = state.rolled_back_at
        clock.advance(seconds=5)
        ledger.mark_rolled_back(state.id)
        assert state.rolled_back_at == first_time

    def test_prepare_unknown_fails(self, ledger):
        with pytest.raises(RollbackNotAvailableError):
            ledger.prepare_rollback("missing")

    def test_available_count_and_latest_for_target(self, ledger, clock):
        a = _record(ledger, target="/A")
        clock.advance(seconds=1)
        b = _record(ledger, target="/A")
        _record(ledger, target="/B")
        ledger.mark_rolled_back(b.id)

        assert ledger.get_available_rollback_count("s1") == 2
        assert ledger.get_latest_state_for_target("/A", "s1") is a
        assert ledger.get_latest_state_for_target("/A", "s2") is None

    def test_empty_target_never_matches(self, ledger):
        state = _record(ledger, target="")
        assert ledger.can_rollback(state.id)
        assert ledger.get_latest_state_for_target("", "s1") is None


class TestGroups:
    """Tests for rollback groups."""

    def test_group_rollback_is_reverse_order(self, clock):
        ledger = RollbackLedger(clock=clock)
        group = ledger.create_group("batch", "s1")
        states = [_record(ledger, target=f"/A_{i}") for i in range(3)]
        for state in states:
            ledger.add_to_group(group.id, state)

        ledger.mark_rolled_back(states[1].id)
        prepared = ledger.prepare_group_rollback(group.id)
        assert [p.state_id for p in prepared] == [states[2].id, states[0].id]

    def test_unknown_group(self, ledger):
        state = _record(ledger)
        with pytest.raises(RollbackGroupNotFoundError):
            ledger.add_to_group("missing", state)
        with pytest.raises(RollbackGroupNotFoundError):
            ledger.prepare_group_rollback("missing")


class TestMaintenance:
    def test_sweep_by_age(self, clock):
        ledger = RollbackLedger(RollbackConfig(max_history_age_seconds=60), clock=clock)
        old = _record(ledger)
        group = ledger.create_group("batch", "s1")
        clock.advance(seconds=61)
        fresh = _record(ledger)

        assert ledger.sweep() == 1
        assert ledger.get_state(old.id) is None
        assert ledger.get_state(fresh.id) is fresh
        assert ledger.get_group(group.id) is None

    def test_clear_session_history(self, ledger):
        _record(ledger, session="s1")
        kept = _record(ledger, session="s2")
        ledger.clear_session_history("s1")
        assert len(ledger) == 1
        assert ledger.get_session_history("s1") == []
        assert ledger.get_state(kept.id) is kept
