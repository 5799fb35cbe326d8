"""Tests for the preview store."""

import asyncio

import pytest

from aegis_guard import (
    ApprovalRequest,
    ChangePreview,
    ChangeType,
    PreviewStore,
    RejectionRequest,
    RiskLevel,
)
from aegis_guard.config.schema import SafeModeConfig
from aegis_guard.exceptions import (
    PreviewAlreadyExecutedError,
    PreviewCapacityError,
    PreviewExpiredError,
    PreviewRejectedError,
)


def _no_changes():
    return []


def _deletes(count):
    def analyze():
        return [
            ChangePreview(type=ChangeType.DELETE, target=f"/A_{i}", description="")
            for i in range(count)
        ]

    return analyze


class TestCreatePreview:
    """Tests for preview creation and auto-approval."""

    async def test_low_risk_auto_approved(self, preview_store):
        preview = await preview_store.create_preview(
            "spawn_actor", {"class": "BP_X"}, _no_changes, "s1"
        )
        assert preview.approved is True
        assert preview.risk_assessment.level == RiskLevel.LOW
        assert preview.expires_at > preview.created_at

    async def test_high_risk_waits_for_approval(self, preview_store):
        preview = await preview_store.create_preview(
            "delete_actors", {}, _deletes(11), "s1"
        )
        assert preview.approved is False
        assert preview.risk_assessment.level == RiskLevel.HIGH

    async def test_explicit_approval_command_never_auto_approved(self, preview_store):
        preview = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        assert preview.approved is False

    async def test_async_analyzer_is_awaited(self, preview_store):
        async def analyze():
            await asyncio.sleep(0)
            return [ChangePreview(type=ChangeType.MODIFY, target="/A", description="")]

        preview = await preview_store.create_preview("modify_actor", {}, analyze, "s1")
        assert len(preview.changes) == 1

    async def test_params_are_copied(self, preview_store):
        params = {"actor_path": "/A"}
        preview = await preview_store.create_preview("modify_actor", params, _no_changes, "s1")
        params["actor_path"] = "/B"
        assert preview.params == {"actor_path": "/A"}


class TestCapacity:
    """Tests for the hard admission limit."""

    async def test_full_store_rejects_new_previews(self, preview_store):
        for _ in range(5):
            await preview_store.create_preview("modify_actor", {}, _no_changes, "s1")
        with pytest.raises(PreviewCapacityError):
            await preview_store.create_preview("modify_actor", {}, _no_changes, "s1")
        assert len(preview_store) == 5

    async def test_full_store_sweeps_expired_first(self, preview_store, clock):
        for _ in range(5):
            await preview_store.create_preview("modify_actor", {}, _no_changes, "s1")
        clock.advance(seconds=301)
        preview = await preview_store.create_preview("modify_actor", {}, _no_changes, "s1")
        assert len(preview_store) == 1
        assert preview_store.get_preview(preview.id) is preview

    async def test_concurrent_creations_cannot_overshoot(self, clock):
        store = PreviewStore(SafeModeConfig(max_pending_previews=2), clock=clock)
        gate = asyncio.Event()

        async def slow_analyzer():
            await gate.wait()
            return []

        tasks = [
            asyncio.create_task(store.create_preview("modify_actor", {}, slow_analyzer, "s1"))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert sum(isinstance(r, PreviewCapacityError) for r in results) == 1
        assert len(store) == 2

    async def test_failed_analyzer_releases_slot(self, clock):
        store = PreviewStore(SafeModeConfig(max_pending_previews=1), clock=clock)

        def broken():
            raise RuntimeError("remote unavailable")

        with pytest.raises(RuntimeError):
            await store.create_preview("modify_actor", {}, broken, "s1")
        await store.create_preview("modify_actor", {}, _no_changes, "s1")
        assert len(store) == 1


class TestApproval:
    """Tests for approve/reject transitions."""

    async def test_approve_merges_modified_params(self, preview_store):
        preview = await preview_store.create_preview(
            "delete_actor", {"actor_path": "/A", "force": False}, _no_changes, "s1"
        )
        approved = preview_store.approve_preview(
            ApprovalRequest(
                preview_id=preview.id,
                approved_by="ops",
                note="checked",
                modified_params={"force": True},
            )
        )
        assert approved.approved is True
        assert approved.params == {"actor_path": "/A", "force": True}
        assert approved.approved_by == "ops"

    async def test_approve_expired_preview_fails(self, preview_store, clock):
        preview = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        clock.advance(seconds=301)
        with pytest.raises(PreviewExpiredError):
            preview_store.approve_preview(ApprovalRequest(preview_id=preview.id))
        assert len(preview_store) == 0

    async def test_approve_unknown_preview_fails(self, preview_store):
        with pytest.raises(PreviewExpiredError):
            preview_store.approve_preview(ApprovalRequest(preview_id="missing"))

    async def test_approve_rejected_preview_fails(self, preview_store):
        preview = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        preview_store.reject_preview(
            RejectionRequest(preview_id=preview.id, rejected_by="ops", reason="no")
        )
        with pytest.raises(PreviewRejectedError):
            preview_store.approve_preview(ApprovalRequest(preview_id=preview.id))

    async def test_rejected_preview_is_kept(self, preview_store):
        preview = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        preview_store.reject_preview(RejectionRequest(preview_id=preview.id, reason="no"))
        kept = preview_store.get_preview(preview.id)
        assert kept is not None
        assert kept.rejected is True
        assert kept.rejection_reason == "no"

    async def test_executed_preview_is_terminal(self, preview_store):
        preview = await preview_store.create_preview("spawn_actor", {}, _no_changes, "s1")
        preview_store.mark_executed(preview.id, result={"path": "/A"})

        with pytest.raises(PreviewAlreadyExecutedError):
            preview_store.approve_preview(ApprovalRequest(preview_id=preview.id))
        with pytest.raises(PreviewAlreadyExecutedError):
            preview_store.reject_preview(RejectionRequest(preview_id=preview.id))
        assert preview.executed is True
        assert preview.rejected is False

    async def test_mark_executed_ignores_rejected(self, preview_store):
        preview = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        preview_store.reject_preview(RejectionRequest(preview_id=preview.id))
        preview_store.mark_executed(preview.id, result={})
        assert preview.executed is False

    def test_mark_executed_unknown_is_noop(self, preview_store):
        preview_store.mark_executed("missing", result={})


class TestExpiry:
    """Tests for lazy expiry and the sweep."""

    async def test_expired_preview_unobservable(self, preview_store, clock):
        preview = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        clock.advance(seconds=301)
        assert preview_store.get_pending_previews("s1") == []
        assert preview_store.get_preview(preview.id) is None

    async def test_executed_preview_survives_expiry(self, preview_store, clock):
        preview = await preview_store.create_preview("spawn_actor", {}, _no_changes, "s1")
        preview_store.mark_executed(preview.id, result={})
        clock.advance(seconds=301)
        assert preview_store.get_preview(preview.id) is preview

    async def test_sweep_removes_expired_and_old_executed(self, preview_store, clock):
        done = await preview_store.create_preview("spawn_actor", {}, _no_changes, "s1")
        preview_store.mark_executed(done.id, result={})
        await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")

        clock.advance(seconds=301)
        assert preview_store.sweep() == 1

        clock.advance(seconds=3600)
        assert preview_store.sweep() == 1
        assert len(preview_store) == 0


class TestQueries:
    async def test_pending_previews_newest_first(self, preview_store, clock):
        first = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        clock.advance(seconds=1)
        second = await preview_store.create_preview("delete_actor", {}, _no_changes, "s1")
        await preview_store.create_preview("delete_actor", {}, _no_changes, "s2")

        pending = preview_store.get_pending_previews("s1")
        assert [p.id for p in pending] == [second.id, first.id]

    async def test_execution_history(self, preview_store, clock):
        preview = await preview_store.create_preview("spawn_actor", {}, _no_changes, "s1")
        await preview_store.create_preview("spawn_actor", {}, _no_changes, "s1")
        preview_store.mark_executed(preview.id, result={"ok": True})

        history = preview_store.get_execution_history("s1")
        assert [p.id for p in history] == [preview.id]

    def test_set_enabled(self, preview_store):
        preview_store.set_enabled(False)
        assert preview_store.enabled is False
