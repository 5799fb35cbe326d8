"""Tests for the execution gate."""

import asyncio
import threading

import pytest

from aegis_guard import HandlerOutcome, create_execution_context
from aegis_guard.core.execution_gate import ExecutionGate
from aegis_guard.exceptions import ExecutionTimeoutError


@pytest.fixture
def ctx():
    return create_execution_context("s1")


class TestExecutionGate:
    """Tests for handler invocation under a deadline."""

    async def test_async_handler_outcome(self, ctx):
        async def handler(params, context):
            return {"result": {"path": params["path"]}, "previous_state": {"a": 1}}

        outcome = await ExecutionGate(1.0).run("spawn_actor", handler, {"path": "/A"}, ctx)
        assert outcome == HandlerOutcome(result={"path": "/A"}, previous_state={"a": 1})

    async def test_sync_handler_runs_in_worker_thread(self, ctx):
        main_thread = threading.get_ident()
        seen = {}

        def handler(params, context):
            seen["thread"] = threading.get_ident()
            return {"ok": True}

        outcome = await ExecutionGate(1.0).run("modify_actor", handler, {}, ctx)
        assert outcome.result == {"ok": True}
        assert seen["thread"] != main_thread

    async def test_none_result_is_empty_outcome(self, ctx):
        async def handler(params, context):
            return None

        outcome = await ExecutionGate(1.0).run("noop", handler, {}, ctx)
        assert outcome.result is None
        assert outcome.resulting_state == {}
        assert outcome.previous_state is None

    async def test_handler_error_propagates(self, ctx):
        async def handler(params, context):
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await ExecutionGate(1.0).run("modify_actor", handler, {}, ctx)

    async def test_timeout_does_not_cancel_handler(self, ctx):
        finished = asyncio.Event()

        async def handler(params, context):
            await asyncio.sleep(0.1)
            finished.set()
            return {}

        gate = ExecutionGate(0.02)
        with pytest.raises(ExecutionTimeoutError) as exc_info:
            await gate.run("slow_command", handler, {}, ctx)

        assert exc_info.value.details["timed_out"] is True
        assert exc_info.value.recoverable is True
        assert gate.pending_late_tasks == 1

        await asyncio.wait_for(finished.wait(), timeout=1.0)
        await asyncio.sleep(0)
        assert gate.pending_late_tasks == 0

    async def test_aclose_cancels_late_handlers(self, ctx):
        cancelled = asyncio.Event()

        async def handler(params, context):
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        gate = ExecutionGate(0.01)
        with pytest.raises(ExecutionTimeoutError):
            await gate.run("hang", handler, {}, ctx)

        await gate.aclose()
        assert cancelled.is_set()
        assert gate.pending_late_tasks == 0


class TestHandlerOutcome:
    """Tests for reading handler return values."""

    def test_string_result_passes_through(self):
        outcome = HandlerOutcome.coerce({"result": "pong"})
        assert outcome.result == "pong"
        assert outcome.previous_state is None

    def test_list_result_is_not_reshaped(self):
        outcome = HandlerOutcome.coerce({"result": ["/A", "/B"]})
        assert outcome.result == ["/A", "/B"]
        assert outcome.resulting_state == {"result": ["/A", "/B"]}

    def test_bare_list_becomes_result(self):
        assert HandlerOutcome.coerce(["/A", "/B"]).result == ["/A", "/B"]

    def test_previous_state_only_mapping(self):
        outcome = HandlerOutcome.coerce({"previous_state": {"scale": 1}})
        assert outcome.result is None
        assert outcome.previous_state == {"scale": 1}
        assert outcome.resulting_state == {}

    def test_plain_mapping_is_the_payload(self):
        outcome = HandlerOutcome.coerce({"ok": True})
        assert outcome.result == {"ok": True}
        assert outcome.previous_state is None

    def test_resulting_state_prefers_new_state(self):
        outcome = HandlerOutcome(result={"ok": True}, new_state={"scale": 2})
        assert outcome.resulting_state == {"scale": 2}
