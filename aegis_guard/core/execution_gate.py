"""
Execution Gate
~~~~~~~~~~~~~~

Invokes command handlers under a deadline.

A timeout only stops the caller from waiting: the handler task is not
cancelled and keeps running in the background, so handlers must tolerate
their side effects landing after a reported timeout. Such late tasks are
kept until they finish (their errors are logged) and cancelled by
:meth:`ExecutionGate.aclose` at shutdown.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any

from aegis_guard.core.models import ExecutionContext, HandlerOutcome
from aegis_guard.core.registry import Handler
from aegis_guard.exceptions import ExecutionTimeoutError

__all__ = ["ExecutionGate", "call_maybe_async"]

logger = logging.getLogger(__name__)


async def call_maybe_async(func: Any, *args: Any) -> Any:
    """
    Call a sync or async callable and return its result.

    Coroutine functions are awaited on the loop; plain callables run in a
    worker thread. An awaitable returned by a plain callable is awaited too.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ExecutionGate:
    """
    Runs a handler with a non-cancelling timeout.

    Args:
        timeout_seconds: Deadline for each handler invocation.
    """

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self._timeout = timeout_seconds
        self._late: set[asyncio.Task[Any]] = set()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def pending_late_tasks(self) -> int:
        """Handlers that outlived their deadline and are still running."""
        return sum(1 for task in self._late if not task.done())

    async def run(
        self,
        command: str,
        handler: Handler,
        params: dict[str, Any],
        context: ExecutionContext,
    ) -> HandlerOutcome:
        """
        Invoke ``handler(params, context)`` and coerce its return value.

        Raises:
            ExecutionTimeoutError: If the handler misses the deadline.
            Exception: Whatever the handler raised.
        """
        task = asyncio.ensure_future(call_maybe_async(handler, params, context))
        done, _ = await asyncio.wait({task}, timeout=self._timeout)

        if not done:
            self._late.add(task)
            task.add_done_callback(self._late_task_finished(command, context.request_id))
            logger.warning(
                "Handler for %s (request %s) exceeded %ss; result will be discarded",
                command,
                context.request_id,
                self._timeout,
            )
            raise ExecutionTimeoutError(command, self._timeout)

        return HandlerOutcome.coerce(task.result())

    def _late_task_finished(self, command: str, request_id: str) -> Any:
        def _callback(task: asyncio.Task[Any]) -> None:
            self._late.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.warning(
                    "Late handler for %s (request %s) failed after timeout: %s",
                    command,
                    request_id,
                    exc,
                )
            else:
                logger.info(
                    "Late handler for %s (request %s) completed after timeout",
                    command,
                    request_id,
                )

        return _callback

    async def aclose(self) -> None:
        """Cancel handlers still running past their deadline."""
        tasks = [task for task in self._late if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d late handler(s)", len(tasks))
        self._late.clear()
