"""
Periodic Sweeper
~~~~~~~~~~~~~~~~

Background asyncio task that calls a cleanup function on a fixed
interval. Used by the preview store and the rollback ledger to bound
memory; correctness never depends on it running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

__all__ = ["PeriodicSweeper"]

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """
    Runs ``sweep`` every ``interval_seconds`` until stopped.

    Args:
        name: Label used in log messages.
        interval_seconds: Delay between sweeps.
        sweep: Synchronous callable returning the number of removed items.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        sweep: Callable[[], int],
    ) -> None:
        self._name = name
        self._interval = interval_seconds
        self._sweep = sweep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background task. Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"aegis-sweeper-{self._name}"
        )
        logger.debug("Started %s sweeper (every %ss)", self._name, self._interval)

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped %s sweeper", self._name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self._sweep()
            except Exception as exc:
                logger.error("%s sweep failed: %s", self._name, exc)
                continue
            if removed:
                logger.debug("%s sweep removed %d item(s)", self._name, removed)
