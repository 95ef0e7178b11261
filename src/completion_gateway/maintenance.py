"""Owned periodic background task used by the cache sweep and ledger pruning."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a synchronous ``action`` every ``interval_seconds`` on the event loop.

    The owner calls ``start()`` and must call ``stop()``; nothing outlives it.
    Errors raised by ``action`` are logged and the loop keeps running.
    """

    def __init__(
        self,
        name: str,
        action: Callable[[], object],
        interval_seconds: float,
    ) -> None:
        self._name = name
        self._action = action
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=self._name
        )
        logger.debug("Started periodic task %s every %.1fs", self._name, self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.debug("Stopped periodic task %s", self._name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                result = self._action()
            except Exception:
                logger.exception("Periodic task %s failed", self._name)
            else:
                logger.debug("Periodic task %s ran", self._name, extra={"result": result})
