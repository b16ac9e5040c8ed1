"""Periodic background sweep that reclaims expired and over-limit entries."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

log = logging.getLogger(__name__)


class BackgroundReclaimer:
    """Runs ``sweep`` every ``interval_ms`` on the current event loop.

    ``start()`` and ``stop()`` are idempotent. A failing sweep is logged
    and the loop moves on to the next cycle.
    """

    def __init__(
        self,
        sweep: Callable[[], Awaitable[None]],
        interval_ms: int,
        *,
        name: str = "resources",
    ) -> None:
        if interval_ms <= 0:
            raise ValueError(f"cleanup interval must be positive, got {interval_ms}ms")
        self._sweep = sweep
        self._interval = interval_ms / 1000
        self._name = name
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop. Requires a running event loop."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"reclaimer:{self._name}")
        log.debug("Started %s reclaimer (every %.3fs)", self._name, self._interval)

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        log.debug("Stopped %s reclaimer", self._name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._sweep()
            except Exception:
                log.warning("Background sweep of %s failed; retrying next cycle", self._name, exc_info=True)
