"""Fire-and-forget background rate syncs.

Callers submit a sync and move on; the task runs on the event loop and
any failure is logged here rather than propagated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SyncRunner = Callable[[], Awaitable[bool]]


class SyncScheduler:
    """Runs rate syncs as background tasks on the running event loop.

    Parameters
    ----------
    runner : SyncRunner
        Coroutine factory performing one sync pass, normally
        ``RateSyncService(store, providers).sync``.
    """

    def __init__(self, runner: SyncRunner) -> None:
        self._runner = runner
        self._tasks: set[asyncio.Task[bool | None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, reason: str) -> asyncio.Task[bool | None]:
        """Schedule one sync. Must be called from inside a running loop."""
        task = asyncio.get_running_loop().create_task(
            self._run(reason), name=f"rate-sync:{reason}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, reason: str) -> bool | None:
        logger.info("Background rate sync started (%s)", reason)
        try:
            synced = await self._runner()
        except asyncio.CancelledError:
            logger.info("Background rate sync cancelled (%s)", reason)
            raise
        except Exception:
            logger.exception("Background rate sync failed (%s)", reason)
            return None
        logger.info("Background rate sync finished (%s): synced=%s", reason, synced)
        return synced

    async def drain(self) -> None:
        """Wait for every submitted sync to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding syncs and wait for them to unwind."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
