import asyncio
import logging
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)


class PollDriver:
    """
    Fires a poll cycle every `interval_seconds`.

    A tick that lands while the previous cycle is still running is skipped,
    not queued, so two cycles never overlap. The first cycle runs
    immediately. A cycle that raises is logged and the driver keeps going.
    """

    def __init__(self, cycle: Callable[[], Awaitable[None]], interval_seconds: float = 10.0):
        self._cycle = cycle
        self.interval_seconds = interval_seconds
        self._busy = False
        self._running = False
        self._task: asyncio.Task | None = None
        self.cycles_run = 0
        self.ticks_skipped = 0

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> bool:
        """Run one cycle now. Returns False if a cycle was already running."""
        if self._busy:
            return False
        self._busy = True
        await self._guarded_cycle()
        return True

    async def _guarded_cycle(self) -> None:
        try:
            await self._cycle()
        except Exception as e:
            logger.error(f"Poll error: {e}", exc_info=True)
        finally:
            self.cycles_run += 1
            self._busy = False

    async def run(self, max_ticks: int | None = None) -> None:
        """
        Tick until stopped.

        Args:
            max_ticks: Maximum ticks to fire (None = run forever)
        """
        self._running = True
        ticks = 0
        logger.info(f"Polling started (every {self.interval_seconds}s)")

        try:
            while self._running:
                if self._busy:
                    self.ticks_skipped += 1
                    logger.debug("Previous poll cycle still running, skipping tick")
                else:
                    # Busy is set before the task starts so the next tick sees it
                    self._busy = True
                    self._task = asyncio.create_task(self._guarded_cycle())

                ticks += 1
                if max_ticks and ticks >= max_ticks:
                    break
                await asyncio.sleep(self.interval_seconds)
        finally:
            self._running = False
            if self._task is not None and not self._task.done():
                await self._task
            logger.info(f"Polling stopped after {self.cycles_run} cycles ({self.ticks_skipped} ticks skipped)")

    def stop(self) -> None:
        """Stop ticking; an in-flight cycle finishes first."""
        self._running = False
        logger.info("Polling stop requested")
