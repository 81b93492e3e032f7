import asyncio
import logging
from typing import Optional

from jobqueue.domain.states import TriggerSource
from jobqueue.worker.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

class SchedulerService:
    """
    In-process stand-in for the external cron trigger, for local development.

    Each tick is an ordinary dispatcher invocation, so running this alongside a
    real cron is safe (leases are atomic), just redundant.
    """

    def __init__(self, dispatcher: Dispatcher, interval: float = 60, batch_size: Optional[int] = None):
        self.dispatcher = dispatcher
        self.interval = interval
        self.batch_size = batch_size
        self._running = False
        self._task = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Embedded trigger started (every %ss).", self.interval)

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Embedded trigger stopped.")

    async def _loop(self):
        while self._running:
            try:
                result = await self.dispatcher.run_once(
                    batch_size=self.batch_size,
                    source=TriggerSource.EMBEDDED,
                )
                logger.debug("Embedded trigger tick: %s", result.run.message)
            except Exception as e:
                # Store unreachable while opening/closing the run; try again next tick
                logger.error(f"Error in embedded trigger: {e}", exc_info=True)

            await asyncio.sleep(self.interval)
