import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[Any, Awaitable[Any]]]


class Ticker:
    """
    Periodic driver for background housekeeping (status snapshots, etc.).

    The ticker is owned by the application lifespan and passed to whatever
    needs periodic work. Tests never start it; they call tick() directly.
    """

    def __init__(self, interval_seconds: float, callback: TickCallback, name: str = "ticker"):
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.name = name
        self.running = False
        self.background_task: Optional[asyncio.Task] = None
        self.tick_count = 0

    async def start(self):
        if self.running:
            logger.warning(f"Ticker {self.name} is already running")
            return

        self.running = True
        self.background_task = asyncio.create_task(self._run())
        logger.info(f"Ticker {self.name} started (interval={self.interval_seconds}s)")

    async def stop(self):
        if not self.running:
            return

        self.running = False
        if self.background_task:
            self.background_task.cancel()
            try:
                await self.background_task
            except asyncio.CancelledError:
                pass

        logger.info(f"Ticker {self.name} stopped")

    async def tick(self) -> bool:
        """
        Run the callback once.

        Returns:
            True if the callback completed, False if it raised (the error is logged)
        """
        self.tick_count += 1
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
            return True
        except Exception:
            logger.exception(f"Ticker {self.name} callback failed")
            return False

    async def _run(self):
        while self.running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.tick()
            except asyncio.CancelledError:
                break
