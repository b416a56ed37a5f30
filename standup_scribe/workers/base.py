import asyncio
from typing import Any, Awaitable, Callable, Optional

from ..utils.logging import get_logger

logger = get_logger(__name__)


class PeriodicWorker:
    """
    Runs ``tick`` forever with a fixed sleep between runs.

    The next sleep only starts once the current tick has finished, so ticks
    of one worker never overlap. Errors are logged and the loop carries on.
    """

    def __init__(self, name: str, interval_seconds: float, tick: Callable[[], Awaitable[Any]]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.tick = tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_forever(self) -> None:
        logger.info(f"Starting {self.name} worker (every {self.interval_seconds}s)")
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} worker error: {str(e)}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run_forever(), name=f"{self.name}-worker")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped {self.name} worker")
