from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..services.cleanup_service import CleanupResult, CleanupService
from ..utils.logging import get_logger
from ..utils.time import Clock, utcnow

logger = get_logger(__name__)


class CleanupWorker:
    """Runs retention cleanup once a day, on the first tick inside ``cleanup_hour`` (UTC)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cleanup_hour: int = 2, clock: Clock = utcnow):
        self.session_factory = session_factory
        self.cleanup_hour = cleanup_hour
        self.clock = clock
        self.last_run: Optional[date] = None

    def is_due(self) -> bool:
        now = self.clock()
        return now.hour == self.cleanup_hour and self.last_run != now.date()

    async def tick(self) -> Optional[List[CleanupResult]]:
        if not self.is_due():
            return None

        self.last_run = self.clock().date()
        logger.info("Running cleanup worker")
        async with self.session_factory() as db:
            return await CleanupService(db, clock=self.clock).run_cleanup()
