import asyncio
from typing import Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..integrations.base import Publisher
from ..services.delivery_service import (
    DEFAULT_BACKOFF_MINUTES,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_ATTEMPTS,
    DeliveryService,
)
from ..utils.time import Clock, utcnow


class DeliveryWorker:
    """Drains the delivery queue; ticks are serialized within the process."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publishers: Mapping[str, Publisher],
        clock: Clock = utcnow,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_minutes: Sequence[int] = DEFAULT_BACKOFF_MINUTES,
    ):
        self.session_factory = session_factory
        self.publishers = publishers
        self.clock = clock
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff_minutes = backoff_minutes
        self._lock = asyncio.Lock()

    async def tick(self) -> int:
        async with self._lock:
            async with self.session_factory() as db:
                service = DeliveryService(
                    db,
                    self.publishers,
                    clock=self.clock,
                    batch_size=self.batch_size,
                    max_attempts=self.max_attempts,
                    backoff_minutes=self.backoff_minutes,
                )
                return await service.tick()
