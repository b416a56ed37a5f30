"""
Scheduler tick.

Called once a minute. For each active workspace it compares the local
wall-clock ``HH:MM`` with the configured open, reminder and close times and
runs the matching action. Weekends (local Saturday and Sunday) are skipped.
The match is exact, so an action whose minute falls inside a period of
downtime is not run that day.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..integrations.base import MessagingClient
from ..models.workspace import WorkspaceConfig
from ..services.session_cache import SessionCache
from ..services.standup_runner import StandupRunService
from ..services.workspace_service import WorkspaceService
from ..utils.logging import get_logger
from ..utils.time import Clock, local_now, utcnow

logger = get_logger(__name__)

OPEN = "open"
REMIND = "remind"
CLOSE = "close"


def due_actions(config: WorkspaceConfig, now: datetime) -> List[str]:
    """Actions scheduled for this exact minute in the workspace's timezone."""
    local = local_now(now, config.timezone)
    if local.weekday() >= 5:
        return []

    current = local.strftime("%H:%M")
    actions = []
    if current == config.window_open_time:
        actions.append(OPEN)
    if current in (config.reminder_times or []):
        actions.append(REMIND)
    if current == config.window_close_time:
        actions.append(CLOSE)
    return actions


class Scheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        messaging: MessagingClient,
        cache: Optional[SessionCache] = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.messaging = messaging
        self.cache = cache
        self.clock = clock

    async def tick(self) -> int:
        """Run every due action; returns how many were run successfully."""
        now = self.clock()

        async with self.session_factory() as db:
            configs = await WorkspaceService(db).list_configs()
            schedule = [(config.workspace_id, due_actions(config, now)) for config in configs]

        completed = 0
        for workspace_id, actions in schedule:
            for action in actions:
                try:
                    await self.run_action(workspace_id, action)
                    completed += 1
                except Exception as e:
                    logger.error(f"Scheduled {action} failed for {workspace_id}: {str(e)}")
        return completed

    async def run_action(self, workspace_id: str, action: str) -> None:
        async with self.session_factory() as db:
            runner = StandupRunService(db, self.messaging, clock=self.clock, cache=self.cache)
            logger.info(f"Running scheduled {action} for {workspace_id}")
            if action == OPEN:
                await runner.open_run(workspace_id)
            elif action == REMIND:
                await runner.send_reminders(workspace_id)
            elif action == CLOSE:
                await runner.close_run(workspace_id)
