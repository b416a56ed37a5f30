from datetime import timedelta
from typing import List

from pydantic import BaseModel
from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.delivery import DeliveryJob
from ..models.standup import StandupResponse, StandupRun
from ..models.workspace import Excusal, RosterMember, WorkspaceConfig
from ..utils.logging import get_logger
from ..utils.time import Clock, utcnow

logger = get_logger(__name__)


class CleanupResult(BaseModel):
    workspace_id: str
    runs: int = 0
    responses: int = 0
    jobs: int = 0
    excusals: int = 0
    members: int = 0


class CleanupService:
    """Deletes records older than each workspace's retention window"""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def run_cleanup(self) -> List[CleanupResult]:
        result = await self.db.execute(select(WorkspaceConfig.workspace_id, WorkspaceConfig.retention_days))
        workspaces = result.all()

        results = []
        for workspace_id, retention_days in workspaces:
            try:
                results.append(await self.cleanup_workspace(workspace_id, retention_days or 1825))
            except Exception as e:
                logger.error(f"[{workspace_id}] Cleanup error: {str(e)}")
                await self.db.rollback()
        return results

    async def cleanup_workspace(self, workspace_id: str, retention_days: int) -> CleanupResult:
        cutoff = self.clock() - timedelta(days=retention_days)

        old_runs = select(StandupRun.id).where(
            StandupRun.workspace_id == workspace_id,
            StandupRun.created_at < cutoff,
        )

        jobs = await self.db.execute(
            delete(DeliveryJob)
            .where(DeliveryJob.run_id.in_(old_runs))
            .execution_options(synchronize_session=False)
        )
        responses = await self.db.execute(
            delete(StandupResponse)
            .where(StandupResponse.run_id.in_(old_runs))
            .execution_options(synchronize_session=False)
        )
        runs = await self.db.execute(
            delete(StandupRun)
            .where(StandupRun.workspace_id == workspace_id, StandupRun.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )

        members = select(RosterMember.id).where(RosterMember.workspace_id == workspace_id)
        excusals = await self.db.execute(
            delete(Excusal)
            .where(Excusal.roster_member_id.in_(members), Excusal.end_date < cutoff.date())
            .execution_options(synchronize_session=False)
        )

        stale_members = await self.db.execute(
            delete(RosterMember)
            .where(
                RosterMember.workspace_id == workspace_id,
                RosterMember.is_active.is_(False),
                or_(
                    RosterMember.updated_at < cutoff,
                    and_(RosterMember.updated_at.is_(None), RosterMember.created_at < cutoff),
                ),
                ~exists().where(StandupResponse.roster_member_id == RosterMember.id),
                ~exists().where(Excusal.roster_member_id == RosterMember.id),
            )
            .execution_options(synchronize_session=False)
        )

        await self.db.commit()

        result = CleanupResult(
            workspace_id=workspace_id,
            runs=runs.rowcount or 0,
            responses=responses.rowcount or 0,
            jobs=jobs.rowcount or 0,
            excusals=excusals.rowcount or 0,
            members=stale_members.rowcount or 0,
        )
        logger.info(
            f"[{workspace_id}] Cleanup completed: {result.runs} runs, {result.responses} responses, "
            f"{result.jobs} jobs, {result.excusals} excusals, {result.members} members deleted"
        )
        return result
