from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import RunNotFoundError, ValidationError, WorkspaceNotConfiguredError
from ..core.report import ReportEntry, StandupReport
from ..integrations.csv_export import export_range
from ..models.delivery import DeliveryJob, DeliveryStatus
from ..models.standup import RunStatus, StandupResponse, StandupRun
from ..models.workspace import WorkspaceConfig
from ..utils.logging import get_logger

logger = get_logger(__name__)


class ReportService:
    """Builds immutable report snapshots from persisted runs"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def build_report(self, run_id: int) -> StandupReport:
        """Snapshot one run, including links from its already-successful deliveries"""

        stmt = (
            select(StandupRun)
            .where(StandupRun.id == run_id)
            .options(selectinload(StandupRun.responses).selectinload(StandupResponse.roster_member))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        run = result.scalar_one_or_none()
        if run is None:
            raise RunNotFoundError(f"Standup run {run_id} not found")

        config = await self._get_config(run.workspace_id)
        links = await self._success_links(run.id)
        return self._snapshot(run, config, links)

    async def build_reports_for_range(self, workspace_id: str, start: date, end: date) -> List[StandupReport]:
        """Snapshots of every CLOSED run in ``[start, end]``, oldest first"""

        config = await self._get_config(workspace_id)
        stmt = (
            select(StandupRun)
            .where(
                StandupRun.workspace_id == workspace_id,
                StandupRun.run_date >= start,
                StandupRun.run_date <= end,
                StandupRun.status == RunStatus.CLOSED.value,
            )
            .options(selectinload(StandupRun.responses).selectinload(StandupResponse.roster_member))
            .order_by(StandupRun.run_date.asc())
        )
        result = await self.db.execute(stmt)
        runs = result.scalars().all()
        logger.info(f"Building {len(runs)} reports for {workspace_id} between {start} and {end}")
        return [self._snapshot(run, config, {}) for run in runs]

    async def export_csv(self, workspace_id: str, start: date, end: date, exports_dir: str) -> str:
        """Write the closed runs in a date range to one CSV and return its path"""

        if start > end:
            raise ValidationError("start must be on or before end")
        reports = await self.build_reports_for_range(workspace_id, start, end)
        return await export_range(reports, exports_dir, workspace_id, start, end)

    async def _get_config(self, workspace_id: str) -> WorkspaceConfig:
        stmt = select(WorkspaceConfig).where(WorkspaceConfig.workspace_id == workspace_id)
        result = await self.db.execute(stmt)
        config = result.scalar_one_or_none()
        if config is None:
            raise WorkspaceNotConfiguredError(workspace_id)
        return config

    async def _success_links(self, run_id: int) -> Dict[str, str]:
        stmt = select(DeliveryJob.destination, DeliveryJob.destination_url).where(
            DeliveryJob.run_id == run_id,
            DeliveryJob.status == DeliveryStatus.SUCCESS.value,
            DeliveryJob.destination_url.is_not(None),
        )
        result = await self.db.execute(stmt)
        return {destination: url for destination, url in result.all()}

    @staticmethod
    def _snapshot(run: StandupRun, config: Optional[WorkspaceConfig], links: Dict[str, str]) -> StandupReport:
        entries = [
            ReportEntry(
                display_name=response.roster_member.display_name,
                user_id=response.roster_member.user_id,
                status=response.status,
                answers=response.answer_bag,
                submitted_at=response.submitted_at,
            )
            for response in run.responses
        ]
        entries.sort(key=lambda entry: entry.display_name.lower())

        return StandupReport(
            workspace_id=run.workspace_id,
            run_id=run.id,
            run_date=run.run_date,
            timezone=config.timezone if config else "UTC",
            report_channel_id=config.report_channel_id if config else None,
            team_mention=config.team_mention if config else None,
            google_spreadsheet_id=config.google_spreadsheet_id if config else None,
            notion_parent_page_id=config.notion_parent_page_id if config else None,
            entries=entries,
            links=links,
        )
