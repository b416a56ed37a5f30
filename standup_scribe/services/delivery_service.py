"""
Delivery job engine.

Closing a run enqueues one job per enabled destination. Each tick picks up
due jobs oldest first and hands a report snapshot to the matching publisher.
A failed job is rescheduled along a fixed backoff ladder until it reaches the
attempt ceiling, after which it stays FAILED until an operator resends it.
Jobs never affect each other: there is no run-level success or failure.
"""
from datetime import date, timedelta
from typing import List, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import DeliveryError, RunNotFoundError, WorkspaceNotConfiguredError
from ..integrations.base import Publisher
from ..models.delivery import DUE_STATUSES, RESENDABLE_STATUSES, DeliveryJob, DeliveryStatus, Destination
from ..models.standup import StandupRun
from ..models.workspace import WorkspaceConfig
from ..utils.logging import get_logger
from ..utils.time import Clock, utcnow
from .report_service import ReportService

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_ATTEMPTS = 8
DEFAULT_BACKOFF_MINUTES = (1, 5, 15, 60, 360, 1440)


def destinations_for(config: WorkspaceConfig) -> List[str]:
    """Enabled destinations for a workspace, in the order their jobs are created.

    The chat summary goes last so it can link to the sheet and page.
    """
    destinations = [Destination.CSV.value]
    if config.google_spreadsheet_id:
        destinations.append(Destination.SHEETS.value)
    if config.notion_parent_page_id:
        destinations.append(Destination.NOTION.value)
    destinations.append(Destination.CHAT.value)
    return destinations


class DeliveryService:
    """Enqueue, process and resend delivery jobs"""

    def __init__(
        self,
        db: AsyncSession,
        publishers: Mapping[str, Publisher],
        clock: Clock = utcnow,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_minutes: Sequence[int] = DEFAULT_BACKOFF_MINUTES,
    ):
        self.db = db
        self.publishers = publishers
        self.clock = clock
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff_minutes = tuple(backoff_minutes)
        self.reports = ReportService(db)

    def backoff_delay(self, attempt_count: int) -> timedelta:
        """Wait before the next attempt, given the attempts made so far"""
        index = min(max(attempt_count - 1, 0), len(self.backoff_minutes) - 1)
        return timedelta(minutes=self.backoff_minutes[index])

    async def enqueue(self, run_id: int) -> List[DeliveryJob]:
        """Create a PENDING job for each enabled destination that has none yet"""

        run = await self.db.get(StandupRun, run_id)
        if run is None:
            raise RunNotFoundError(f"Standup run {run_id} not found")

        stmt = select(WorkspaceConfig).where(WorkspaceConfig.workspace_id == run.workspace_id)
        result = await self.db.execute(stmt)
        config = result.scalar_one_or_none()
        if config is None:
            raise WorkspaceNotConfiguredError(run.workspace_id)

        result = await self.db.execute(select(DeliveryJob.destination).where(DeliveryJob.run_id == run_id))
        existing = set(result.scalars().all())

        now = self.clock()
        jobs = []
        for destination in destinations_for(config):
            if destination in existing:
                continue
            job = DeliveryJob(
                run_id=run_id,
                destination=destination,
                status=DeliveryStatus.PENDING.value,
                attempt_count=0,
                next_attempt_at=now,
            )
            self.db.add(job)
            jobs.append(job)

        await self.db.commit()
        logger.info(f"Enqueued {len(jobs)} delivery jobs for run {run_id}: {[job.destination for job in jobs]}")
        return jobs

    async def due_jobs(self) -> List[DeliveryJob]:
        stmt = (
            select(DeliveryJob)
            .where(
                DeliveryJob.status.in_(DUE_STATUSES),
                DeliveryJob.next_attempt_at <= self.clock(),
            )
            .order_by(DeliveryJob.created_at.asc(), DeliveryJob.id.asc())
            .limit(self.batch_size)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def tick(self) -> int:
        """Process one batch of due jobs sequentially; returns how many were attempted"""

        job_ids = [job.id for job in await self.due_jobs()]
        for job_id in job_ids:
            try:
                job = await self.db.get(DeliveryJob, job_id, populate_existing=True)
                if job is None or job.status not in DUE_STATUSES:
                    continue
                await self.process_job(job)
            except Exception as e:
                # Bookkeeping itself failed; the job stays due and is picked up next tick
                logger.error(f"Delivery job {job_id} could not be recorded: {str(e)}")
                await self.db.rollback()
        return len(job_ids)

    async def process_job(self, job: DeliveryJob) -> DeliveryJob:
        """Attempt one job and record the outcome on it"""

        job_id = job.id
        destination = job.destination
        logger.info(f"Processing delivery job {job_id}: {destination} for run {job.run_id}")

        try:
            publisher = self.publishers.get(destination)
            if publisher is None:
                raise DeliveryError(f"No publisher registered for {destination}", destination)

            report = await self.reports.build_report(job.run_id)
            url = await publisher.publish(report)

        except Exception as e:
            return await self._record_failure(job, e)

        job.status = DeliveryStatus.SUCCESS.value
        job.completed_at = self.clock()
        job.destination_url = url
        job.last_error = None
        await self.db.commit()

        logger.info(f"Delivery job {job_id} ({destination}) completed successfully")
        return job

    async def _record_failure(self, job: DeliveryJob, error: Exception) -> DeliveryJob:
        job.attempt_count = job.attempt_count + 1
        job.last_error = str(error) or error.__class__.__name__

        if job.attempt_count >= self.max_attempts:
            job.status = DeliveryStatus.FAILED.value
            logger.error(
                f"Delivery job {job.id} ({job.destination}) permanently failed after "
                f"{job.attempt_count} attempts: {job.last_error}"
            )
        else:
            delay = self.backoff_delay(job.attempt_count)
            job.status = DeliveryStatus.RETRYING.value
            job.next_attempt_at = self.clock() + delay
            logger.warning(
                f"Delivery job {job.id} ({job.destination}) failed, retrying in "
                f"{int(delay.total_seconds() // 60)} minutes: {job.last_error}"
            )

        await self.db.commit()
        return job

    async def resend(self, workspace_id: str, run_date: date, destination: Optional[str] = None) -> int:
        """Reset FAILED/RETRYING jobs of a run to PENDING; returns the number reset"""

        stmt = select(StandupRun).where(
            StandupRun.workspace_id == workspace_id,
            StandupRun.run_date == run_date,
        )
        result = await self.db.execute(stmt)
        run = result.scalar_one_or_none()
        if run is None:
            raise RunNotFoundError(f"No standup run for {workspace_id} on {run_date.isoformat()}")

        conditions = [
            DeliveryJob.run_id == run.id,
            DeliveryJob.status.in_(RESENDABLE_STATUSES),
        ]
        if destination:
            conditions.append(DeliveryJob.destination == destination)

        stmt = (
            update(DeliveryJob)
            .where(*conditions)
            .values(
                status=DeliveryStatus.PENDING.value,
                attempt_count=0,
                next_attempt_at=self.clock(),
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        count = result.rowcount or 0
        logger.info(f"Reset {count} delivery jobs for run {run.id} ({destination or 'all destinations'})")
        return count
