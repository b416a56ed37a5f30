"""
Standup run lifecycle: open, remind, close.

One run exists per workspace and local calendar day. Opening DMs every
active roster member (or marks them excused); closing turns unfinished
responses into MISSING and hands the run to the delivery engine. Each
member is processed in its own failure boundary so one bad DM never stops
the rest of the roster.
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.commands import CommandType, StandupAction
from ..core.exceptions import RunAlreadyClosedError, RunNotFoundError
from ..integrations.base import MessagingClient
from ..models.standup import ACTIVE_RESPONSE_STATUSES, ResponseStatus, RunStatus, StandupResponse, StandupRun
from ..models.workspace import RosterMember, WorkspaceConfig
from ..utils.logging import get_logger
from ..utils.time import Clock, local_today, utcnow
from .delivery_service import DeliveryService
from .session_cache import SessionCache
from .workspace_service import WorkspaceService

logger = get_logger(__name__)

# Statuses open_run may overwrite when it re-visits a member
RETRYABLE_STATUSES = (ResponseStatus.DM_FAILED.value,)


class OpenRunResult(BaseModel):
    run_id: int
    run_date: date
    prompted: int = 0
    excused: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class _Target:
    member_id: int
    user_id: str
    excused: bool


def opening_prompt(config: WorkspaceConfig) -> str:
    return (
        ":wave: Good morning! It's standup time!\n\n"
        f"Please complete your standup by *{config.window_close_time} {config.timezone}*.\n\n"
        "Click the button below to start your standup."
    )


REMINDER_PROMPT = ":alarm_clock: Reminder: Please complete your standup!"


class StandupRunService:
    """Service for the daily standup run of a workspace"""

    def __init__(
        self,
        db: AsyncSession,
        messaging: MessagingClient,
        clock: Clock = utcnow,
        cache: Optional[SessionCache] = None,
        delivery: Optional[DeliveryService] = None,
    ):
        self.db = db
        self.messaging = messaging
        self.clock = clock
        self.cache = cache
        self.delivery = delivery or DeliveryService(db, publishers={}, clock=clock)
        self.workspaces = WorkspaceService(db)

    async def get_run(self, workspace_id: str, run_date: date) -> Optional[StandupRun]:
        stmt = (
            select(StandupRun)
            .where(StandupRun.workspace_id == workspace_id, StandupRun.run_date == run_date)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_run_detail(self, workspace_id: str, run_date: date) -> StandupRun:
        """Run with its responses (and their members) and delivery jobs loaded"""

        stmt = (
            select(StandupRun)
            .where(StandupRun.workspace_id == workspace_id, StandupRun.run_date == run_date)
            .options(
                selectinload(StandupRun.responses).selectinload(StandupResponse.roster_member),
                selectinload(StandupRun.delivery_jobs),
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        run = result.scalar_one_or_none()
        if run is None:
            raise RunNotFoundError(f"No standup run for {workspace_id} on {run_date.isoformat()}")
        return run

    async def open_run(self, workspace_id: str) -> OpenRunResult:
        """Open today's run and prompt every active member who still needs a prompt"""

        config = await self.workspaces.require_config(workspace_id)
        today = local_today(self.clock(), config.timezone)
        prompt = opening_prompt(config)

        run = await self._get_or_create_run(workspace_id, today)
        run_id = run.id
        outcome = OpenRunResult(run_id=run_id, run_date=today)

        for target in await self._targets(workspace_id, today):
            try:
                status = await self._open_for_member(run_id, target, prompt)
            except Exception as e:
                logger.error(f"Failed to open standup for member {target.member_id} on run {run_id}: {str(e)}")
                await self.db.rollback()
                outcome.failed += 1
                continue

            if status == ResponseStatus.PENDING.value:
                outcome.prompted += 1
            elif status == ResponseStatus.EXCUSED.value:
                outcome.excused += 1
            elif status == ResponseStatus.DM_FAILED.value:
                outcome.failed += 1
            else:
                outcome.skipped += 1

        logger.info(
            f"Opened standup run {run_id} for {workspace_id} on {today}: "
            f"{outcome.prompted} prompted, {outcome.excused} excused, "
            f"{outcome.failed} failed, {outcome.skipped} skipped"
        )
        return outcome

    async def send_reminders(self, workspace_id: str) -> int:
        """Nudge members whose response is still PENDING or IN_PROGRESS; returns reminders sent"""

        config = await self.workspaces.get_config(workspace_id)
        if config is None:
            return 0

        today = local_today(self.clock(), config.timezone)
        run = await self.get_run(workspace_id, today)
        if run is None or not run.is_open:
            return 0

        stmt = (
            select(StandupResponse.roster_member_id, RosterMember.user_id)
            .join(RosterMember, StandupResponse.roster_member_id == RosterMember.id)
            .where(
                StandupResponse.run_id == run.id,
                StandupResponse.status.in_(ACTIVE_RESPONSE_STATUSES),
            )
        )
        result = await self.db.execute(stmt)
        pending = result.all()

        sent = 0
        for member_id, user_id in pending:
            action = StandupAction(verb=CommandType.CONTINUE, roster_member_id=member_id, run_id=run.id)
            try:
                await self.messaging.send_direct_message(
                    user_id, REMINDER_PROMPT, action=action, action_label="Continue Standup"
                )
                sent += 1
            except Exception as e:
                logger.error(f"Failed to send reminder to {user_id}: {str(e)}")

        logger.info(f"Sent {sent}/{len(pending)} reminders for run {run.id}")
        return sent

    async def close_run(self, workspace_id: str) -> StandupRun:
        """Close today's run, mark unfinished responses MISSING and enqueue delivery"""

        config = await self.workspaces.require_config(workspace_id)
        today = local_today(self.clock(), config.timezone)

        run = await self.get_run(workspace_id, today)
        if run is None:
            raise RunNotFoundError(f"No open run found for {workspace_id} on {today.isoformat()}")
        if not run.is_open:
            raise RunAlreadyClosedError(f"Run for {workspace_id} on {today.isoformat()} is already closed")

        stmt = (
            update(StandupResponse)
            .where(
                StandupResponse.run_id == run.id,
                StandupResponse.status.in_(ACTIVE_RESPONSE_STATUSES),
            )
            .values(status=ResponseStatus.MISSING.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        missing = result.rowcount or 0

        run.status = RunStatus.CLOSED.value
        run.closed_at = self.clock()
        await self.db.commit()

        if self.cache is not None:
            self.cache.evict_run(run.id)

        logger.info(f"Closed standup run {run.id} for {workspace_id}: {missing} responses missing")
        await self.delivery.enqueue(run.id)
        return run

    # Helpers

    async def _get_or_create_run(self, workspace_id: str, run_date: date) -> StandupRun:
        run = await self.get_run(workspace_id, run_date)
        if run is not None:
            if not run.is_open:
                raise RunAlreadyClosedError(f"Standup for {run_date.isoformat()} is already closed")
            return run

        run = StandupRun(workspace_id=workspace_id, run_date=run_date, status=RunStatus.OPEN.value)
        self.db.add(run)
        try:
            await self.db.commit()
        except IntegrityError:
            # Opened concurrently; use the row that won
            await self.db.rollback()
            run = await self.get_run(workspace_id, run_date)
            if run is None or not run.is_open:
                raise RunAlreadyClosedError(f"Standup for {run_date.isoformat()} is already closed")
            return run

        logger.info(f"Created standup run {run.id} for {workspace_id} on {run_date}")
        return run

    async def _targets(self, workspace_id: str, run_date: date) -> List[_Target]:
        stmt = (
            select(RosterMember)
            .where(RosterMember.workspace_id == workspace_id, RosterMember.is_active.is_(True))
            .options(selectinload(RosterMember.excusals))
            .order_by(RosterMember.display_name, RosterMember.id)
        )
        result = await self.db.execute(stmt)
        return [
            _Target(member_id=member.id, user_id=member.user_id, excused=member.is_excused_on(run_date))
            for member in result.scalars().all()
        ]

    async def _open_for_member(self, run_id: int, target: _Target, prompt: str) -> Optional[str]:
        """Excuse, prompt or skip one member; returns the status written, if any"""

        stmt = select(StandupResponse).where(
            StandupResponse.run_id == run_id,
            StandupResponse.roster_member_id == target.member_id,
        )
        result = await self.db.execute(stmt)
        response = result.scalar_one_or_none()

        if target.excused:
            if response is not None and response.status not in (ResponseStatus.PENDING.value,) + RETRYABLE_STATUSES:
                return None
            await self._write(run_id, target.member_id, response, ResponseStatus.EXCUSED.value)
            return ResponseStatus.EXCUSED.value

        if response is not None and response.status not in RETRYABLE_STATUSES:
            return None

        action = StandupAction(verb=CommandType.START, roster_member_id=target.member_id, run_id=run_id)
        try:
            await self.messaging.send_direct_message(
                target.user_id, prompt, action=action, action_label="Start Standup"
            )
        except Exception as e:
            logger.error(f"Failed to DM user {target.user_id}: {str(e)}")
            await self._write(
                run_id, target.member_id, response, ResponseStatus.DM_FAILED.value,
                dm_error=str(e) or e.__class__.__name__,
            )
            return ResponseStatus.DM_FAILED.value

        await self._write(run_id, target.member_id, response, ResponseStatus.PENDING.value)
        return ResponseStatus.PENDING.value

    async def _write(
        self,
        run_id: int,
        member_id: int,
        response: Optional[StandupResponse],
        status: str,
        dm_error: Optional[str] = None,
    ) -> None:
        if response is None:
            response = StandupResponse(run_id=run_id, roster_member_id=member_id, answers={})
            self.db.add(response)
        response.status = status
        response.dm_error = dm_error
        await self.db.commit()
