from __future__ import annotations

from typing import Any, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    AlreadySubmittedError,
    InvalidAnswerError,
    NotAuthorizedError,
    RunNotFoundError,
    RunNotOpenError,
    SessionExpiredError,
)
from ..core.steps import (
    FIRST_STEP,
    NIL,
    STEP_CONFIG,
    AnswerKind,
    StandupStep,
    next_step,
    previous_step,
)
from ..models.standup import ACTIVE_RESPONSE_STATUSES, ResponseStatus, RunStatus, StandupResponse, StandupRun
from ..models.workspace import RosterMember, WorkspaceConfig
from ..utils.logging import get_logger
from ..utils.time import Clock, utcnow
from .date_parser import parse_date
from .session_cache import FlowSession, SessionCache

logger = get_logger(__name__)

# A response in one of these states may be (re)started by its member
STARTABLE_STATUSES = ACTIVE_RESPONSE_STATUSES + (ResponseStatus.DM_FAILED.value,)

AnswerValue = Union[str, Sequence[str], None]


class StandupFlowService:
    """
    Per-user standup wizard.

    Every mutation is written through to the member's StandupResponse row
    before returning, so a session survives a process restart and is
    rehydrated from the database on next access.
    """

    def __init__(self, db: AsyncSession, cache: SessionCache, clock: Clock = utcnow) -> None:
        self.db = db
        self.cache = cache
        self.clock = clock

    # Session lookup

    async def get_or_create_session(self, user_id: str) -> Optional[FlowSession]:
        """Return the user's live session, rehydrating it from storage if needed.

        Only a response that was started (IN_PROGRESS) backs a session; a
        PENDING row written when the run opened does not.
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        stmt = (
            select(StandupResponse)
            .join(RosterMember, StandupResponse.roster_member_id == RosterMember.id)
            .join(StandupRun, StandupResponse.run_id == StandupRun.id)
            .where(
                RosterMember.user_id == user_id,
                StandupResponse.status == ResponseStatus.IN_PROGRESS.value,
                StandupRun.status == RunStatus.OPEN.value,
            )
            .order_by(StandupResponse.created_at.desc(), StandupResponse.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        response = result.scalars().first()
        if response is None:
            return None

        session = self._session_from_row(user_id, response)
        self.cache.put(session)
        logger.debug(f"Rehydrated standup session for user {user_id} at step {session.current_step.value}")
        return session

    async def start_or_resume(
        self,
        user_id: str,
        roster_member_id: int,
        run_id: int,
        restart: bool = False,
    ) -> FlowSession:
        """Open the wizard for a member, resuming any saved progress.

        With ``restart`` set, a session that has moved past the first step is
        wiped back to the first question with empty answers.
        """
        async with self.cache.lock(user_id):
            member = await self.db.get(RosterMember, roster_member_id)
            if member is None or member.user_id != user_id or not member.is_active:
                raise NotAuthorizedError("You are not authorized to perform this action.")

            run = await self.db.get(StandupRun, run_id, populate_existing=True)
            if run is None:
                raise RunNotFoundError(f"Standup run {run_id} not found")
            if not run.is_open:
                raise RunNotOpenError("This standup run is closed.")

            response = await self._get_response(run_id, roster_member_id)
            if response is not None and response.status not in STARTABLE_STATUSES:
                raise AlreadySubmittedError(
                    f"Standup already finalized with status {response.status}"
                )

            session = await self.get_or_create_session(user_id)
            if session is None or session.run_id != run_id or session.roster_member_id != roster_member_id:
                if response is not None:
                    session = self._session_from_row(user_id, response)
                else:
                    session = FlowSession(user_id=user_id, roster_member_id=roster_member_id, run_id=run_id)

            if restart and session.current_step != FIRST_STEP:
                session.reset()

            self.cache.put(session)
            await self._persist(session, response)
            logger.info(f"Standup session for user {user_id} on run {run_id} at step {session.current_step.value}")
            return session

    # Mutations

    async def record_answer(
        self,
        user_id: str,
        step: Union[StandupStep, str],
        value: AnswerValue,
        timezone: Optional[str] = None,
        mark_nil: bool = False,
    ) -> FlowSession:
        """Normalize ``value`` for the step's answer kind and save it.

        List steps take a sequence (replaces the list), a multi-line string
        (one item per line, replaces the list) or a single item, which is
        toggled: removed when present, appended otherwise. ``mark_nil``
        stores the explicit ``["Nil"]`` list.
        """
        step = StandupStep(step)
        async with self.cache.lock(user_id):
            session = await self._require_session(user_id)

            if step == StandupStep.CONFIRM:
                return session

            config = STEP_CONFIG[step]
            if config.kind == AnswerKind.DATE:
                tz_name = timezone or await self._workspace_timezone(session)
                text = "" if value is None else str(value)
                session.answers.set(step, parse_date(text, tz_name, now=self.clock()))
            elif config.kind == AnswerKind.LIST:
                session.answers.set(step, self._normalize_list(session.answers.get(step), value, mark_nil))
            elif config.kind == AnswerKind.SELECT:
                choice = NIL.upper() if mark_nil else str(value or "").strip().upper()
                if choice not in config.choices:
                    raise InvalidAnswerError(
                        f"{value!r} is not a valid choice for {step.value}; expected one of {', '.join(config.choices)}"
                    )
                session.answers.set(step, choice)
            else:
                session.answers.set(step, "" if value is None else str(value))

            await self._persist(session)
            return session

    async def advance(self, user_id: str) -> FlowSession:
        async with self.cache.lock(user_id):
            session = await self._require_session(user_id)
            session.current_step = next_step(session.current_step)
            await self._persist(session)
            return session

    async def retreat(self, user_id: str) -> FlowSession:
        async with self.cache.lock(user_id):
            session = await self._require_session(user_id)
            session.current_step = previous_step(session.current_step)
            await self._persist(session)
            return session

    async def go_to_step(self, user_id: str, step: Union[StandupStep, str]) -> FlowSession:
        async with self.cache.lock(user_id):
            session = await self._require_session(user_id)
            session.current_step = StandupStep(step)
            await self._persist(session)
            return session

    async def submit(self, user_id: str) -> StandupResponse:
        """Finalize the user's answers; the session is evicted afterwards."""
        async with self.cache.lock(user_id):
            session = await self._require_session(user_id)

            response = await self._get_response(session.run_id, session.roster_member_id)
            run = await self.db.get(StandupRun, session.run_id, populate_existing=True)
            if (
                response is None
                or response.status != ResponseStatus.IN_PROGRESS.value
                or run is None
                or not run.is_open
            ):
                self.cache.evict(user_id)
                raise SessionExpiredError()

            response.status = ResponseStatus.SUBMITTED.value
            response.answers = StandupResponse.pack_answers(StandupStep.CONFIRM, session.answers)
            response.submitted_at = self.clock()
            response.dm_error = None
            await self.db.commit()

            self.cache.evict(user_id)
            logger.info(f"User {user_id} submitted standup for run {session.run_id}")
            return response

    async def cancel(self, user_id: str) -> bool:
        """Abandon the session: answers are cleared and the response goes back to PENDING."""
        async with self.cache.lock(user_id):
            session = await self.get_or_create_session(user_id)
            if session is None:
                return False

            response = await self._get_response(session.run_id, session.roster_member_id)
            if response is not None and response.status in ACTIVE_RESPONSE_STATUSES:
                response.status = ResponseStatus.PENDING.value
                response.answers = {}
                await self.db.commit()

            self.cache.evict(user_id)
            logger.info(f"User {user_id} cancelled standup for run {session.run_id}")
            return True

    # Helpers

    async def _require_session(self, user_id: str) -> FlowSession:
        session = await self.get_or_create_session(user_id)
        if session is None:
            raise SessionExpiredError()
        return session

    async def _get_response(self, run_id: int, roster_member_id: int) -> Optional[StandupResponse]:
        stmt = (
            select(StandupResponse)
            .where(
                StandupResponse.run_id == run_id,
                StandupResponse.roster_member_id == roster_member_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _persist(self, session: FlowSession, response: Optional[StandupResponse] = None) -> None:
        """Write current step and the full answer bag to the response row."""
        if response is None:
            response = await self._get_response(session.run_id, session.roster_member_id)

        blob = StandupResponse.pack_answers(session.current_step, session.answers)
        if response is None:
            response = StandupResponse(
                run_id=session.run_id,
                roster_member_id=session.roster_member_id,
                status=ResponseStatus.IN_PROGRESS.value,
                answers=blob,
            )
            self.db.add(response)
        elif response.status in STARTABLE_STATUSES:
            response.status = ResponseStatus.IN_PROGRESS.value
            response.answers = blob
            response.dm_error = None
        else:
            # The row moved on without us (run closed, already submitted)
            self.cache.evict(session.user_id)
            raise SessionExpiredError()

        await self.db.commit()

    async def _workspace_timezone(self, session: FlowSession) -> str:
        stmt = (
            select(WorkspaceConfig.timezone)
            .join(RosterMember, RosterMember.workspace_id == WorkspaceConfig.workspace_id)
            .where(RosterMember.id == session.roster_member_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() or "UTC"

    @staticmethod
    def _session_from_row(user_id: str, response: StandupResponse) -> FlowSession:
        return FlowSession(
            user_id=user_id,
            roster_member_id=response.roster_member_id,
            run_id=response.run_id,
            current_step=response.current_step,
            answers=response.answer_bag,
        )

    @staticmethod
    def _normalize_list(current: Sequence[str], value: Any, mark_nil: bool) -> list:
        if mark_nil:
            return [NIL]
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        text = "" if value is None else str(value)
        if "\n" in text:
            return [line.strip() for line in text.splitlines() if line.strip()]
        item = text.strip()
        if not item:
            return list(current)
        if item in current:
            index = current.index(item)
            return list(current[:index]) + list(current[index + 1:])
        # A real item replaces the Nil marker
        return [entry for entry in current if entry != NIL] + [item]
