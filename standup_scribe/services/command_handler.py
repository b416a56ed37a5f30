from typing import Optional

from ..core.commands import CommandResult, CommandType, SessionView, StandupCommand
from ..core.exceptions import ValidationError
from ..core.steps import QUESTION_STEPS, STEP_CONFIG, StandupStep, step_index
from ..utils.logging import get_logger
from .session_cache import FlowSession
from .standup_flow import StandupFlowService

logger = get_logger(__name__)


def session_view(session: FlowSession, submitted: bool = False) -> SessionView:
    step = StandupStep.CONFIRM if submitted else session.current_step
    return SessionView(
        user_id=session.user_id,
        run_id=session.run_id,
        roster_member_id=session.roster_member_id,
        current_step=step,
        step_title=STEP_CONFIG[step].title,
        step_number=min(step_index(step) + 1, len(QUESTION_STEPS)),
        total_steps=len(QUESTION_STEPS),
        answers=session.answers.model_dump(),
        submitted=submitted,
    )


class StandupCommandHandler:
    """Routes decoded platform commands to the flow state machine"""

    def __init__(self, flow: StandupFlowService):
        self.flow = flow

    async def handle(self, command: StandupCommand) -> CommandResult:
        logger.debug(f"Handling {command.type.value} from {command.user_id}")
        user_id = command.user_id

        if command.type in (CommandType.START, CommandType.CONTINUE):
            if command.roster_member_id is None or command.run_id is None:
                raise ValidationError(f"{command.type.value} requires roster_member_id and run_id")
            session = await self.flow.start_or_resume(
                user_id,
                command.roster_member_id,
                command.run_id,
                restart=command.type == CommandType.START,
            )
            return self._result(command, "Standup started", session)

        if command.type == CommandType.ANSWER:
            step = command.step or await self._current_step(user_id)
            session = await self.flow.record_answer(
                user_id,
                step,
                command.value,
                timezone=command.timezone,
                mark_nil=command.mark_nil,
            )
            return self._result(command, "Answer saved", session)

        if command.type == CommandType.NEXT:
            return self._result(command, "Moved forward", await self.flow.advance(user_id))

        if command.type == CommandType.BACK:
            return self._result(command, "Moved back", await self.flow.retreat(user_id))

        if command.type == CommandType.GOTO:
            if command.step is None:
                raise ValidationError("goto requires a step")
            return self._result(command, "Moved", await self.flow.go_to_step(user_id, command.step))

        if command.type == CommandType.SUBMIT:
            session = await self.flow.get_or_create_session(user_id)
            await self.flow.submit(user_id)
            view = session_view(session, submitted=True) if session is not None else None
            return CommandResult(command=command.type, message="Standup submitted. Thank you!", session=view)

        cancelled = await self.flow.cancel(user_id)
        message = "Standup cancelled" if cancelled else "No standup in progress"
        return CommandResult(command=command.type, message=message)

    async def _current_step(self, user_id: str) -> StandupStep:
        session = await self.flow.get_or_create_session(user_id)
        if session is None:
            # record_answer raises the session-expired error for us
            return QUESTION_STEPS[0]
        return session.current_step

    @staticmethod
    def _result(command: StandupCommand, message: str, session: Optional[FlowSession]) -> CommandResult:
        return CommandResult(
            command=command.type,
            message=message,
            session=session_view(session) if session is not None else None,
        )
