"""
Structured standup commands.

Platform buttons carry an action id such as ``standup:start:12:34`` or
``standup:continue:12:34:appetite``. The adapter decodes it once with
``StandupAction.decode`` and hands the core a typed ``StandupCommand``.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .exceptions import ValidationError
from .steps import StandupStep

ACTION_PREFIX = "standup"


class CommandType(str, Enum):
    START = "start"
    CONTINUE = "continue"
    ANSWER = "answer"
    NEXT = "next"
    BACK = "back"
    GOTO = "goto"
    SUBMIT = "submit"
    CANCEL = "cancel"


class StandupAction(BaseModel):
    """The identity payload carried by an interactive platform element."""

    verb: CommandType
    roster_member_id: int
    run_id: int
    step: Optional[StandupStep] = None

    def encode(self) -> str:
        parts = [ACTION_PREFIX, self.verb.value, str(self.roster_member_id), str(self.run_id)]
        if self.step is not None:
            parts.append(self.step.value)
        return ":".join(parts)

    @classmethod
    def decode(cls, action_id: str) -> "StandupAction":
        parts = (action_id or "").split(":")
        if len(parts) not in (4, 5) or parts[0] != ACTION_PREFIX:
            raise ValidationError(f"Invalid action id: {action_id!r}")
        try:
            return cls(
                verb=CommandType(parts[1]),
                roster_member_id=int(parts[2]),
                run_id=int(parts[3]),
                step=StandupStep(parts[4]) if len(parts) == 5 else None,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid action id: {action_id!r}") from e


class StandupCommand(BaseModel):
    """A decoded user interaction addressed to the flow state machine."""

    type: CommandType
    user_id: str
    roster_member_id: Optional[int] = None
    run_id: Optional[int] = None
    step: Optional[StandupStep] = None
    value: Union[str, List[str], None] = None
    mark_nil: bool = False
    timezone: Optional[str] = None

    @classmethod
    def from_action(
        cls,
        user_id: str,
        action: StandupAction,
        value: Union[str, List[str], None] = None,
    ) -> "StandupCommand":
        return cls(
            type=action.verb,
            user_id=user_id,
            roster_member_id=action.roster_member_id,
            run_id=action.run_id,
            step=action.step,
            value=value,
        )


class SessionView(BaseModel):
    """What the platform adapter needs to render the next prompt."""

    user_id: str
    run_id: int
    roster_member_id: int
    current_step: StandupStep
    step_title: str
    step_number: int
    total_steps: int
    answers: dict = Field(default_factory=dict)
    submitted: bool = False


class CommandResult(BaseModel):
    """Outcome of a handled command; ``session`` is None once the session has ended."""

    command: CommandType
    message: str
    session: Optional[SessionView] = None
