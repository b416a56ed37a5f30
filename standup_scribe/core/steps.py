"""
Standup question schema.

The wizard walks a fixed, ordered list of twelve questions followed by a
``confirm`` review step. Each question has exactly one answer kind, looked up
from ``STEP_CONFIG``; the typed ``StandupAnswers`` bag holds one field per
question.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

NIL = "Nil"


class StandupStep(str, Enum):
    WHAT_WORKING_ON = "what_working_on"
    APPETITE = "appetite"
    START_DATE = "start_date"
    SCHEDULED_DONE_DATE = "scheduled_done_date"
    ACTUAL_DONE_DATE = "actual_done_date"
    PROGRESS_TODAY = "progress_today"
    EXPECTATIONS = "expectations"
    AT_RISK = "at_risk"
    DECISIONS = "decisions"
    GOING_WELL = "going_well"
    GOING_POORLY = "going_poorly"
    NOTES = "notes"
    CONFIRM = "confirm"


class AnswerKind(str, Enum):
    LIST = "list"
    TEXT = "text"
    SELECT = "select"
    DATE = "date"


class StepConfig(BaseModel):
    title: str
    kind: Optional[AnswerKind] = None  # None only for the confirm step
    choices: Tuple[str, ...] = ()

    model_config = {"frozen": True}


STEP_ORDER: Tuple[StandupStep, ...] = tuple(StandupStep)
QUESTION_STEPS: Tuple[StandupStep, ...] = STEP_ORDER[:-1]
FIRST_STEP = StandupStep.WHAT_WORKING_ON

STEP_CONFIG: Dict[StandupStep, StepConfig] = {
    StandupStep.WHAT_WORKING_ON: StepConfig(title="What are you working on?", kind=AnswerKind.LIST),
    StandupStep.APPETITE: StepConfig(title="What's the appetite?", kind=AnswerKind.TEXT),
    StandupStep.START_DATE: StepConfig(title="When did it start?", kind=AnswerKind.DATE),
    StandupStep.SCHEDULED_DONE_DATE: StepConfig(title="When scheduled to be done?", kind=AnswerKind.DATE),
    StandupStep.ACTUAL_DONE_DATE: StepConfig(title="When actually done?", kind=AnswerKind.DATE),
    StandupStep.PROGRESS_TODAY: StepConfig(title="What progress did you make today?", kind=AnswerKind.LIST),
    StandupStep.EXPECTATIONS: StepConfig(
        title="What are your expectations vs plan?",
        kind=AnswerKind.SELECT,
        choices=("ABOVE", "AT", "BELOW", "NIL"),
    ),
    StandupStep.AT_RISK: StepConfig(title="What is at risk?", kind=AnswerKind.LIST),
    StandupStep.DECISIONS: StepConfig(title="What decisions need to be made?", kind=AnswerKind.LIST),
    StandupStep.GOING_WELL: StepConfig(title="What is going well?", kind=AnswerKind.LIST),
    StandupStep.GOING_POORLY: StepConfig(title="What is going poorly?", kind=AnswerKind.LIST),
    StandupStep.NOTES: StepConfig(title="Any additional notes?", kind=AnswerKind.TEXT),
    StandupStep.CONFIRM: StepConfig(title="Confirm Submission"),
}

# Short column labels used by CSV and spreadsheet reports
REPORT_LABELS: Dict[StandupStep, str] = {
    StandupStep.WHAT_WORKING_ON: "What working on",
    StandupStep.APPETITE: "Appetite",
    StandupStep.START_DATE: "Start date",
    StandupStep.SCHEDULED_DONE_DATE: "Scheduled done",
    StandupStep.ACTUAL_DONE_DATE: "Actual done",
    StandupStep.PROGRESS_TODAY: "Progress",
    StandupStep.EXPECTATIONS: "Expectations",
    StandupStep.AT_RISK: "At risk",
    StandupStep.DECISIONS: "Decisions",
    StandupStep.GOING_WELL: "Going well",
    StandupStep.GOING_POORLY: "Going poorly",
    StandupStep.NOTES: "Notes",
}


class DateAnswer(BaseModel):
    """A date answer keeps the user's text verbatim next to its parsed ISO date."""

    raw: str = ""
    iso: Optional[str] = None


class StandupAnswers(BaseModel):
    what_working_on: List[str] = Field(default_factory=list)
    appetite: str = ""
    start_date: DateAnswer = Field(default_factory=DateAnswer)
    scheduled_done_date: DateAnswer = Field(default_factory=DateAnswer)
    actual_done_date: DateAnswer = Field(default_factory=DateAnswer)
    progress_today: List[str] = Field(default_factory=list)
    expectations: str = ""
    at_risk: List[str] = Field(default_factory=list)
    decisions: List[str] = Field(default_factory=list)
    going_well: List[str] = Field(default_factory=list)
    going_poorly: List[str] = Field(default_factory=list)
    notes: str = ""

    model_config = {"extra": "ignore"}

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> "StandupAnswers":
        """Rebuild from a persisted blob, defaulting missing or malformed fields."""
        if not isinstance(data, dict):
            return cls()
        clean: Dict[str, Any] = {}
        defaults = cls()
        for step in QUESTION_STEPS:
            if step.value not in data:
                continue
            value = data[step.value]
            kind = STEP_CONFIG[step].kind
            if kind == AnswerKind.LIST and isinstance(value, list):
                clean[step.value] = [str(item) for item in value]
            elif kind == AnswerKind.DATE and isinstance(value, dict):
                clean[step.value] = DateAnswer(raw=str(value.get("raw") or ""), iso=value.get("iso"))
            elif kind in (AnswerKind.TEXT, AnswerKind.SELECT) and isinstance(value, str):
                clean[step.value] = value
            else:
                clean[step.value] = getattr(defaults, step.value)
        return cls(**clean)

    def get(self, step: StandupStep) -> Any:
        return getattr(self, step.value)

    def set(self, step: StandupStep, value: Any) -> None:
        setattr(self, step.value, value)


def step_index(step: StandupStep) -> int:
    return STEP_ORDER.index(step)


def next_step(step: StandupStep) -> StandupStep:
    """Step after ``step``; the confirm step is terminal."""
    index = min(step_index(step) + 1, len(STEP_ORDER) - 1)
    return STEP_ORDER[index]


def previous_step(step: StandupStep) -> StandupStep:
    """Step before ``step``; clamped at the first question."""
    index = max(step_index(step) - 1, 0)
    return STEP_ORDER[index]


def clean_list(values: List[str]) -> List[str]:
    """Drop blanks and the Nil sentinel for presentation."""
    return [value for value in values if value and value.strip() and value != NIL]
