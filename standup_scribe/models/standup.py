from enum import Enum

from sqlalchemy import Column, String, Integer, Text, Date, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel
from ..core.steps import FIRST_STEP, StandupAnswers, StandupStep


class RunStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ResponseStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    EXCUSED = "EXCUSED"
    MISSING = "MISSING"
    DM_FAILED = "DM_FAILED"


# Responses a member can still work on; also the set close() turns into MISSING
ACTIVE_RESPONSE_STATUSES = (ResponseStatus.PENDING.value, ResponseStatus.IN_PROGRESS.value)


class StandupRun(BaseModel):
    __tablename__ = "standup_runs"
    __table_args__ = (
        UniqueConstraint("workspace_id", "run_date", name="uq_run_workspace_date"),
    )

    workspace_id = Column(String, index=True, nullable=False)
    run_date = Column(Date, nullable=False)  # calendar day in the workspace timezone
    status = Column(String, default=RunStatus.OPEN.value, nullable=False)
    closed_at = Column(DateTime, nullable=True)

    responses = relationship(
        "StandupResponse",
        back_populates="run",
        cascade="all, delete-orphan",
    )
    delivery_jobs = relationship(
        "DeliveryJob",
        back_populates="run",
        cascade="all, delete-orphan",
    )

    @property
    def is_open(self) -> bool:
        return self.status == RunStatus.OPEN.value


class StandupResponse(BaseModel):
    __tablename__ = "standup_responses"
    __table_args__ = (
        UniqueConstraint("run_id", "roster_member_id", name="uq_response_run_member"),
    )

    run_id = Column(Integer, ForeignKey("standup_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    roster_member_id = Column(Integer, ForeignKey("roster_members.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, default=ResponseStatus.PENDING.value, nullable=False)

    # Session blob: {"current_step": <step>, "answers": {<step>: <value>}}
    answers = Column(JSON, default=dict)
    submitted_at = Column(DateTime, nullable=True)
    dm_error = Column(Text, nullable=True)

    run = relationship("StandupRun", back_populates="responses")
    roster_member = relationship("RosterMember", back_populates="responses")

    @property
    def current_step(self) -> StandupStep:
        blob = self.answers or {}
        try:
            return StandupStep(blob.get("current_step", FIRST_STEP.value))
        except ValueError:
            return FIRST_STEP

    @property
    def answer_bag(self) -> StandupAnswers:
        blob = self.answers or {}
        return StandupAnswers.from_json(blob.get("answers"))

    @staticmethod
    def pack_answers(current_step: StandupStep, answers: StandupAnswers) -> dict:
        return {"current_step": current_step.value, "answers": answers.model_dump()}
