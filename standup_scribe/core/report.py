"""
Immutable report snapshot handed to publishers.

Publishers never see ORM objects; the delivery engine builds a
``StandupReport`` from a closed run and each publisher renders it.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .steps import (
    NIL,
    QUESTION_STEPS,
    REPORT_LABELS,
    STEP_CONFIG,
    AnswerKind,
    DateAnswer,
    StandupAnswers,
    clean_list,
)

REPORT_HEADERS: List[str] = ["Person"] + [REPORT_LABELS[step] for step in QUESTION_STEPS] + ["Status"]


class ReportEntry(BaseModel):
    display_name: str
    user_id: str
    status: str
    answers: StandupAnswers = Field(default_factory=StandupAnswers)
    submitted_at: Optional[datetime] = None


class StandupReport(BaseModel):
    workspace_id: str
    run_id: int
    run_date: date
    timezone: str = "UTC"
    report_channel_id: Optional[str] = None
    team_mention: Optional[str] = None
    google_spreadsheet_id: Optional[str] = None
    notion_parent_page_id: Optional[str] = None
    entries: List[ReportEntry] = Field(default_factory=list)
    links: Dict[str, str] = Field(default_factory=dict)  # destination -> url of finished deliveries

    model_config = {"frozen": True}

    @property
    def title_date(self) -> str:
        return self.run_date.isoformat()

    @property
    def weekday(self) -> str:
        return self.run_date.strftime("%A")

    def count(self, status: str) -> int:
        return sum(1 for entry in self.entries if entry.status == status)

    def collect(self, field: str, status: str = "SUBMITTED") -> List[str]:
        """``"*Name*: item"`` lines for a list answer across submitted entries."""
        lines = []
        for entry in self.entries:
            if entry.status != status:
                continue
            for item in clean_list(getattr(entry.answers, field)):
                lines.append(f"*{entry.display_name}*: {item}")
        return lines


def format_cell(answers: StandupAnswers, step) -> str:
    """Flatten one answer into a spreadsheet/CSV cell."""
    value = answers.get(step)
    kind = STEP_CONFIG[step].kind
    if kind == AnswerKind.LIST:
        return "\n".join(item for item in value if item and item != NIL)
    if kind == AnswerKind.DATE:
        return value.raw if isinstance(value, DateAnswer) else ""
    return value or ""


def entry_row(entry: ReportEntry) -> List[str]:
    return [entry.display_name] + [format_cell(entry.answers, step) for step in QUESTION_STEPS] + [entry.status]
