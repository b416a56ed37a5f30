"""
Standup Run API Endpoints

Manual open/remind/close of today's run, status inspection and CSV export
"""
from datetime import date as Date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import Settings
from ...core.auth import get_current_operator
from ...database import get_db
from ...integrations.base import MessagingClient
from ...services.report_service import ReportService
from ...services.session_cache import SessionCache
from ...services.standup_runner import OpenRunResult, StandupRunService
from ...utils.time import Clock
from .deps import get_app_settings, get_clock, get_messaging, get_session_cache

router = APIRouter(dependencies=[Depends(get_current_operator)])

ERROR_PREVIEW_LENGTH = 500


class ResponseStatusView(BaseModel):
    roster_member_id: int
    user_id: str
    display_name: str
    status: str
    current_step: Optional[str] = None
    submitted_at: Optional[datetime] = None
    dm_error: Optional[str] = None


class DeliveryJobView(BaseModel):
    id: int
    destination: str
    status: str
    attempt_count: int
    next_attempt_at: datetime
    completed_at: Optional[datetime] = None
    destination_url: Optional[str] = None
    last_error: Optional[str] = None


class RunDetailResponse(BaseModel):
    id: int
    workspace_id: str
    run_date: Date
    status: str
    closed_at: Optional[datetime] = None
    responses: List[ResponseStatusView]
    delivery_jobs: List[DeliveryJobView]


def _preview(text: Optional[str]) -> Optional[str]:
    if text is None or len(text) <= ERROR_PREVIEW_LENGTH:
        return text
    return text[:ERROR_PREVIEW_LENGTH] + "..."


def _run_service(db, messaging, clock, cache=None) -> StandupRunService:
    return StandupRunService(db, messaging, clock=clock, cache=cache)


@router.post("/{workspace_id}/open", response_model=OpenRunResult)
async def open_run(
    workspace_id: str,
    db: AsyncSession = Depends(get_db),
    messaging: MessagingClient = Depends(get_messaging),
    clock: Clock = Depends(get_clock)
):
    """Open today's run and DM the roster; safe to re-run for members whose DM failed"""
    return await _run_service(db, messaging, clock).open_run(workspace_id)


@router.post("/{workspace_id}/remind", response_model=dict)
async def send_reminders(
    workspace_id: str,
    db: AsyncSession = Depends(get_db),
    messaging: MessagingClient = Depends(get_messaging),
    clock: Clock = Depends(get_clock)
):
    sent = await _run_service(db, messaging, clock).send_reminders(workspace_id)
    return {"sent": sent}


@router.post("/{workspace_id}/close", response_model=RunDetailResponse)
async def close_run(
    workspace_id: str,
    db: AsyncSession = Depends(get_db),
    messaging: MessagingClient = Depends(get_messaging),
    cache: SessionCache = Depends(get_session_cache),
    clock: Clock = Depends(get_clock)
):
    """Close today's run and enqueue its deliveries"""

    service = _run_service(db, messaging, clock, cache)
    run = await service.close_run(workspace_id)
    return await _detail(service, workspace_id, run.run_date)


@router.get("/{workspace_id}/export", response_model=dict)
async def export_runs(
    workspace_id: str,
    start: Date,
    end: Date,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """Write every closed run between ``start`` and ``end`` to one CSV file"""
    path = await ReportService(db).export_csv(workspace_id, start, end, settings.exports_dir)
    return {"path": path}


@router.get("/{workspace_id}/{run_date}", response_model=RunDetailResponse)
async def get_run(
    workspace_id: str,
    run_date: Date,
    db: AsyncSession = Depends(get_db),
    messaging: MessagingClient = Depends(get_messaging),
    clock: Clock = Depends(get_clock)
):
    """Per-member response status and per-destination delivery status of a run"""
    return await _detail(_run_service(db, messaging, clock), workspace_id, run_date)


async def _detail(service: StandupRunService, workspace_id: str, run_date: Date) -> RunDetailResponse:
    run = await service.get_run_detail(workspace_id, run_date)

    responses = [
        ResponseStatusView(
            roster_member_id=response.roster_member_id,
            user_id=response.roster_member.user_id,
            display_name=response.roster_member.display_name,
            status=response.status,
            current_step=response.current_step.value if response.answers else None,
            submitted_at=response.submitted_at,
            dm_error=_preview(response.dm_error),
        )
        for response in sorted(run.responses, key=lambda r: r.roster_member.display_name.lower())
    ]
    jobs = [
        DeliveryJobView(
            id=job.id,
            destination=job.destination,
            status=job.status,
            attempt_count=job.attempt_count,
            next_attempt_at=job.next_attempt_at,
            completed_at=job.completed_at,
            destination_url=job.destination_url,
            last_error=_preview(job.last_error),
        )
        for job in sorted(run.delivery_jobs, key=lambda j: j.id)
    ]

    return RunDetailResponse(
        id=run.id,
        workspace_id=run.workspace_id,
        run_date=run.run_date,
        status=run.status,
        closed_at=run.closed_at,
        responses=responses,
        delivery_jobs=jobs,
    )
