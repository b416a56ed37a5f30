"""
Workspace API Endpoints

Standup settings, roster membership and excusals for a workspace
"""
from datetime import date as Date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import Settings
from ...core.auth import get_current_operator
from ...database import get_db
from ...services.roster_service import RosterService
from ...services.workspace_service import WorkspaceService
from .deps import get_app_settings

router = APIRouter(dependencies=[Depends(get_current_operator)])


# Pydantic models for requests/responses
class WorkspaceConfigRequest(BaseModel):
    """Settings to create or change; omitted fields keep their current value"""
    report_channel_id: Optional[str] = None
    team_mention: Optional[str] = Field(None, description="e.g. <!subteam^S123> or @team")
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. Africa/Lagos")
    window_open_time: Optional[str] = Field(None, description="HH:MM, 24-hour")
    window_close_time: Optional[str] = Field(None, description="HH:MM, 24-hour")
    reminder_times: Optional[List[str]] = Field(None, description="Up to 3 HH:MM times")
    retention_days: Optional[int] = None
    google_spreadsheet_id: Optional[str] = Field(None, description="Empty string disables Sheets")
    notion_parent_page_id: Optional[str] = Field(None, description="Empty string disables Notion")
    is_active: Optional[bool] = None


class WorkspaceConfigResponse(BaseModel):
    workspace_id: str
    report_channel_id: Optional[str]
    team_mention: Optional[str]
    timezone: str
    window_open_time: str
    window_close_time: str
    reminder_times: List[str]
    retention_days: int
    google_spreadsheet_id: Optional[str]
    notion_parent_page_id: Optional[str]
    is_active: bool
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RosterMemberRequest(BaseModel):
    user_id: str = Field(..., description="Platform user id")
    display_name: str


class RosterMemberResponse(BaseModel):
    id: int
    workspace_id: str
    user_id: str
    display_name: str
    is_active: bool

    class Config:
        from_attributes = True


class ExcusalRequest(BaseModel):
    start_date: Date
    end_date: Date
    reason: str = ""


class ExcusalResponse(BaseModel):
    id: int
    roster_member_id: int
    start_date: Date
    end_date: Date
    reason: str

    class Config:
        from_attributes = True


@router.put("/{workspace_id}", response_model=WorkspaceConfigResponse)
async def configure_workspace(
    workspace_id: str,
    request: WorkspaceConfigRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings)
):
    """Create or update a workspace's standup settings"""

    service = WorkspaceService(db, default_timezone=settings.default_timezone)
    return await service.configure(workspace_id, **request.model_dump(exclude_unset=True))


@router.get("/{workspace_id}", response_model=WorkspaceConfigResponse)
async def get_workspace(
    workspace_id: str,
    db: AsyncSession = Depends(get_db)
):
    return await WorkspaceService(db).require_config(workspace_id)


# Roster

@router.get("/{workspace_id}/roster", response_model=List[RosterMemberResponse])
async def list_roster(
    workspace_id: str,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db)
):
    return await RosterService(db).list_members(workspace_id, include_inactive=include_inactive)


@router.post("/{workspace_id}/roster", response_model=RosterMemberResponse, status_code=201)
async def add_roster_member(
    workspace_id: str,
    request: RosterMemberRequest,
    db: AsyncSession = Depends(get_db)
):
    """Add a member, or reactivate one that was removed"""
    return await RosterService(db).add_member(workspace_id, request.user_id, request.display_name)


@router.delete("/{workspace_id}/roster/{user_id}", response_model=RosterMemberResponse)
async def remove_roster_member(
    workspace_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db)
):
    return await RosterService(db).remove_member(workspace_id, user_id)


# Excusals

@router.get("/{workspace_id}/excusals", response_model=List[ExcusalResponse])
async def list_excusals(
    workspace_id: str,
    user_id: Optional[str] = None,
    active_on: Optional[Date] = None,
    db: AsyncSession = Depends(get_db)
):
    return await RosterService(db).list_excusals(workspace_id, user_id=user_id, active_on=active_on)


@router.post("/{workspace_id}/roster/{user_id}/excusals", response_model=ExcusalResponse, status_code=201)
async def add_excusal(
    workspace_id: str,
    user_id: str,
    request: ExcusalRequest,
    db: AsyncSession = Depends(get_db)
):
    return await RosterService(db).add_excusal(
        workspace_id, user_id, request.start_date, request.end_date, request.reason
    )


@router.delete("/{workspace_id}/roster/{user_id}/excusals", response_model=dict)
async def remove_excusal(
    workspace_id: str,
    user_id: str,
    on_date: Date,
    db: AsyncSession = Depends(get_db)
):
    """Remove the excusal(s) covering ``on_date``"""
    removed = await RosterService(db).remove_excusal(workspace_id, user_id, on_date)
    return {"removed": removed}
