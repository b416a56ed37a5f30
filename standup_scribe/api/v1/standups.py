"""
Standup Flow API Endpoints

Platform adapters post decoded user interactions here; each command moves
the user's standup wizard and returns what to render next.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.auth import get_current_operator
from ...core.commands import CommandResult, StandupCommand
from ...database import get_db
from ...services.command_handler import StandupCommandHandler
from ...services.session_cache import SessionCache
from ...services.standup_flow import StandupFlowService
from ...utils.time import Clock
from .deps import get_clock, get_session_cache

router = APIRouter(dependencies=[Depends(get_current_operator)])


@router.post("/commands", response_model=CommandResult)
async def handle_command(
    command: StandupCommand,
    db: AsyncSession = Depends(get_db),
    cache: SessionCache = Depends(get_session_cache),
    clock: Clock = Depends(get_clock)
):
    """
    Apply one flow command for a user

    ``start`` and ``continue`` need ``roster_member_id`` and ``run_id``;
    ``answer`` records ``value`` (or ``mark_nil``) for ``step``, defaulting
    to the current step; ``next``/``back``/``goto`` move through the
    questions; ``submit`` finalizes and ``cancel`` abandons the session.
    """
    handler = StandupCommandHandler(StandupFlowService(db, cache, clock=clock))
    return await handler.handle(command)
