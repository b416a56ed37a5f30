"""
Slack interactivity endpoint

Slack posts button clicks here as a form-encoded ``payload``. The request
signature is checked, the button's action id is decoded into a
StandupCommand and the user is DMed the next step.
"""
import json
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.commands import CommandResult, CommandType, StandupAction, StandupCommand
from ...core.exceptions import StandupError
from ...core.steps import StandupStep
from ...database import get_db
from ...integrations.base import IntegrationError
from ...integrations.slack_client import SlackClient
from ...services.command_handler import StandupCommandHandler
from ...services.session_cache import SessionCache
from ...services.standup_flow import StandupFlowService
from ...utils.logging import get_logger
from ...utils.time import Clock
from .deps import get_clock, get_session_cache, get_slack

logger = get_logger(__name__)

router = APIRouter()


def parse_interaction(body: bytes) -> Dict[str, Any]:
    form = parse_qs(body.decode("utf-8", errors="replace"))
    raw = (form.get("payload") or [""])[0]
    try:
        return json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid interaction payload")


def action_value(action: Dict[str, Any]) -> Optional[str]:
    selected = action.get("selected_option") or {}
    return action.get("value") or selected.get("value")


def render_step_prompt(result: CommandResult) -> tuple:
    """Text plus the button to show after a command, as (text, action, label)."""
    view = result.session
    if view is None or view.submitted:
        return result.message, None, None

    if view.current_step == StandupStep.CONFIRM:
        action = StandupAction(verb=CommandType.SUBMIT, roster_member_id=view.roster_member_id, run_id=view.run_id)
        return "*Review your answers and submit when ready.*", action, "Submit"

    action = StandupAction(verb=CommandType.NEXT, roster_member_id=view.roster_member_id, run_id=view.run_id)
    text = f"*Step {view.step_number}/{view.total_steps}: {view.step_title}*"
    return text, action, "Next"


@router.post("/interactions")
async def slack_interactions(
    request: Request,
    db: AsyncSession = Depends(get_db),
    slack: SlackClient = Depends(get_slack),
    cache: SessionCache = Depends(get_session_cache),
    clock: Clock = Depends(get_clock)
):
    body = await request.body()
    if not slack.verify_webhook_signature(
        body,
        request.headers.get("X-Slack-Request-Timestamp", ""),
        request.headers.get("X-Slack-Signature", ""),
    ):
        raise HTTPException(status_code=401, detail="Invalid Slack signature")

    payload = parse_interaction(body)
    if payload.get("type") != "block_actions" or not payload.get("actions"):
        return {"ok": True}

    user_id = payload.get("user", {}).get("id")
    action = payload["actions"][0]

    try:
        decoded = StandupAction.decode(action.get("action_id", ""))
        command = StandupCommand.from_action(user_id, decoded, value=action_value(action))
        handler = StandupCommandHandler(StandupFlowService(db, cache, clock=clock))
        result = await handler.handle(command)
    except StandupError as e:
        logger.info(f"Slack interaction from {user_id} rejected: {str(e)}")
        await _reply(slack, user_id, str(e))
        return {"ok": False, "error": e.code}

    text, next_action, label = render_step_prompt(result)
    await _reply(slack, user_id, text, next_action, label)
    return {"ok": True}


async def _reply(
    slack: SlackClient,
    user_id: str,
    text: str,
    action: Optional[StandupAction] = None,
    label: Optional[str] = None
) -> None:
    try:
        await slack.send_direct_message(user_id, text, action=action, action_label=label)
    except IntegrationError as e:
        logger.warning(f"Could not reply to {user_id} on Slack: {str(e)}")
