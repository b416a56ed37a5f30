from datetime import date
import gc

import pytest
from sqlalchemy import func, select

from standup_scribe.core.exceptions import (
    AlreadySubmittedError,
    InvalidAnswerError,
    NotAuthorizedError,
    RunNotOpenError,
    SessionExpiredError,
)
from standup_scribe.core.steps import FIRST_STEP, NIL, QUESTION_STEPS, StandupStep
from standup_scribe.models import ResponseStatus, RunStatus, StandupResponse, StandupRun
from standup_scribe.services.session_cache import SessionCache
from standup_scribe.services.standup_flow import StandupFlowService
from standup_scribe.services.standup_runner import StandupRunService

from .helpers import FakeMessaging, make_member, make_run, make_workspace


@pytest.fixture
async def setup(db):
    await make_workspace(db)
    member = await make_member(db, "U1", "Ada")
    run = await make_run(db)
    return member, run


@pytest.fixture
def flow(db, cache, clock):
    return StandupFlowService(db, cache, clock=clock)


async def _response(db, run, member):
    stmt = (
        select(StandupResponse)
        .where(StandupResponse.run_id == run.id, StandupResponse.roster_member_id == member.id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def test_start_creates_in_progress_session(db, flow, setup):
    member, run = setup

    session = await flow.start_or_resume("U1", member.id, run.id)

    assert session.current_step == FIRST_STEP
    response = await _response(db, run, member)
    assert response.status == ResponseStatus.IN_PROGRESS.value
    assert response.answers["current_step"] == FIRST_STEP.value


async def test_start_rejects_someone_elses_member(flow, setup):
    member, run = setup

    with pytest.raises(NotAuthorizedError):
        await flow.start_or_resume("U2", member.id, run.id)


async def test_start_rejects_closed_run(db, flow, setup):
    member, _ = setup
    closed = await make_run(db, run_date=date(2026, 10, 13), status=RunStatus.CLOSED.value)

    with pytest.raises(RunNotOpenError):
        await flow.start_or_resume("U1", member.id, closed.id)


async def test_list_toggle_twice_restores_original(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    await flow.record_answer("U1", StandupStep.WHAT_WORKING_ON, "Billing API")

    await flow.record_answer("U1", StandupStep.WHAT_WORKING_ON, "Search")
    session = await flow.record_answer("U1", StandupStep.WHAT_WORKING_ON, "Search")

    assert session.answers.what_working_on == ["Billing API"]


async def test_list_bulk_replace_and_nil(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)

    session = await flow.record_answer("U1", StandupStep.AT_RISK, ["Deadline", "Vendor"])
    assert session.answers.at_risk == ["Deadline", "Vendor"]

    session = await flow.record_answer("U1", StandupStep.AT_RISK, "One\nTwo\n")
    assert session.answers.at_risk == ["One", "Two"]

    session = await flow.record_answer("U1", StandupStep.AT_RISK, None, mark_nil=True)
    assert session.answers.at_risk == [NIL]


async def test_list_toggle_strips_items_and_replaces_nil(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)

    await flow.record_answer("U1", StandupStep.AT_RISK, None, mark_nil=True)
    session = await flow.record_answer("U1", StandupStep.AT_RISK, "Vendor ")
    assert session.answers.at_risk == ["Vendor"]

    session = await flow.record_answer("U1", StandupStep.AT_RISK, "  Vendor")
    assert session.answers.at_risk == []


async def test_date_select_and_text_answers(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)

    session = await flow.record_answer("U1", StandupStep.START_DATE, "tomorrow")
    assert session.answers.start_date.iso == "2026-10-15"
    assert session.answers.start_date.raw == "tomorrow"

    session = await flow.record_answer("U1", StandupStep.EXPECTATIONS, "above")
    assert session.answers.expectations == "ABOVE"

    session = await flow.record_answer("U1", StandupStep.NOTES, "  spaced  ")
    assert session.answers.notes == "  spaced  "

    with pytest.raises(InvalidAnswerError):
        await flow.record_answer("U1", StandupStep.EXPECTATIONS, "sideways")


async def test_confirm_step_answers_are_ignored(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    before = (await flow.get_or_create_session("U1")).answers.model_copy(deep=True)

    session = await flow.record_answer("U1", StandupStep.CONFIRM, "yes")

    assert session.answers == before


async def test_retreat_from_first_step_is_a_no_op(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)

    session = await flow.retreat("U1")

    assert session.current_step == FIRST_STEP


async def test_advance_past_last_question_lands_on_confirm(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    await flow.go_to_step("U1", QUESTION_STEPS[-1])

    session = await flow.advance("U1")
    assert session.current_step == StandupStep.CONFIRM

    session = await flow.advance("U1")
    assert session.current_step == StandupStep.CONFIRM


async def test_session_rehydrates_from_storage(db, clock, flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    await flow.record_answer("U1", StandupStep.WHAT_WORKING_ON, "Billing API")
    await flow.advance("U1")

    # A fresh cache models a process restart
    restarted = StandupFlowService(db, SessionCache(), clock=clock)
    session = await restarted.get_or_create_session("U1")

    assert session is not None
    assert session.current_step == StandupStep.APPETITE
    assert session.answers.what_working_on == ["Billing API"]


async def test_restart_resets_progress(flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    await flow.record_answer("U1", StandupStep.WHAT_WORKING_ON, "Billing API")
    await flow.advance("U1")

    resumed = await flow.start_or_resume("U1", member.id, run.id)
    assert resumed.current_step == StandupStep.APPETITE

    restarted = await flow.start_or_resume("U1", member.id, run.id, restart=True)
    assert restarted.current_step == FIRST_STEP
    assert restarted.answers.what_working_on == []


async def test_submit_without_session_writes_nothing(db, flow, setup):
    with pytest.raises(SessionExpiredError):
        await flow.submit("U1")

    count = (await db.execute(select(func.count()).select_from(StandupResponse))).scalar_one()
    assert count == 0


async def test_submit_before_start_leaves_pending_response_untouched(db, clock, cache, flow):
    await make_workspace(db)
    member = await make_member(db, "U1", "Ada")
    outcome = await StandupRunService(db, FakeMessaging(), clock=clock, cache=cache).open_run("T001")

    with pytest.raises(SessionExpiredError):
        await flow.submit("U1")
    with pytest.raises(SessionExpiredError):
        await flow.record_answer("U1", StandupStep.NOTES, "late")

    response = await _response(db, await db.get(StandupRun, outcome.run_id), member)
    assert response.status == ResponseStatus.PENDING.value
    assert response.submitted_at is None
    assert response.answers == {}


async def test_submit_finalizes_and_evicts(db, cache, clock, flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    await flow.record_answer("U1", StandupStep.DECISIONS, "Pick a vendor")

    response = await flow.submit("U1")

    assert response.status == ResponseStatus.SUBMITTED.value
    assert response.submitted_at == clock.now
    assert response.answer_bag.decisions == ["Pick a vendor"]
    assert "U1" not in cache

    with pytest.raises(AlreadySubmittedError):
        await flow.start_or_resume("U1", member.id, run.id)


async def test_submit_after_run_closed_expires_session(db, flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)

    run.status = RunStatus.CLOSED.value
    await db.commit()

    with pytest.raises(SessionExpiredError):
        await flow.submit("U1")
    response = await _response(db, run, member)
    assert response.status == ResponseStatus.IN_PROGRESS.value


async def test_cancel_resets_response(db, cache, flow, setup):
    member, run = setup
    await flow.start_or_resume("U1", member.id, run.id)
    await flow.record_answer("U1", StandupStep.NOTES, "draft")

    assert await flow.cancel("U1") is True

    response = await _response(db, run, member)
    assert response.status == ResponseStatus.PENDING.value
    assert response.answers == {}
    assert "U1" not in cache


async def test_user_locks_are_dropped_when_idle(cache):
    async with cache.lock("U1"):
        assert cache.lock("U1") is cache.lock("U1")

    gc.collect()
    assert "U1" not in cache._locks
