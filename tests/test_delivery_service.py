from datetime import date, timedelta

import pytest
from sqlalchemy import select

from standup_scribe.core.exceptions import RunNotFoundError
from standup_scribe.models import DeliveryJob, DeliveryStatus, RunStatus
from standup_scribe.services.delivery_service import DeliveryService, destinations_for

from .helpers import FakePublisher, make_member, make_run, make_workspace


async def _job(db, run, destination, status=DeliveryStatus.PENDING.value, attempt_count=0, next_attempt_at=None, clock=None):
    job = DeliveryJob(
        run_id=run.id,
        destination=destination,
        status=status,
        attempt_count=attempt_count,
        next_attempt_at=next_attempt_at or clock(),
    )
    db.add(job)
    await db.commit()
    return job


async def _reload(db, job_id):
    return await db.get(DeliveryJob, job_id, populate_existing=True)


@pytest.fixture
async def closed_run(db):
    await make_workspace(db)
    await make_member(db, "U1", "Ada")
    return await make_run(db, status=RunStatus.CLOSED.value)


def test_destinations_follow_config():
    class Config:
        google_spreadsheet_id = None
        notion_parent_page_id = None

    assert destinations_for(Config()) == ["CSV", "CHAT"]

    Config.google_spreadsheet_id = "sheet"
    Config.notion_parent_page_id = "page"
    assert destinations_for(Config()) == ["CSV", "SHEETS", "NOTION", "CHAT"]


def test_backoff_ladder_is_clamped(clock):
    service = DeliveryService(None, {}, clock=clock)

    assert service.backoff_delay(0) == timedelta(minutes=1)
    assert service.backoff_delay(1) == timedelta(minutes=1)
    assert service.backoff_delay(4) == timedelta(minutes=60)
    assert service.backoff_delay(6) == timedelta(minutes=1440)
    assert service.backoff_delay(30) == timedelta(minutes=1440)


async def test_enqueue_is_idempotent(db, clock, closed_run):
    service = DeliveryService(db, {}, clock=clock)

    first = await service.enqueue(closed_run.id)
    second = await service.enqueue(closed_run.id)

    assert [job.destination for job in first] == ["CSV", "CHAT"]
    assert second == []


async def test_enqueue_unknown_run(db, clock):
    with pytest.raises(RunNotFoundError):
        await DeliveryService(db, {}, clock=clock).enqueue(999)


async def test_success_records_url(db, clock, closed_run):
    job = await _job(db, closed_run, "CSV", clock=clock)
    publisher = FakePublisher("CSV", url="/exports/report.csv")

    processed = await DeliveryService(db, {"CSV": publisher}, clock=clock).tick()

    assert processed == 1
    job = await _reload(db, job.id)
    assert job.status == DeliveryStatus.SUCCESS.value
    assert job.destination_url == "/exports/report.csv"
    assert job.completed_at == clock.now
    assert publisher.reports[0].entries[0].display_name == "Ada"


async def test_failure_schedules_retry_on_backoff(db, clock, closed_run):
    job = await _job(db, closed_run, "SHEETS", status=DeliveryStatus.RETRYING.value, attempt_count=3, clock=clock)
    service = DeliveryService(db, {"SHEETS": FakePublisher("SHEETS", failures=-1)}, clock=clock)

    await service.tick()

    job = await _reload(db, job.id)
    assert job.status == DeliveryStatus.RETRYING.value
    assert job.attempt_count == 4
    assert job.next_attempt_at == clock.now + timedelta(minutes=60)
    assert job.last_error == "SHEETS unavailable"


async def test_last_attempt_marks_failed(db, clock, closed_run):
    job = await _job(db, closed_run, "NOTION", status=DeliveryStatus.RETRYING.value, attempt_count=7, clock=clock)
    service = DeliveryService(db, {"NOTION": FakePublisher("NOTION", failures=-1)}, clock=clock)

    await service.tick()

    job = await _reload(db, job.id)
    assert job.status == DeliveryStatus.FAILED.value
    assert job.attempt_count == 8
    assert job.next_attempt_at == clock.now

    clock.advance(days=2)
    assert await service.tick() == 0


async def test_missing_publisher_counts_as_failure(db, clock, closed_run):
    job = await _job(db, closed_run, "NOTION", clock=clock)

    await DeliveryService(db, {}, clock=clock).tick()

    job = await _reload(db, job.id)
    assert job.status == DeliveryStatus.RETRYING.value
    assert job.attempt_count == 1
    assert "No publisher registered" in job.last_error


async def test_jobs_fail_independently(db, clock, closed_run):
    csv_job = await _job(db, closed_run, "CSV", clock=clock)
    sheets_job = await _job(db, closed_run, "SHEETS", clock=clock)
    chat_job = await _job(db, closed_run, "CHAT", clock=clock)
    publishers = {
        "CSV": FakePublisher("CSV"),
        "SHEETS": FakePublisher("SHEETS", failures=-1),
        "CHAT": FakePublisher("CHAT"),
    }

    assert await DeliveryService(db, publishers, clock=clock).tick() == 3

    assert (await _reload(db, csv_job.id)).status == DeliveryStatus.SUCCESS.value
    assert (await _reload(db, sheets_job.id)).status == DeliveryStatus.RETRYING.value
    assert (await _reload(db, chat_job.id)).status == DeliveryStatus.SUCCESS.value
    # Chat only links to destinations that already succeeded
    assert publishers["CHAT"].reports[0].links == {"CSV": "https://example.com/csv"}


async def test_tick_respects_due_time_and_batch_size(db, clock, closed_run):
    later = await _job(db, closed_run, "NOTION", next_attempt_at=clock.now + timedelta(minutes=5), clock=clock)
    await _job(db, closed_run, "CSV", clock=clock)
    await _job(db, closed_run, "CHAT", clock=clock)
    publishers = {name: FakePublisher(name) for name in ("CSV", "CHAT", "NOTION")}
    service = DeliveryService(db, publishers, clock=clock, batch_size=1)

    assert await service.tick() == 1
    assert publishers["CSV"].calls == 1
    assert publishers["CHAT"].calls == 0

    assert await service.tick() == 1
    assert publishers["CHAT"].calls == 1

    assert await service.tick() == 0
    clock.advance(minutes=5)
    assert await service.tick() == 1
    assert (await _reload(db, later.id)).status == DeliveryStatus.SUCCESS.value


async def test_resend_resets_failed_and_retrying_jobs(db, clock, closed_run):
    failed = await _job(db, closed_run, "SHEETS", status=DeliveryStatus.FAILED.value, attempt_count=8, clock=clock)
    await _job(db, closed_run, "NOTION", status=DeliveryStatus.FAILED.value, attempt_count=8, clock=clock)
    done = await _job(db, closed_run, "CSV", status=DeliveryStatus.SUCCESS.value, clock=clock)
    service = DeliveryService(db, {}, clock=clock)

    clock.advance(hours=1)
    assert await service.resend("T001", closed_run.run_date) == 2

    failed = await _reload(db, failed.id)
    assert failed.status == DeliveryStatus.PENDING.value
    assert failed.attempt_count == 0
    assert failed.next_attempt_at == clock.now
    assert failed.last_error is None
    assert (await _reload(db, done.id)).status == DeliveryStatus.SUCCESS.value


async def test_resend_single_destination(db, clock, closed_run):
    await _job(db, closed_run, "SHEETS", status=DeliveryStatus.FAILED.value, clock=clock)
    await _job(db, closed_run, "NOTION", status=DeliveryStatus.FAILED.value, clock=clock)

    assert await DeliveryService(db, {}, clock=clock).resend("T001", closed_run.run_date, "NOTION") == 1


async def test_resend_unknown_run(db, clock, closed_run):
    with pytest.raises(RunNotFoundError):
        await DeliveryService(db, {}, clock=clock).resend("T001", date(2020, 1, 1))
