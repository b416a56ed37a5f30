import asyncio
from datetime import datetime
from types import SimpleNamespace

from sqlalchemy import select

from standup_scribe.models import DeliveryJob, ResponseStatus, RunStatus, StandupResponse, StandupRun
from standup_scribe.workers import CleanupWorker, DeliveryWorker, PeriodicWorker, Scheduler
from standup_scribe.workers.scheduler import CLOSE, OPEN, REMIND, due_actions

from .helpers import FakeClock, FakeMessaging, FakePublisher, make_member, make_workspace


def _config(**overrides):
    values = dict(
        timezone="UTC",
        window_open_time="09:00",
        window_close_time="16:00",
        reminder_times=["10:00", "12:00"],
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_due_actions_match_local_minute():
    assert due_actions(_config(), datetime(2026, 10, 14, 9, 0)) == [OPEN]
    assert due_actions(_config(), datetime(2026, 10, 14, 12, 0)) == [REMIND]
    assert due_actions(_config(), datetime(2026, 10, 14, 16, 0)) == [CLOSE]
    assert due_actions(_config(), datetime(2026, 10, 14, 9, 1)) == []


def test_due_actions_use_workspace_timezone():
    # 09:00 UTC is 18:00 in Tokyo
    config = _config(timezone="Asia/Tokyo", window_open_time="18:00", window_close_time="20:00")

    assert due_actions(config, datetime(2026, 10, 14, 9, 0)) == [OPEN]


def test_due_actions_skip_weekends():
    assert due_actions(_config(), datetime(2026, 10, 17, 9, 0)) == []
    assert due_actions(_config(), datetime(2026, 10, 18, 9, 0)) == []
    # Monday morning in Tokyo is still Sunday evening in UTC
    tokyo = _config(timezone="Asia/Tokyo", window_open_time="08:00", window_close_time="17:00")
    assert due_actions(tokyo, datetime(2026, 10, 18, 23, 0)) == [OPEN]


async def test_scheduler_opens_and_closes_runs(db, session_factory, cache):
    await make_workspace(db)
    await make_member(db, "U1", "Ada")
    clock = FakeClock(datetime(2026, 10, 14, 9, 0))
    messaging = FakeMessaging()
    scheduler = Scheduler(session_factory, messaging, cache=cache, clock=clock)

    assert await scheduler.tick() == 1
    assert messaging.dmed() == ["U1"]

    clock.advance(hours=7)
    assert await scheduler.tick() == 1

    async with session_factory() as check:
        run = (await check.execute(select(StandupRun))).scalar_one()
        response = (await check.execute(select(StandupResponse))).scalar_one()
        jobs = (await check.execute(select(DeliveryJob))).scalars().all()
    assert run.status == RunStatus.CLOSED.value
    assert response.status == ResponseStatus.MISSING.value
    assert len(jobs) == 2


async def test_scheduler_isolates_workspace_failures(db, session_factory):
    await make_workspace(db)
    await make_workspace(db, "T002")
    clock = FakeClock(datetime(2026, 10, 14, 16, 0))

    # Neither workspace has an open run to close
    assert await Scheduler(session_factory, FakeMessaging(), clock=clock).tick() == 0


async def test_delivery_worker_processes_due_jobs(db, session_factory, clock):
    await make_workspace(db)
    await make_member(db, "U1", "Ada")
    scheduler = Scheduler(session_factory, FakeMessaging(), clock=clock)
    await scheduler.run_action("T001", OPEN)
    await scheduler.run_action("T001", CLOSE)
    publishers = {"CSV": FakePublisher("CSV"), "CHAT": FakePublisher("CHAT")}

    worker = DeliveryWorker(session_factory, publishers, clock=clock)

    assert await worker.tick() == 2
    assert await worker.tick() == 0
    assert publishers["CHAT"].reports[0].entries[0].status == ResponseStatus.MISSING.value


def test_cleanup_worker_runs_once_per_day():
    clock = FakeClock(datetime(2026, 10, 14, 1, 59))
    worker = CleanupWorker(None, cleanup_hour=2, clock=clock)

    assert not worker.is_due()
    clock.advance(minutes=1)
    assert worker.is_due()

    worker.last_run = clock.now.date()
    clock.advance(minutes=30)
    assert not worker.is_due()
    clock.advance(days=1)
    assert worker.is_due()


async def test_periodic_worker_survives_tick_errors():
    calls = []

    async def tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    worker = PeriodicWorker("test", 0.01, tick)
    worker.start()
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert len(calls) >= 3
    assert not worker.running
