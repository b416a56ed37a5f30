from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from standup_scribe.core.report import StandupReport
from standup_scribe.integrations.base import Publisher
from standup_scribe.models import Excusal, RosterMember, RunStatus, StandupRun, WorkspaceConfig

WORKSPACE = "T001"

# Wednesday 14 October 2026, 09:00 UTC
NOW = datetime(2026, 10, 14, 9, 0)
TODAY = date(2026, 10, 14)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMessaging:
    """Records messages; raises for the user ids in ``fail_for``."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.direct = []
        self.channel = []

    async def send_direct_message(self, user_id, text, action=None, action_label=None):
        if user_id in self.fail_for:
            raise RuntimeError(f"cannot open DM with {user_id}")
        self.direct.append((user_id, text, action))

    async def send_channel_message(self, channel_id, text):
        self.channel.append((channel_id, text))
        return f"https://chat.example/{channel_id}/1"

    def dmed(self) -> List[str]:
        return [user_id for user_id, _, _ in self.direct]


class FakePublisher(Publisher):
    """Fails ``failures`` times, then succeeds with ``url``."""

    def __init__(self, destination: str, failures: int = 0, url: Optional[str] = None):
        self.destination = destination
        self.failures = failures
        self.url = url or f"https://example.com/{destination.lower()}"
        self.reports: List[StandupReport] = []
        self.calls = 0

    async def publish(self, report: StandupReport) -> Optional[str]:
        self.calls += 1
        if self.failures < 0 or self.calls <= self.failures:
            raise RuntimeError(f"{self.destination} unavailable")
        self.reports.append(report)
        return self.url


async def make_workspace(db: AsyncSession, workspace_id: str = WORKSPACE, **overrides) -> WorkspaceConfig:
    values = dict(
        workspace_id=workspace_id,
        report_channel_id="C100",
        team_mention="@team",
        timezone="UTC",
        window_open_time="09:00",
        window_close_time="16:00",
        reminder_times=["10:00", "12:00", "14:00"],
        retention_days=1825,
    )
    values.update(overrides)
    config = WorkspaceConfig(**values)
    db.add(config)
    await db.commit()
    return config


async def make_member(
    db: AsyncSession,
    user_id: str,
    display_name: str,
    workspace_id: str = WORKSPACE,
    is_active: bool = True,
) -> RosterMember:
    member = RosterMember(workspace_id=workspace_id, user_id=user_id, display_name=display_name, is_active=is_active)
    db.add(member)
    await db.commit()
    return member


async def make_excusal(db: AsyncSession, member: RosterMember, start: date, end: date, reason: str = "") -> Excusal:
    excusal = Excusal(roster_member_id=member.id, start_date=start, end_date=end, reason=reason)
    db.add(excusal)
    await db.commit()
    return excusal


async def make_run(
    db: AsyncSession,
    run_date: date = TODAY,
    status: str = RunStatus.OPEN.value,
    workspace_id: str = WORKSPACE,
) -> StandupRun:
    run = StandupRun(workspace_id=workspace_id, run_date=run_date, status=status)
    db.add(run)
    await db.commit()
    return run
