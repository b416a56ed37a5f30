from datetime import date

import pytest

from standup_scribe.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    RosterMemberNotFoundError,
    ValidationError,
    WorkspaceNotConfiguredError,
)
from standup_scribe.services.roster_service import RosterService
from standup_scribe.services.workspace_service import WorkspaceService, validate_time


@pytest.mark.parametrize("value", ["00:00", "09:30", "23:59"])
def test_validate_time_accepts_24h_clock(value):
    assert validate_time(value, "window_open_time") == value


@pytest.mark.parametrize("value", ["9:30", "24:00", "12:60", "noon", ""])
def test_validate_time_rejects_malformed(value):
    with pytest.raises(ConfigurationError):
        validate_time(value, "window_open_time")


async def test_configure_creates_with_defaults(db):
    service = WorkspaceService(db, default_timezone="Africa/Lagos")

    config = await service.configure("T001", report_channel_id="C100")

    assert config.timezone == "Africa/Lagos"
    assert config.window_open_time == "09:00"
    assert config.window_close_time == "16:00"
    assert config.reminder_times == ["10:00", "12:00", "14:00"]
    assert config.retention_days == 1825
    assert config.is_active is True


async def test_configure_merges_updates(db):
    service = WorkspaceService(db)
    await service.configure("T001", report_channel_id="C100", google_spreadsheet_id="sheet-1")

    config = await service.configure("T001", reminder_times=["14:30", "11:00"], google_spreadsheet_id="")

    assert config.report_channel_id == "C100"
    assert config.reminder_times == ["11:00", "14:30"]
    assert config.google_spreadsheet_id is None


async def test_configure_accepts_comma_separated_reminders(db):
    config = await WorkspaceService(db).configure("T001", reminder_times="12:00, 10:00")

    assert config.reminder_times == ["10:00", "12:00"]


@pytest.mark.parametrize(
    "updates",
    [
        {"timezone": "Mars/Olympus"},
        {"window_open_time": "16:00", "window_close_time": "09:00"},
        {"window_close_time": "25:00"},
        {"reminder_times": ["10:00", "11:00", "12:00", "13:00"]},
        {"retention_days": 0},
        {"favourite_colour": "blue"},
    ],
)
async def test_configure_rejects_invalid_settings(db, updates):
    with pytest.raises(ConfigurationError):
        await WorkspaceService(db).configure("T001", **updates)

    assert await WorkspaceService(db).get_config("T001") is None


async def test_require_config(db):
    with pytest.raises(WorkspaceNotConfiguredError):
        await WorkspaceService(db).require_config("T404")


async def test_list_configs_skips_inactive(db):
    service = WorkspaceService(db)
    await service.configure("T001")
    await service.configure("T002", is_active=False)

    assert [c.workspace_id for c in await service.list_configs()] == ["T001"]
    assert len(await service.list_configs(active_only=False)) == 2


async def test_remove_and_reactivate_member(db):
    roster = RosterService(db)
    await roster.add_member("T001", "U1", "Ada")
    await roster.add_member("T001", "U2", "Bola")

    removed = await roster.remove_member("T001", "U1")
    assert removed.is_active is False
    assert [m.user_id for m in await roster.list_members("T001")] == ["U2"]
    assert len(await roster.list_members("T001", include_inactive=True)) == 2

    member = await roster.add_member("T001", "U1", "Ada L.")
    assert member.id == removed.id
    assert member.is_active is True
    assert member.display_name == "Ada L."


async def test_add_member_requires_name(db):
    with pytest.raises(ValidationError):
        await RosterService(db).add_member("T001", "U1", "   ")


async def test_remove_unknown_member(db):
    with pytest.raises(RosterMemberNotFoundError):
        await RosterService(db).remove_member("T001", "U404")


async def test_excusal_lifecycle(db):
    roster = RosterService(db)
    await roster.add_member("T001", "U1", "Ada")

    await roster.add_excusal("T001", "U1", date(2026, 10, 12), date(2026, 10, 16), "conference")

    assert await roster.is_excused("T001", "U1", date(2026, 10, 12))
    assert await roster.is_excused("T001", "U1", date(2026, 10, 16))
    assert not await roster.is_excused("T001", "U1", date(2026, 10, 17))
    assert not await roster.is_excused("T001", "U404", date(2026, 10, 14))
    assert len(await roster.list_excusals("T001", active_on=date(2026, 10, 14))) == 1
    assert await roster.list_excusals("T001", active_on=date(2026, 10, 20)) == []

    assert await roster.remove_excusal("T001", "U1", date(2026, 10, 14)) == 1
    assert not await roster.is_excused("T001", "U1", date(2026, 10, 14))

    with pytest.raises(NotFoundError):
        await roster.remove_excusal("T001", "U1", date(2026, 10, 14))


async def test_excusal_must_not_end_before_it_starts(db):
    roster = RosterService(db)
    await roster.add_member("T001", "U1", "Ada")

    with pytest.raises(ValidationError):
        await roster.add_excusal("T001", "U1", date(2026, 10, 16), date(2026, 10, 12))
