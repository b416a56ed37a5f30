from datetime import datetime

import pytest

from standup_scribe.core.steps import DateAnswer
from standup_scribe.services.date_parser import format_date_display, parse_date

from .helpers import NOW


@pytest.mark.parametrize(
    "text, expected",
    [
        ("today", "2026-10-14"),
        ("Tomorrow", "2026-10-15"),
        ("next week", "2026-10-21"),
        ("this monday", "2026-10-19"),
        ("next monday", "2026-10-26"),
        ("this fri", "2026-10-16"),
        ("next fri", "2026-10-23"),
        ("2026-3-5", "2026-03-05"),
        ("2026-11-30", "2026-11-30"),
        ("25/12/2026", "2026-12-25"),
        ("25-12-2026", "2026-12-25"),
        ("03/04/2026", "2026-04-03"),
    ],
)
def test_recognized_expressions(text, expected):
    answer = parse_date(text, "UTC", now=NOW)

    assert answer.iso == expected
    assert answer.raw == text


def test_this_weekday_never_returns_today():
    # NOW is a Wednesday
    assert parse_date("this wednesday", "UTC", now=NOW).iso == "2026-10-21"
    assert parse_date("this wed", "UTC", now=NOW).iso == "2026-10-21"


def test_next_weekday_is_at_least_a_week_out():
    assert parse_date("next wednesday", "UTC", now=NOW).iso == "2026-10-21"
    assert parse_date("next thursday", "UTC", now=NOW).iso == "2026-10-22"


@pytest.mark.parametrize("text", ["nil", "N/A", "", "   "])
def test_nil_sentinels(text):
    answer = parse_date(text, "UTC", now=NOW)

    assert answer.iso is None
    assert answer.raw == text


@pytest.mark.parametrize("text", ["someday", "2026-02-30", "12/25/2026", "next fortnight", "32/01/2026"])
def test_unrecognized_input_never_raises(text):
    answer = parse_date(text, "UTC", now=NOW)

    assert answer == DateAnswer(raw=text, iso=None)


def test_raw_keeps_original_whitespace():
    assert parse_date("  Tomorrow ", "UTC", now=NOW).raw == "  Tomorrow "


def test_relative_dates_use_the_callers_timezone():
    late_evening_utc = datetime(2026, 10, 14, 23, 30)

    assert parse_date("today", "UTC", now=late_evening_utc).iso == "2026-10-14"
    assert parse_date("today", "Asia/Tokyo", now=late_evening_utc).iso == "2026-10-15"


def test_unknown_timezone_yields_no_date():
    answer = parse_date("today", "Mars/Olympus_Mons", now=NOW)

    assert answer.iso is None
    assert answer.raw == "today"


def test_same_instant_gives_same_result():
    first = parse_date("this monday", "Africa/Lagos", now=NOW)
    second = parse_date("this monday", "Africa/Lagos", now=NOW)

    assert first == second


def test_format_date_display():
    assert format_date_display(DateAnswer(raw="tomorrow", iso="2026-10-15")) == "October 15, 2026"
    assert format_date_display(DateAnswer(raw="whenever", iso=None)) == "whenever"
    assert format_date_display(DateAnswer()) == "Nil"
