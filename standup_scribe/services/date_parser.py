"""
Natural-language date parsing for standup date answers.

``parse_date`` never raises: anything it cannot understand comes back with
``iso=None`` and the user's original text preserved in ``raw``.

Day/month ordering is best-effort. ``DD/MM/YYYY`` is tried first; an input
such as ``03/04/2026`` is therefore read as 3 April and there is no way to
tell it apart from a US-style ``MM/DD`` date.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from ..core.steps import DateAnswer
from ..utils.time import get_zone

NIL_SENTINELS = frozenset({"nil", "n/a", ""})

WEEKDAYS = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

_RELATIVE_RE = re.compile(r"^(next|this)\s+(\w+)$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")


def _today(tz_name: str, now: Optional[datetime]) -> date:
    zone = get_zone(tz_name)
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(zone).date()


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _relative_weekday(today: date, qualifier: str, target: int) -> date:
    days_until = (target - today.weekday()) % 7
    if qualifier == "next":
        days_until += 7
    elif days_until == 0:
        # "this <today>" means the same weekday next week
        days_until = 7
    return today + timedelta(days=days_until)


def parse_date(value: str, timezone_name: str = "UTC", now: Optional[datetime] = None) -> DateAnswer:
    """Parse a user-entered date expression.

    Args:
        value: Raw user input, stored verbatim in the result.
        timezone_name: IANA zone used to resolve relative expressions.
        now: Evaluation instant; naive values are treated as UTC.

    Returns:
        DateAnswer with ``iso`` set to ``YYYY-MM-DD`` or None.
    """
    raw = value if isinstance(value, str) else ("" if value is None else str(value))
    text = raw.strip().lower()

    if text in NIL_SENTINELS:
        return DateAnswer(raw=raw, iso=None)

    try:
        today = _today(timezone_name, now)
    except ValueError:
        return DateAnswer(raw=raw, iso=None)

    parsed: Optional[date] = None

    if text == "today":
        parsed = today
    elif text == "tomorrow":
        parsed = today + timedelta(days=1)
    elif text == "next week":
        parsed = today + timedelta(weeks=1)
    else:
        relative = _RELATIVE_RE.match(text)
        iso_match = _ISO_RE.match(text)
        day_first = _DAY_FIRST_RE.match(text)

        if relative and relative.group(2) in WEEKDAYS:
            parsed = _relative_weekday(today, relative.group(1), WEEKDAYS[relative.group(2)])
        elif iso_match:
            year, month, day = (int(part) for part in iso_match.groups())
            parsed = _safe_date(year, month, day)
        elif day_first:
            first, second, year = (int(part) for part in day_first.groups())
            # Always day-first; a US "12/25/2026" has no 25th month and fails
            parsed = _safe_date(year, second, first)

    return DateAnswer(raw=raw, iso=parsed.isoformat() if parsed else None)


def format_date_display(answer: DateAnswer) -> str:
    """Human form used in reports: the long date, or the raw text, or Nil."""
    if not answer.iso:
        return answer.raw or "Nil"
    try:
        parsed = date.fromisoformat(answer.iso)
    except ValueError:
        return answer.raw
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"
