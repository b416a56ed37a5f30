from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the storage convention for all timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValueError for unknown zones."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def local_now(utc_now: datetime, tz_name: str) -> datetime:
    """Convert a naive UTC instant into wall-clock time for the given zone."""
    return utc_now.replace(tzinfo=timezone.utc).astimezone(get_zone(tz_name))


def local_today(utc_now: datetime, tz_name: str) -> date:
    return local_now(utc_now, tz_name).date()
