from __future__ import annotations

from datetime import date as date_type
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def club_zone(name: Optional[str] = None) -> ZoneInfo:
    if name is None:
        from courtbook.settings import settings

        name = settings.timezone
    return ZoneInfo(name)


def to_utc(value: datetime, zone: Optional[ZoneInfo] = None) -> datetime:
    """Normalize an instant to naive UTC.

    Naive input is read as club wall-clock time.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone or club_zone())
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, zone: Optional[ZoneInfo] = None) -> datetime:
    """Stored naive UTC instant -> aware datetime in the club zone."""
    return value.replace(tzinfo=timezone.utc).astimezone(zone or club_zone())


def as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def local_day_bounds(day: date_type, zone: Optional[ZoneInfo] = None):
    zone = zone or club_zone()
    start = datetime.combine(day, time(0, 0), tzinfo=zone)
    return to_utc(start), to_utc(start + timedelta(days=1))


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def parse_ymd(value: str) -> date_type:
    return datetime.strptime(value, "%Y-%m-%d").date()


def hm_to_minute(value: str) -> int:
    hour_str, minute_str = value.split(":")
    return int(hour_str) * 60 + int(minute_str)


def minute_to_hm(value: int) -> str:
    hour = value // 60
    minute = value % 60
    return f"{hour:02d}:{minute:02d}"


WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def weekday_label(weekday: int) -> str:
    if 0 <= weekday <= 6:
        return WEEKDAY_LABELS[weekday]
    return str(weekday)
