"""Fixed calendar points used across the tests."""

from datetime import datetime

# 2026-10-19 is a Monday, 2026-10-24 a Saturday.
MONDAY = datetime(2026, 10, 19)
SATURDAY = datetime(2026, 10, 24)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute)
