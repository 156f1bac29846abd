"""
UTC calendar-day helpers shared by the snapshot cache and the rollup job.
"""
from datetime import date, datetime, timezone, timedelta
from typing import Optional, Union


def to_rollup_date(value: Union[date, datetime]) -> date:
    """Calendar day of ``value`` in UTC. Naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def yesterday_utc(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return to_rollup_date(now) - timedelta(days=1)


def retention_cutoff(days: int, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return to_rollup_date(now) - timedelta(days=days)
