"""
Date arithmetic for issue/return rules.

All datetimes handled here are timezone-aware UTC. Naive values read from
older stored data are assumed to be UTC.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
import math
from typing import Optional

DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be an ISO string, got {type(value).__name__}")
    # fromisoformat on older interpreters does not take a trailing Z
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(value))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).isoformat()


def calculate_due_date(issue_date: datetime, days: int = 7) -> datetime:
    return as_utc(issue_date) + timedelta(days=days)


def is_overdue(due_date: datetime, now: Optional[datetime] = None) -> bool:
    now = as_utc(now or utcnow())
    return now > as_utc(due_date)


def overdue_days(due_date: datetime, now: Optional[datetime] = None) -> int:
    """Whole days past due, partial days rounded up. Zero when not overdue."""
    now = as_utc(now or utcnow())
    due = as_utc(due_date)
    if now <= due:
        return 0
    return math.ceil((now - due) / DAY)


def calculate_fine(due_date: datetime, now: Optional[datetime] = None, daily_fine: int = 10) -> int:
    return max(0, overdue_days(due_date, now) * daily_fine)


def days_until_due(due_date: datetime, now: Optional[datetime] = None) -> int:
    """Days remaining, rounded up; negative once overdue."""
    now = as_utc(now or utcnow())
    return math.ceil((as_utc(due_date) - now) / DAY)


def is_near_due(due_date: datetime, now: Optional[datetime] = None, window_days: int = 2) -> bool:
    days = days_until_due(due_date, now)
    return 0 < days <= window_days
