"""Monday-to-Sunday analysis window helpers."""
from __future__ import annotations

from datetime import date, datetime, timedelta


def current_week_start(now: datetime) -> date:
    """Monday of the week containing `now`."""
    return (now - timedelta(days=now.weekday())).date()


def current_week_label(now: datetime) -> str:
    start = current_week_start(now)
    end = start + timedelta(days=6)
    return f"{start:%Y-%m-%d} to {end:%Y-%m-%d}"
