"""Helpers for the naive `HH:MM:SS` hour slots."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

from lesson_scheduling.core.errors import ValidationFailed


def format_time(value: time) -> str:
    return value.strftime("%H:%M:%S")


def one_hour_after(start: time) -> time:
    """End of the hour-long slot that starts at `start`."""
    if start.hour >= 23:
        raise ValidationFailed("Lessons must end by midnight")
    end = datetime.combine(date.min, start) + timedelta(hours=1)
    return end.time()


def hour_start(hour: int) -> time:
    return time(hour=hour)
