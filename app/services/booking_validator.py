"""Stateless checks applied to a candidate booking before any storage access."""

from dataclasses import dataclass
from datetime import datetime

from app.config import Settings
from app.core.exceptions import ValidationErrorKind
from app.core.intervals import day_window, ensure_utc


@dataclass(frozen=True)
class WorkingHours:
    """Daily clinic window [open_hour, close_hour) in UTC hours."""

    open_hour: int
    close_hour: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkingHours":
        return cls(open_hour=settings.clinic_open_hour, close_hour=settings.clinic_close_hour)


def check_range(start: datetime, end: datetime) -> ValidationErrorKind | None:
    """Start must be strictly before end."""
    if start >= end:
        return ValidationErrorKind.INVALID_RANGE
    return None


def check_same_day(start: datetime, end: datetime) -> ValidationErrorKind | None:
    """Start and end must fall on the same UTC calendar day."""
    if ensure_utc(start).date() != ensure_utc(end).date():
        return ValidationErrorKind.CROSSES_MIDNIGHT
    return None


def check_working_hours(
    start: datetime,
    end: datetime,
    hours: WorkingHours,
) -> ValidationErrorKind | None:
    """
    The interval must sit inside the working-hours window of start's day.

    The window is built from the full date of ``start``, so the hour/minute
    comparison is always aligned to that day.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    day_open, day_close = day_window(start.date(), hours.open_hour, hours.close_hour)
    if start < day_open or start >= day_close or end > day_close:
        return ValidationErrorKind.OUTSIDE_WORKING_HOURS
    return None


def check_in_future(start: datetime, now: datetime) -> ValidationErrorKind | None:
    """Start must be strictly after now."""
    if ensure_utc(start) <= ensure_utc(now):
        return ValidationErrorKind.IN_THE_PAST
    return None


def validate_booking_window(
    start: datetime,
    end: datetime,
    now: datetime,
    hours: WorkingHours,
) -> ValidationErrorKind | None:
    """Run every check in order and return the first failure, or None if valid."""
    return (
        check_range(start, end)
        or check_same_day(start, end)
        or check_working_hours(start, end, hours)
        or check_in_future(start, now)
    )
