"""Half-open time interval helpers."""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta


def ensure_utc(value: datetime) -> datetime:
    """Normalise a datetime to an aware UTC instant; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    """Current time as an aware UTC instant."""
    return datetime.now(UTC)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Decide whether [a_start, a_end) and [b_start, b_end) share an instant.

    Adjacent intervals (one ends exactly when the other begins) do not overlap.
    Both intervals must be expressed in the same zone.
    """
    return a_start < b_end and b_start < a_end


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC midnight-to-midnight window for a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def day_window(day: date, open_hour: int, close_hour: int) -> tuple[datetime, datetime]:
    """Working-hours window [open, close) for a calendar day, in UTC."""
    midnight = datetime.combine(day, time.min, tzinfo=UTC)
    return midnight + timedelta(hours=open_hour), midnight + timedelta(hours=close_hour)


@dataclass(frozen=True, order=True)
class TimeSlot:
    """A fixed-duration [start, end) window; an availability artifact, never persisted."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return overlaps(self.start, self.end, start, end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start
