"""Availability calculator: open slots for a doctor on a day."""

from datetime import date, datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, settings as default_settings
from app.core.exceptions import BadRequestException
from app.core.intervals import TimeSlot, day_window
from app.schemas.appointments import AppointmentResponse, AppointmentStatus
from app.schemas.availability import AvailabilityResponse, TimeSlotResponse
from app.services.appointment_store import AppointmentStore

logger = structlog.get_logger()


def generate_slot_grid(
    day_open: datetime,
    day_close: datetime,
    slot_minutes: int,
) -> list[TimeSlot]:
    """
    Contiguous slots of ``slot_minutes`` covering [day_open, day_close).

    A trailing slot that would end after day_close is dropped.

    Example: 09:00-17:00 with 30-minute slots gives 09:00-09:30, ..., 16:30-17:00.
    """
    if slot_minutes <= 0:
        raise BadRequestException("Slot duration must be positive")

    step = timedelta(minutes=slot_minutes)
    slots = []
    current = day_open
    while current + step <= day_close:
        slots.append(TimeSlot(start=current, end=current + step))
        current += step
    return slots


def subtract_booked(
    grid: list[TimeSlot],
    booked: list[AppointmentResponse],
) -> list[TimeSlot]:
    """Keep the grid slots that overlap none of the booked intervals."""
    return [
        slot
        for slot in grid
        if not any(slot.overlaps(appt.start_at, appt.end_at) for appt in booked)
    ]


class AvailabilityService:
    """
    Read-only availability calculation.

    Runs outside any write transaction. A booking may land between this read
    and a later booking attempt; the booking transaction re-checks regardless.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
    ):
        """Initialize service with a session factory and clinic settings."""
        self.session_factory = session_factory
        self.settings = settings

    async def get_available_slots(
        self,
        doctor_id: UUID,
        day: date,
        slot_minutes: int | None = None,
    ) -> list[TimeSlot]:
        """Open slots for the doctor on ``day`` in chronological order."""
        availability = await self.get_availability(doctor_id, day, slot_minutes)
        return [TimeSlot(start=s.start, end=s.end) for s in availability.slots]

    async def get_availability(
        self,
        doctor_id: UUID,
        day: date,
        slot_minutes: int | None = None,
    ) -> AvailabilityResponse:
        """
        Compute open slots plus grid/booking counts for display.

        Args:
            doctor_id: Doctor ID
            day: Calendar day (UTC)
            slot_minutes: Slot duration; defaults to DEFAULT_SLOT_MINUTES

        Returns:
            Availability summary; an empty slot list means the day is full
        """
        minutes = slot_minutes if slot_minutes is not None else self.settings.default_slot_minutes
        day_open, day_close = day_window(
            day, self.settings.clinic_open_hour, self.settings.clinic_close_hour
        )
        grid = generate_slot_grid(day_open, day_close, minutes)

        async with self.session_factory() as session:
            booked = await AppointmentStore(session).find_by_doctor_and_range(
                doctor_id, day_open, day_close, status=AppointmentStatus.BOOKED
            )

        available = subtract_booked(grid, booked)

        logger.info(
            "available_slots_calculated",
            doctor_id=str(doctor_id),
            date=day.isoformat(),
            slot_minutes=minutes,
            total_slots=len(grid),
            booked_appointments=len(booked),
            available_slots=len(available),
        )

        return AvailabilityResponse(
            doctor_id=doctor_id,
            date=day,
            slot_minutes=minutes,
            total_slots=len(grid),
            booked_count=len(booked),
            available_count=len(available),
            slots=[TimeSlotResponse(start=s.start, end=s.end) for s in available],
        )
