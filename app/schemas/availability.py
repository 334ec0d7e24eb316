"""Availability schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel


class TimeSlotResponse(BaseModel):
    """Open [start, end) window."""

    start: datetime
    end: datetime

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    """Open slots for a doctor on a day."""

    doctor_id: UUID
    date: date
    slot_minutes: int
    total_slots: int
    booked_count: int
    available_count: int
    slots: list[TimeSlotResponse]
