"""Availability endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import AvailabilityServiceDep
from app.schemas.availability import AvailabilityResponse

router = APIRouter()


@router.get(
    "/",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Open slots for a doctor on a date",
)
async def get_availability(
    service: AvailabilityServiceDep,
    doctor_id: UUID = Query(...),
    day: date = Query(..., alias="date"),
    slot_minutes: int | None = Query(None, ge=5, le=480),
) -> AvailabilityResponse:
    """
    Get available time slots for a doctor on a specific date.

    - **doctor_id**: Doctor ID
    - **date**: Calendar date (YYYY-MM-DD, UTC)
    - **slot_minutes**: Slot length, defaults to DEFAULT_SLOT_MINUTES

    The result is a snapshot; a booking attempt re-checks the slot.
    """
    return await service.get_availability(doctor_id, day, slot_minutes)
