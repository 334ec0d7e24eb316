"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import AppointmentServiceDep
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
)

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book appointment",
)
async def book_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Book an appointment for a patient with a doctor.

    Responds 400 when the time window is invalid, 404 for an unknown doctor or
    patient, 409 when the slot overlaps an existing booking, and 503 when the
    booking could not be committed and should be retried as-is.
    """
    outcome = await service.book(data.to_candidate())
    return outcome.unwrap()


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List a doctor's appointments for a day",
)
async def list_appointments(
    service: AppointmentServiceDep,
    doctor_id: UUID = Query(...),
    day: date = Query(..., alias="date"),
) -> AppointmentListResponse:
    """
    List all appointments (booked and cancelled) of a doctor on a date.

    Args:
        service: Appointment service
        doctor_id: Doctor ID
        day: Calendar date (YYYY-MM-DD, UTC)

    Returns:
        Appointments sorted by start time
    """
    return await service.list_appointments(doctor_id, day)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    return await service.get_appointment(appointment_id)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Cancel a booked appointment.

    Responds 404 if the appointment does not exist and 409 if it is already
    cancelled; in both cases nothing is changed.
    """
    outcome = await service.cancel(appointment_id)
    return outcome.unwrap()
