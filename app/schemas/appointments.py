"""Appointment schemas for request/response validation."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.intervals import ensure_utc


class AppointmentStatus(str, Enum):
    """Appointment status enumeration. Cancelled is terminal."""

    BOOKED = "booked"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BookingCandidate:
    """Strictly-typed booking request as seen by the booking core."""

    doctor_id: UUID
    patient_id: UUID
    start_at: datetime
    end_at: datetime
    reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_at", ensure_utc(self.start_at))
        object.__setattr__(self, "end_at", ensure_utc(self.end_at))


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    doctor_id: UUID
    patient_id: UUID
    start_at: datetime
    end_at: datetime
    reason: str | None = Field(None, max_length=500)

    @field_validator("start_at", "end_at")
    @classmethod
    def normalise_to_utc(cls, v: datetime) -> datetime:
        """Convert to an aware UTC instant; naive input is taken as UTC."""
        return ensure_utc(v)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str | None) -> str | None:
        """Trim whitespace and drop empty reasons."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    def to_candidate(self) -> BookingCandidate:
        """Convert to the value consumed by the booking coordinator."""
        return BookingCandidate(
            doctor_id=self.doctor_id,
            patient_id=self.patient_id,
            start_at=self.start_at,
            end_at=self.end_at,
            reason=self.reason,
        )


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    doctor_id: UUID
    patient_id: UUID
    start_at: datetime
    end_at: datetime
    status: AppointmentStatus
    reason: str | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}


class PatientSummary(BaseModel):
    """Patient contact details embedded in a doctor's schedule."""

    id: UUID
    name: str
    email: str | None = None
    phone: str | None = None


class DoctorSummary(BaseModel):
    """Doctor details embedded in a patient's history."""

    id: UUID
    name: str
    specialty: str | None = None


class ScheduledAppointment(AppointmentResponse):
    """Appointment with its patient, as listed on a doctor's day."""

    patient: PatientSummary | None = None


class PatientAppointment(AppointmentResponse):
    """Appointment with its doctor, as listed in a patient's history."""

    doctor: DoctorSummary


class AppointmentListResponse(BaseModel):
    """Appointments of one doctor on one day, ordered by start."""

    doctor_id: UUID
    date: date
    total: int
    items: list[ScheduledAppointment]


class PatientAppointmentsResponse(BaseModel):
    """All appointments of one patient, most recent first."""

    patient_id: UUID
    count: int
    appointments: list[PatientAppointment]
