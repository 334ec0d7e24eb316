"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Uuid,
    func,
)

from app.models.base import UTCDateTime, metadata

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    # Half-open interval [start_at, end_at), UTC
    Column("start_at", UTCDateTime, nullable=False),
    Column("end_at", UTCDateTime, nullable=False),
    # Status management
    Column("status", String(16), nullable=False, server_default="booked"),
    Column("reason", String(500), nullable=True),
    # Audit fields
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("cancelled_at", UTCDateTime, nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('booked', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint("start_at < end_at", name="appointments_range_check"),
    # Overlap lookups: doctor + status equality, then range predicates on start/end
    Index(
        "ix_appointments_doctor_status_start_end",
        "doctor_id",
        "status",
        "start_at",
        "end_at",
    ),
    # Daily listing for a doctor regardless of status
    Index("ix_appointments_doctor_start", "doctor_id", "start_at"),
)
