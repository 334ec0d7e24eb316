"""Appointment store: the only writer of appointment rows."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.models.doctors import doctors
from app.models.patients import patients
from app.schemas.appointments import (
    AppointmentResponse,
    AppointmentStatus,
    BookingCandidate,
    PatientAppointment,
    PatientSummary,
)


def _to_response(row: RowMapping) -> AppointmentResponse:
    return AppointmentResponse.model_validate(dict(row))


class AppointmentStore:
    """
    Query and mutate appointment rows on a caller-provided session.

    The session is the execution context: when the booking coordinator opens a
    serializable transaction, every read and write here joins it.
    """

    def __init__(self, session: AsyncSession):
        """Bind the store to a session."""
        self.session = session

    async def find_overlapping(
        self,
        doctor_id: UUID,
        start_at: datetime,
        end_at: datetime,
    ) -> AppointmentResponse | None:
        """
        Return one booked appointment of the doctor overlapping [start_at, end_at).

        Equality on (doctor_id, status) plus the two range predicates is served
        by ix_appointments_doctor_status_start_end. Cancelled rows never match.
        """
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.status == AppointmentStatus.BOOKED.value,
                    appointments.c.start_at < end_at,
                    appointments.c.end_at > start_at,
                )
            )
            .order_by(appointments.c.start_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.mappings().first()
        return _to_response(row) if row else None

    async def insert(self, candidate: BookingCandidate) -> AppointmentResponse:
        """Insert a booked appointment for the candidate."""
        now = datetime.now(UTC)
        stmt = (
            insert(appointments)
            .values(
                id=uuid4(),
                doctor_id=candidate.doctor_id,
                patient_id=candidate.patient_id,
                start_at=candidate.start_at,
                end_at=candidate.end_at,
                status=AppointmentStatus.BOOKED.value,
                reason=candidate.reason,
                created_at=now,
                updated_at=now,
            )
            .returning(appointments)
        )
        result = await self.session.execute(stmt)
        return _to_response(result.mappings().one())

    async def find_by_doctor_and_range(
        self,
        doctor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        status: AppointmentStatus | None = None,
    ) -> list[AppointmentResponse]:
        """Appointments of the doctor whose interval overlaps [start_at, end_at), by start."""
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.start_at < end_at,
            appointments.c.end_at > start_at,
        ]
        if status is not None:
            conditions.append(appointments.c.status == status.value)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.start_at.asc(), appointments.c.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return [_to_response(row) for row in result.mappings().all()]

    async def find_by_patient(self, patient_id: UUID) -> list[PatientAppointment]:
        """Appointments of the patient, any status, with their doctor, most recent first."""
        stmt = (
            select(
                appointments,
                doctors.c.name.label("doctor_name"),
                doctors.c.specialty.label("doctor_specialty"),
            )
            .join(doctors, appointments.c.doctor_id == doctors.c.id)
            .where(appointments.c.patient_id == patient_id)
            .order_by(appointments.c.start_at.desc())
        )
        result = await self.session.execute(stmt)
        return [
            PatientAppointment.model_validate(
                {
                    **row,
                    "doctor": {
                        "id": row["doctor_id"],
                        "name": row["doctor_name"],
                        "specialty": row["doctor_specialty"],
                    },
                }
            )
            for row in result.mappings().all()
        ]

    async def patient_summaries(self, patient_ids: set[UUID]) -> dict[UUID, PatientSummary]:
        """Contact details for the given patients, keyed by id."""
        if not patient_ids:
            return {}
        stmt = select(patients.c.id, patients.c.name, patients.c.email, patients.c.phone).where(
            patients.c.id.in_(list(patient_ids))
        )
        result = await self.session.execute(stmt)
        return {row["id"]: PatientSummary.model_validate(dict(row)) for row in result.mappings()}

    async def get(self, appointment_id: UUID) -> AppointmentResponse | None:
        """Fetch an appointment by id."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.session.execute(stmt)
        row = result.mappings().first()
        return _to_response(row) if row else None

    async def update_status(
        self,
        appointment_id: UUID,
        new_status: AppointmentStatus,
        expected_status: AppointmentStatus | None = None,
    ) -> AppointmentResponse | None:
        """
        Set the status of a single row.

        With ``expected_status`` the update only applies while the row still
        has that status; ``None`` is returned when no row matched.
        """
        now = datetime.now(UTC)
        values: dict = {"status": new_status.value, "updated_at": now}
        if new_status == AppointmentStatus.CANCELLED:
            values["cancelled_at"] = now

        conditions = [appointments.c.id == appointment_id]
        if expected_status is not None:
            conditions.append(appointments.c.status == expected_status.value)

        stmt = (
            update(appointments)
            .where(and_(*conditions))
            .values(**values)
            .returning(appointments)
        )
        result = await self.session.execute(stmt)
        row = result.mappings().first()
        return _to_response(row) if row else None

    async def doctor_exists(self, doctor_id: UUID) -> bool:
        """Check whether a doctor row exists."""
        result = await self.session.execute(select(doctors.c.id).where(doctors.c.id == doctor_id))
        return result.first() is not None

    async def patient_exists(self, patient_id: UUID) -> bool:
        """Check whether a patient row exists."""
        result = await self.session.execute(
            select(patients.c.id).where(patients.c.id == patient_id)
        )
        return result.first() is not None
