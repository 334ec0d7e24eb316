"""Appointment service: booking transaction coordinator and cancellation."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings, settings as default_settings
from app.core.booking_lock import BookingLock
from app.core.exceptions import (
    AlreadyCancelledError,
    AppException,
    AppointmentNotFoundError,
    BookingConflictError,
    NotFoundException,
    BookingValidationError,
    ReferenceNotFoundError,
    TransientBookingError,
)
from app.core.intervals import day_bounds, utcnow
from app.database import SERIALIZABLE
from app.schemas.appointments import (
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    BookingCandidate,
    PatientAppointmentsResponse,
    ScheduledAppointment,
)
from app.services.appointment_store import AppointmentStore
from app.services.booking_validator import WorkingHours, validate_booking_window

logger = structlog.get_logger()

# SQLSTATE codes raised when concurrent serializable transactions collide
WRITE_CONFLICT_SQLSTATES = {"40001", "40P01"}


class BookingState(str, Enum):
    """Phases of a booking attempt."""

    VALIDATING = "validating"
    CHECKING_OVERLAP = "checking_overlap"
    COMMITTING = "committing"
    BOOKED = "booked"
    REJECTED = "rejected"


class WriteConflictError(Exception):
    """The storage engine aborted the transaction because of a concurrent writer."""


def is_write_conflict(exc: DBAPIError) -> bool:
    """Classify a driver error as a retryable serialization/lock conflict."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in WRITE_CONFLICT_SQLSTATES:
        return True
    message = str(exc).lower()
    return (
        "could not serialize access" in message
        or "deadlock detected" in message
        or "database is locked" in message
        or "database table is locked" in message
    )


@dataclass(frozen=True)
class BookingOutcome:
    """Result of a booking request: the new appointment or a classified error."""

    appointment: AppointmentResponse | None = None
    error: AppException | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> AppointmentResponse:
        """Return the appointment or raise the classified error."""
        if self.error is not None:
            raise self.error
        assert self.appointment is not None
        return self.appointment


@dataclass(frozen=True)
class CancellationOutcome:
    """Result of a cancellation request."""

    appointment: AppointmentResponse | None = None
    error: AppException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> AppointmentResponse:
        """Return the cancelled appointment or raise the classified error."""
        if self.error is not None:
            raise self.error
        assert self.appointment is not None
        return self.appointment


class AppointmentService:
    """Service for booking, cancelling and listing appointments."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings = default_settings,
        lock: BookingLock | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize service.

        Args:
            session_factory: Opens one session per transaction attempt
            settings: Working hours and retry budget
            lock: Optional fallback lock around each attempt
            clock: Source of "now" for the future-only check
        """
        self.session_factory = session_factory
        self.settings = settings
        self.hours = WorkingHours.from_settings(settings)
        self.lock = lock or BookingLock()
        self.clock = clock

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def book(self, candidate: BookingCandidate) -> BookingOutcome:
        """
        Book an appointment so that no two booked rows of a doctor overlap.

        Validation runs first and never touches storage. The overlap check and
        the insert then run in one serializable transaction; a write conflict
        reported by the engine restarts the transaction within the retry
        budget, after which the request fails as transient.

        Args:
            candidate: Typed booking request

        Returns:
            Outcome holding the appointment, or one of BookingValidationError,
            ReferenceNotFoundError, BookingConflictError, TransientBookingError
        """
        log = logger.bind(
            doctor_id=str(candidate.doctor_id),
            patient_id=str(candidate.patient_id),
            start_at=candidate.start_at.isoformat(),
            end_at=candidate.end_at.isoformat(),
        )
        log.info("booking_started", state=BookingState.VALIDATING.value)

        kind = validate_booking_window(
            candidate.start_at, candidate.end_at, self.clock(), self.hours
        )
        if kind is not None:
            log.info("booking_rejected", state=BookingState.REJECTED.value, reason=kind.value)
            return BookingOutcome(error=BookingValidationError(kind))

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.booking_max_attempts),
            wait=wait_exponential(
                multiplier=self.settings.booking_retry_backoff_seconds,
                max=self.settings.booking_retry_max_backoff_seconds,
            ),
            retry=retry_if_exception_type(WriteConflictError),
            before_sleep=self._log_retry,
            reraise=True,
        )

        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    async with self.lock.hold(candidate.doctor_id, candidate.start_at):
                        appointment = await self._attempt(candidate, log)
        except WriteConflictError:
            log.error("booking_retries_exhausted", attempts=attempts)
            return BookingOutcome(
                error=TransientBookingError("Booking could not be completed, please retry"),
                attempts=attempts,
            )
        except (BookingConflictError, ReferenceNotFoundError, TransientBookingError) as e:
            log.info(
                "booking_rejected",
                state=BookingState.REJECTED.value,
                reason=e.code,
                attempts=attempts,
            )
            return BookingOutcome(error=e, attempts=attempts)

        log.info(
            "appointment_booked",
            state=BookingState.BOOKED.value,
            appointment_id=str(appointment.id),
            attempts=attempts,
        )
        return BookingOutcome(appointment=appointment, attempts=attempts)

    async def _attempt(self, candidate: BookingCandidate, log) -> AppointmentResponse:
        """Run check-then-insert once inside a serializable transaction."""
        async with self.session_factory() as session:
            try:
                await session.connection(execution_options={"isolation_level": SERIALIZABLE})
                store = AppointmentStore(session)

                if not await store.doctor_exists(candidate.doctor_id):
                    await session.rollback()
                    raise ReferenceNotFoundError("Doctor not found")
                if not await store.patient_exists(candidate.patient_id):
                    await session.rollback()
                    raise ReferenceNotFoundError("Patient not found")

                log.debug("booking_state", state=BookingState.CHECKING_OVERLAP.value)
                existing = await store.find_overlapping(
                    candidate.doctor_id, candidate.start_at, candidate.end_at
                )
                if existing is not None:
                    await session.rollback()
                    log.warning("booking_conflict", conflicting_appointment_id=str(existing.id))
                    raise BookingConflictError(existing.id)

                log.debug("booking_state", state=BookingState.COMMITTING.value)
                appointment = await store.insert(candidate)
                await session.commit()
                return appointment
            except DBAPIError as e:
                if is_write_conflict(e):
                    raise WriteConflictError(str(e.orig)) from e
                log.error("booking_storage_failure", error=str(e))
                raise TransientBookingError() from e
            except SQLAlchemyError as e:
                log.error("booking_storage_failure", error=str(e))
                raise TransientBookingError() from e
            except OSError as e:
                log.error("booking_storage_unreachable", error=str(e))
                raise TransientBookingError() from e

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "booking_write_conflict_retry",
            attempt=retry_state.attempt_number,
            sleep=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, appointment_id: UUID) -> CancellationOutcome:
        """
        Move a booked appointment to cancelled.

        Returns:
            Outcome holding the cancelled appointment, or AppointmentNotFoundError /
            AlreadyCancelledError (the row is left unchanged)
        """
        log = logger.bind(appointment_id=str(appointment_id))
        log.info("cancelling_appointment")

        async with self.session_factory() as session:
            store = AppointmentStore(session)
            # Conditional update first: concurrent cancellations serialize on the row
            cancelled = await store.update_status(
                appointment_id,
                AppointmentStatus.CANCELLED,
                expected_status=AppointmentStatus.BOOKED,
            )
            if cancelled is None:
                current = await store.get(appointment_id)
                await session.rollback()
                if current is None:
                    log.warning("appointment_not_found")
                    return CancellationOutcome(error=AppointmentNotFoundError())
                log.warning("appointment_already_cancelled")
                return CancellationOutcome(error=AlreadyCancelledError())
            await session.commit()

        log.info("appointment_cancelled")
        return CancellationOutcome(appointment=cancelled)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            AppointmentNotFoundError: If appointment not found
        """
        async with self.session_factory() as session:
            appointment = await AppointmentStore(session).get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError()
        return appointment

    async def list_appointments(self, doctor_id: UUID, day: date) -> AppointmentListResponse:
        """All appointments of a doctor on a UTC day, any status, ordered by start."""
        day_start, day_end = day_bounds(day)
        async with self.session_factory() as session:
            store = AppointmentStore(session)
            day_appointments = await store.find_by_doctor_and_range(doctor_id, day_start, day_end)
            patients_by_id = await store.patient_summaries(
                {a.patient_id for a in day_appointments}
            )

        items = [
            ScheduledAppointment(**a.model_dump(), patient=patients_by_id.get(a.patient_id))
            for a in day_appointments
        ]

        logger.debug(
            "fetched_appointments", doctor_id=str(doctor_id), date=day.isoformat(), count=len(items)
        )
        return AppointmentListResponse(
            doctor_id=doctor_id,
            date=day,
            total=len(items),
            items=items,
        )

    async def list_patient_appointments(self, patient_id: UUID) -> PatientAppointmentsResponse:
        """
        All appointments of a patient, any status, most recent first.

        Raises:
            NotFoundException: If the patient does not exist
        """
        async with self.session_factory() as session:
            store = AppointmentStore(session)
            if not await store.patient_exists(patient_id):
                logger.warning("patient_not_found", patient_id=str(patient_id))
                raise NotFoundException("Patient not found")
            items = await store.find_by_patient(patient_id)

        logger.debug("fetched_patient_appointments", patient_id=str(patient_id), count=len(items))
        return PatientAppointmentsResponse(
            patient_id=patient_id,
            count=len(items),
            appointments=items,
        )
