"""Tests for the booking transaction coordinator."""

import asyncio
import random
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from app.core.exceptions import (
    BookingConflictError,
    BookingValidationError,
    ReferenceNotFoundError,
    TransientBookingError,
    ValidationErrorKind,
)
from app.core.intervals import overlaps
from app.models.appointments import appointments
from app.schemas.appointments import AppointmentStatus, BookingCandidate
from app.services.appointment_service import (
    AppointmentService,
    WriteConflictError,
    is_write_conflict,
)


async def _booked_rows(session_factory, doctor_id):
    async with session_factory() as session:
        result = await session.execute(
            select(appointments).where(
                appointments.c.doctor_id == doctor_id,
                appointments.c.status == AppointmentStatus.BOOKED.value,
            )
        )
        return result.mappings().all()


def _assert_no_overlaps(rows):
    for i, a in enumerate(rows):
        for b in rows[i + 1 :]:
            assert not overlaps(a["start_at"], a["end_at"], b["start_at"], b["end_at"])


@pytest.mark.asyncio
async def test_book_on_empty_calendar(appointment_service, doctor, patient, at):
    """Booking an open slot persists a booked appointment."""
    outcome = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30), reason="Checkup")
    )

    assert outcome.ok
    assert outcome.attempts == 1
    appointment = outcome.unwrap()
    assert appointment.status == AppointmentStatus.BOOKED
    assert appointment.doctor_id == doctor["id"]
    assert appointment.start_at == at(10)
    assert appointment.end_at == at(10, 30)
    assert appointment.reason == "Checkup"
    assert appointment.cancelled_at is None


@pytest.mark.asyncio
async def test_adjacent_bookings_succeed(appointment_service, doctor, patient, at):
    """[10:00, 10:30) and [10:30, 11:00) do not conflict."""
    first = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )
    second = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10, 30), at(11))
    )

    assert first.ok
    assert second.ok


@pytest.mark.parametrize(
    ("start", "end"),
    [
        ((10, 0), (10, 30)),  # identical
        ((9, 45), (10, 15)),  # overlaps the start
        ((10, 15), (10, 45)),  # overlaps the end
        ((10, 5), (10, 20)),  # contained
        ((9, 30), (11, 0)),  # contains
    ],
)
@pytest.mark.asyncio
async def test_overlapping_booking_is_rejected(
    appointment_service, doctor, patient, other_patient, at, start, end
):
    """Any overlap with a booked appointment of the same doctor is a conflict."""
    existing = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )

    outcome = await appointment_service.book(
        BookingCandidate(doctor["id"], other_patient["id"], at(*start), at(*end))
    )

    assert not outcome.ok
    assert isinstance(outcome.error, BookingConflictError)
    assert outcome.error.conflicting_id == existing.appointment.id
    with pytest.raises(BookingConflictError):
        outcome.unwrap()


@pytest.mark.asyncio
async def test_same_slot_different_doctors(appointment_service, doctor, other_doctor, patient, at):
    """Doctors are independent: the same interval books for both."""
    first = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )
    second = await appointment_service.book(
        BookingCandidate(other_doctor["id"], patient["id"], at(10), at(10, 30))
    )

    assert first.ok
    assert second.ok


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_rebooked(
    appointment_service, doctor, patient, other_patient, at
):
    """A cancelled appointment no longer blocks its interval."""
    first = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )
    assert (await appointment_service.cancel(first.appointment.id)).ok

    second = await appointment_service.book(
        BookingCandidate(doctor["id"], other_patient["id"], at(10), at(10, 30))
    )
    assert second.ok


@pytest.mark.parametrize(
    ("start", "end", "kind"),
    [
        ((10, 30), (10, 0), ValidationErrorKind.INVALID_RANGE),
        ((8, 0), (8, 30), ValidationErrorKind.OUTSIDE_WORKING_HOURS),
        ((16, 45), (17, 15), ValidationErrorKind.OUTSIDE_WORKING_HOURS),
    ],
)
@pytest.mark.asyncio
async def test_invalid_window_is_rejected_without_storage(
    session_factory, test_settings, doctor, patient, at, start, end, kind, monkeypatch
):
    """Validation failures never open a transaction."""
    service = AppointmentService(session_factory, settings=test_settings)

    async def no_storage(candidate, log):
        pytest.fail("transaction opened for an invalid window")

    monkeypatch.setattr(service, "_attempt", no_storage)

    outcome = await service.book(
        BookingCandidate(doctor["id"], patient["id"], at(*start), at(*end))
    )

    assert isinstance(outcome.error, BookingValidationError)
    assert outcome.error.kind == kind
    assert outcome.error.status_code == 400
    assert outcome.attempts == 0


@pytest.mark.asyncio
async def test_booking_across_midnight_is_rejected(appointment_service, doctor, patient, at):
    outcome = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(16), at(10) + timedelta(days=1))
    )
    assert outcome.error.kind == ValidationErrorKind.CROSSES_MIDNIGHT


@pytest.mark.asyncio
async def test_booking_in_the_past_is_rejected(
    session_factory, test_settings, doctor, patient, at
):
    """The injected clock decides what counts as the past."""
    service = AppointmentService(
        session_factory,
        settings=test_settings,
        clock=lambda: at(12),
    )

    past = await service.book(BookingCandidate(doctor["id"], patient["id"], at(11), at(11, 30)))
    now = await service.book(BookingCandidate(doctor["id"], patient["id"], at(12), at(12, 30)))
    future = await service.book(BookingCandidate(doctor["id"], patient["id"], at(13), at(13, 30)))

    assert past.error.kind == ValidationErrorKind.IN_THE_PAST
    assert now.error.kind == ValidationErrorKind.IN_THE_PAST
    assert future.ok


@pytest.mark.asyncio
async def test_unknown_doctor_or_patient(appointment_service, doctor, patient, at):
    """Unknown references are reported and nothing is written."""
    no_doctor = await appointment_service.book(
        BookingCandidate(uuid4(), patient["id"], at(10), at(10, 30))
    )
    no_patient = await appointment_service.book(
        BookingCandidate(doctor["id"], uuid4(), at(10), at(10, 30))
    )

    assert isinstance(no_doctor.error, ReferenceNotFoundError)
    assert no_doctor.error.status_code == 404
    assert isinstance(no_patient.error, ReferenceNotFoundError)


@pytest.mark.asyncio
async def test_concurrent_identical_bookings(session_factory, test_settings, doctor, at):
    """Ten simultaneous requests for one slot produce exactly one booking."""
    from app.schemas.patients import PatientCreate
    from app.services.patient_service import PatientService

    patient_ids = []
    async with session_factory() as session:
        for i in range(10):
            created = await PatientService.create_patient(
                session, PatientCreate(name=f"Patient {i}", email=f"patient{i}@example.com")
            )
            patient_ids.append(created["id"])

    service = AppointmentService(session_factory, settings=test_settings)
    outcomes = await asyncio.gather(
        *(
            service.book(BookingCandidate(doctor["id"], pid, at(10), at(10, 30)))
            for pid in patient_ids
        )
    )

    successes = [o for o in outcomes if o.ok]
    conflicts = [o for o in outcomes if isinstance(o.error, BookingConflictError)]
    assert len(successes) == 1
    assert len(conflicts) == 9

    rows = await _booked_rows(session_factory, doctor["id"])
    assert len(rows) == 1
    assert rows[0]["id"] == successes[0].appointment.id


@pytest.mark.asyncio
async def test_concurrent_overlapping_bookings_preserve_invariant(
    session_factory, test_settings, doctor, patient, at
):
    """Staggered overlapping requests race; the stored set never overlaps."""
    service = AppointmentService(session_factory, settings=test_settings)
    candidates = [
        BookingCandidate(doctor["id"], patient["id"], at(10) + offset, at(11) + offset)
        for offset in (timedelta(minutes=m) for m in range(0, 120, 15))
    ]

    outcomes = await asyncio.gather(*(service.book(c) for c in candidates))

    assert all(o.ok or isinstance(o.error, BookingConflictError) for o in outcomes)
    rows = await _booked_rows(session_factory, doctor["id"])
    assert len(rows) == sum(o.ok for o in outcomes)
    _assert_no_overlaps(rows)


@pytest.mark.asyncio
async def test_invariant_holds_over_book_and_cancel_sequence(
    appointment_service, session_factory, doctor, patient, at
):
    """Interleaved bookings and cancellations never leave overlapping booked rows."""
    booked = []
    for hour in (9, 10, 11, 12):
        outcome = await appointment_service.book(
            BookingCandidate(doctor["id"], patient["id"], at(hour), at(hour, 45))
        )
        assert outcome.ok
        booked.append(outcome.appointment)

    await appointment_service.cancel(booked[1].id)
    refill = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10, 15), at(11))
    )
    clash = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10, 45), at(11, 15))
    )

    assert refill.ok
    assert isinstance(clash.error, BookingConflictError)
    rows = await _booked_rows(session_factory, doctor["id"])
    assert len(rows) == 4
    _assert_no_overlaps(rows)


@pytest.mark.asyncio
async def test_write_conflict_is_retried(appointment_service, doctor, patient, at, monkeypatch):
    """A write conflict restarts the transaction within the retry budget."""
    real_attempt = appointment_service._attempt
    calls = 0

    async def flaky_attempt(candidate, log):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise WriteConflictError("could not serialize access")
        return await real_attempt(candidate, log)

    monkeypatch.setattr(appointment_service, "_attempt", flaky_attempt)

    outcome = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )

    assert outcome.ok
    assert outcome.attempts == 2
    assert calls == 2


@pytest.mark.asyncio
async def test_retries_exhausted_is_transient(
    appointment_service, doctor, patient, at, monkeypatch
):
    """Persistent write conflicts end in a retryable transient error."""
    calls = 0

    async def always_conflict(candidate, log):
        nonlocal calls
        calls += 1
        raise WriteConflictError("database is locked")

    monkeypatch.setattr(appointment_service, "_attempt", always_conflict)

    outcome = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )

    assert isinstance(outcome.error, TransientBookingError)
    assert outcome.error.status_code == 503
    assert outcome.error.headers == {"Retry-After": "1"}
    assert outcome.attempts == 3
    assert calls == 3


@pytest.mark.asyncio
async def test_conflict_is_not_retried(appointment_service, doctor, patient, at):
    """An overlap found in the transaction is final."""
    await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )

    outcome = await appointment_service.book(
        BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30))
    )

    assert isinstance(outcome.error, BookingConflictError)
    assert outcome.attempts == 1


@pytest.mark.asyncio
async def test_storage_failure_is_transient(test_settings, doctor, patient, at):
    """A non-conflict driver error is reported as transient without retrying."""

    class BrokenSession:
        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def connection(self, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    service = AppointmentService(lambda: BrokenSession(), settings=test_settings)
    outcome = await service.book(BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30)))

    assert isinstance(outcome.error, TransientBookingError)
    assert outcome.attempts == 1


@pytest.mark.asyncio
async def test_pool_timeout_is_transient(test_settings, doctor, patient, at):
    """An exhausted connection pool is reported as transient, not raised."""
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.connection = AsyncMock(
        side_effect=PoolTimeoutError("QueuePool limit of size 5 overflow 10 reached")
    )

    service = AppointmentService(lambda: session, settings=test_settings)
    outcome = await service.book(BookingCandidate(doctor["id"], patient["id"], at(10), at(10, 30)))

    assert isinstance(outcome.error, TransientBookingError)
    assert outcome.error.headers == {"Retry-After": "1"}
    assert outcome.attempts == 1


@pytest.mark.parametrize(
    ("orig", "expected"),
    [
        (SimpleNamespace(sqlstate="40001"), True),
        (SimpleNamespace(sqlstate="40P01"), True),
        (SimpleNamespace(pgcode="40001"), True),
        (Exception("database is locked"), True),
        (Exception("could not serialize access due to read/write dependencies"), True),
        (Exception("deadlock detected"), True),
        (SimpleNamespace(sqlstate="23505"), False),
        (Exception("connection refused"), False),
    ],
)
def test_is_write_conflict(orig, expected):
    """Serialization failures and lock timeouts are classified as retryable."""
    error = OperationalError("INSERT INTO appointments", {}, orig)
    assert is_write_conflict(error) is expected


@pytest.mark.asyncio
async def test_book_appointment_endpoint(client, doctor, patient, at):
    """POST /appointments books and returns 201."""
    response = await client.post(
        "/api/v1/appointments/",
        json={
            "doctor_id": str(doctor["id"]),
            "patient_id": str(patient["id"]),
            "start_at": at(10).isoformat(),
            "end_at": at(10, 30).isoformat(),
            "reason": "  Annual checkup  ",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "booked"
    assert data["reason"] == "Annual checkup"
    assert datetime.fromisoformat(data["start_at"]) == at(10)
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_book_appointment_endpoint_errors(client, doctor, patient, at):
    """Booking errors map to 400, 404 and 409 with a machine-readable code."""
    payload = {
        "doctor_id": str(doctor["id"]),
        "patient_id": str(patient["id"]),
        "start_at": at(10).isoformat(),
        "end_at": at(10, 30).isoformat(),
    }
    assert (await client.post("/api/v1/appointments/", json=payload)).status_code == 201

    conflict = await client.post("/api/v1/appointments/", json=payload)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "BOOKING_CONFLICT"
    assert "conflicting_appointment_id" in conflict.json()

    outside = await client.post(
        "/api/v1/appointments/",
        json={**payload, "start_at": at(7).isoformat(), "end_at": at(7, 30).isoformat()},
    )
    assert outside.status_code == 400
    assert outside.json()["kind"] == "outside_working_hours"

    unknown = await client.post(
        "/api/v1/appointments/", json={**payload, "doctor_id": str(uuid4())}
    )
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "REFERENCE_NOT_FOUND"

    malformed = await client.post(
        "/api/v1/appointments/", json={**payload, "start_at": "not-a-date"}
    )
    assert malformed.status_code == 422


@pytest.mark.asyncio
async def test_book_endpoint_transient_sets_retry_after(
    client, appointment_service, doctor, patient, at, monkeypatch
):
    async def always_conflict(candidate, log):
        raise WriteConflictError("database is locked")

    monkeypatch.setattr(appointment_service, "_attempt", always_conflict)

    response = await client.post(
        "/api/v1/appointments/",
        json={
            "doctor_id": str(doctor["id"]),
            "patient_id": str(patient["id"]),
            "start_at": at(10).isoformat(),
            "end_at": at(10, 30).isoformat(),
        },
    )
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["code"] == "TRANSIENT_ERROR"


def test_naive_candidate_times_are_taken_as_utc():
    candidate = BookingCandidate(
        uuid4(), uuid4(), datetime(2031, 3, 3, 10, 0), datetime(2031, 3, 3, 10, 30)
    )
    assert candidate.start_at.tzinfo is UTC


@pytest.mark.asyncio
async def test_invariant_holds_over_random_sequence(
    appointment_service, session_factory, doctor, patient, at
):
    """A seeded random mix of bookings and cancellations keeps booked rows disjoint."""
    rng = random.Random(7)
    live = []

    for _ in range(40):
        if live and rng.random() < 0.3:
            victim = live.pop(rng.randrange(len(live)))
            assert (await appointment_service.cancel(victim)).ok
            continue

        start = at(rng.randrange(9, 16), rng.choice([0, 15, 30, 45]))
        end = start + timedelta(minutes=rng.choice([15, 30, 45, 60]))
        outcome = await appointment_service.book(
            BookingCandidate(doctor["id"], patient["id"], start, end)
        )
        if outcome.ok:
            live.append(outcome.appointment.id)
        else:
            assert isinstance(outcome.error, BookingConflictError)

    rows = await _booked_rows(session_factory, doctor["id"])
    assert sorted(r["id"] for r in rows) == sorted(live)
    _assert_no_overlaps(rows)
