"""
Seed doctors, patients and a spread of appointments for local development.

Safe to run repeatedly: existing doctors (by name) and patients (by email) are
reused, and appointments go through the booking service so conflicting seeds
are simply skipped.

Run with: python scripts/seed.py [--days N]
"""

import asyncio
import random
import sys
from datetime import UTC, date, datetime, time, timedelta

import structlog
from sqlalchemy import select

from app.config import settings
from app.database import AsyncSessionLocal, engine
from app.middleware.logging import configure_logging
from app.models import doctors, patients
from app.schemas.appointments import BookingCandidate
from app.schemas.doctors import DoctorCreate
from app.schemas.patients import PatientCreate
from app.services.appointment_service import AppointmentService
from app.services.doctor_service import DoctorService
from app.services.patient_service import PatientService

logger = structlog.get_logger()

DOCTORS = [
    ("Dr. Sarah Johnson", "Cardiology"),
    ("Dr. Michael Chen", "Pediatrics"),
    ("Dr. Emily Rodriguez", "General Practice"),
    ("Dr. James Williams", "Dermatology"),
    ("Dr. Aisha Patel", "Orthopedics"),
]

PATIENTS = [
    ("John Doe", "john.doe@example.com", "+1-555-0101"),
    ("Jane Smith", "jane.smith@example.com", "+1-555-0102"),
    ("Robert Johnson", "robert.j@example.com", "+1-555-0103"),
    ("Maria Garcia", "maria.garcia@example.com", "+1-555-0104"),
    ("David Lee", "david.lee@example.com", "+1-555-0105"),
    ("Sarah Brown", "sarah.brown@example.com", "+1-555-0106"),
    ("Michael Wilson", "michael.w@example.com", "+1-555-0107"),
    ("Lisa Anderson", "lisa.anderson@example.com", "+1-555-0108"),
]

REASONS = [
    "Annual checkup",
    "Follow-up visit",
    "Consultation",
    "Symptoms evaluation",
    "Vaccination",
    "Lab results discussion",
    "Prescription renewal",
]


async def seed_people() -> tuple[list, list]:
    """Create missing doctors and patients; return all their ids."""
    doctor_service = DoctorService()
    async with AsyncSessionLocal() as db:
        for name, specialty in DOCTORS:
            found = await db.execute(select(doctors.c.id).where(doctors.c.name == name))
            if found.first() is None:
                await doctor_service.create_doctor(db, DoctorCreate(name=name, specialty=specialty))

        for name, email, phone in PATIENTS:
            found = await db.execute(select(patients.c.id).where(patients.c.email == email))
            if found.first() is None:
                await PatientService.create_patient(
                    db, PatientCreate(name=name, email=email, phone=phone)
                )

        doctor_ids = (await db.execute(select(doctors.c.id))).scalars().all()
        patient_ids = (await db.execute(select(patients.c.id))).scalars().all()
    return list(doctor_ids), list(patient_ids)


async def seed_appointments(doctor_ids: list, patient_ids: list, days: int) -> None:
    """Book random slots over the next ``days`` days, cancelling a few."""
    service = AppointmentService(AsyncSessionLocal)
    rng = random.Random(42)
    start_day = date.today() + timedelta(days=1)
    hours = range(settings.clinic_open_hour, settings.clinic_close_hour)
    booked = conflicts = cancelled = 0

    for offset in range(days):
        day = start_day + timedelta(days=offset)
        for doctor_id in doctor_ids:
            for _ in range(rng.randint(2, 6)):
                start = datetime.combine(day, time(rng.choice(hours), rng.choice([0, 30])), UTC)
                outcome = await service.book(
                    BookingCandidate(
                        doctor_id=doctor_id,
                        patient_id=rng.choice(patient_ids),
                        start_at=start,
                        end_at=start + timedelta(minutes=30),
                        reason=rng.choice(REASONS),
                    )
                )
                if not outcome.ok:
                    conflicts += 1
                    continue
                booked += 1
                if rng.random() < 0.15:
                    await service.cancel(outcome.appointment.id)
                    cancelled += 1

    logger.info("seed_completed", booked=booked, skipped=conflicts, cancelled=cancelled)


async def main(days: int) -> None:
    doctor_ids, patient_ids = await seed_people()
    await seed_appointments(doctor_ids, patient_ids, days)
    await engine.dispose()


if __name__ == "__main__":
    configure_logging()
    days_arg = 5
    if "--days" in sys.argv:
        days_arg = int(sys.argv[sys.argv.index("--days") + 1])
    asyncio.run(main(days_arg))
