import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

# Test database URL - MUST be different from production
# Defaults to a throwaway sqlite file; set TEST_DATABASE_URL to run against Postgres
TEST_DB_PATH = Path(tempfile.gettempdir()) / f"clinic_booking_test_{os.getpid()}.db"
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{TEST_DB_PATH}"

# Settings require DATABASE_URL at import time
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from app.config import settings  # noqa: E402
from app.database import build_engine, get_db, get_session_factory  # noqa: E402
from app.dependencies import (  # noqa: E402
    get_appointment_service,
    get_availability_service,
    get_cache_manager,
)
from app.main import app  # noqa: E402
from app.models import metadata  # noqa: E402
from app.schemas.doctors import DoctorCreate  # noqa: E402
from app.schemas.patients import PatientCreate  # noqa: E402
from app.services.appointment_service import AppointmentService  # noqa: E402
from app.services.availability_service import AvailabilityService  # noqa: E402
from app.services.doctor_service import DoctorService  # noqa: E402
from app.services.patient_service import PatientService  # noqa: E402

# Ensure we're using an async driver
if TEST_DATABASE_URL.startswith("postgresql://"):
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

# Additional safety: ensure we're not using production database
if TEST_DATABASE_URL.startswith("postgresql") and settings.async_database_url == TEST_DATABASE_URL:
    pytest.exit("TEST_DATABASE_URL is the same as DATABASE_URL; refusing to drop tables", 1)

# Use NullPool so every transaction gets its own connection
test_engine = build_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture
def test_settings():
    """Settings pinned to the clinic defaults the tests are written against."""
    return settings.model_copy(
        update={
            "clinic_open_hour": 9,
            "clinic_close_hour": 17,
            "default_slot_minutes": 30,
            "booking_max_attempts": 3,
            "booking_retry_backoff_seconds": 0,
            "booking_retry_max_backoff_seconds": 0,
            "booking_lock_backend": "none",
        }
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema per test, yielding the session factory bound to it."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield TestSessionLocal

    # Drop tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def appointment_service(session_factory, test_settings) -> AppointmentService:
    return AppointmentService(session_factory, settings=test_settings)


@pytest.fixture
def availability_service(session_factory, test_settings) -> AvailabilityService:
    return AvailabilityService(session_factory, settings=test_settings)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    session_factory,
    appointment_service: AppointmentService,
    availability_service: AvailabilityService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_appointment_service] = lambda: appointment_service
    app.dependency_overrides[get_availability_service] = lambda: availability_service
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def booking_day() -> date:
    """A weekday-agnostic UTC date safely in the future."""
    return datetime.now(UTC).date() + timedelta(days=7)


@pytest.fixture
def at(booking_day: date) -> Callable[..., datetime]:
    """Build a UTC instant on the booking day: ``at(10, 30)``."""

    def _at(hour: int, minute: int = 0, day: date | None = None) -> datetime:
        if hour == 24:
            return datetime.combine(day or booking_day, time.min, UTC) + timedelta(days=1)
        return datetime.combine(day or booking_day, time(hour, minute), UTC)

    return _at


@pytest_asyncio.fixture
async def doctor(db_session: AsyncSession) -> dict:
    """Create a test doctor in the database."""
    return await DoctorService().create_doctor(
        db_session, DoctorCreate(name="Dr. Sarah Johnson", specialty="Cardiology")
    )


@pytest_asyncio.fixture
async def other_doctor(db_session: AsyncSession) -> dict:
    return await DoctorService().create_doctor(
        db_session, DoctorCreate(name="Dr. Michael Chen", specialty="Pediatrics")
    )


@pytest_asyncio.fixture
async def patient(db_session: AsyncSession) -> dict:
    """Create a test patient in the database."""
    return await PatientService.create_patient(
        db_session,
        PatientCreate(name="John Doe", email="john.doe@example.com", phone="+1-555-0101"),
    )


@pytest_asyncio.fixture
async def other_patient(db_session: AsyncSession) -> dict:
    return await PatientService.create_patient(
        db_session,
        PatientCreate(name="Jane Smith", email="jane.smith@example.com", phone="+1-555-0102"),
    )


def pytest_sessionfinish(session, exitstatus):
    """Remove the sqlite test files."""
    for suffix in ("", "-wal", "-shm"):
        Path(f"{TEST_DB_PATH}{suffix}").unlink(missing_ok=True)
