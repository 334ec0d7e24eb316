"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.booking_lock import BookingLock, LocalBookingLock, RedisBookingLock
from app.core.redis_client import CacheManager, get_async_redis_client, get_redis_client
from app.database import get_db, get_session_factory
from app.services.appointment_service import AppointmentService
from app.services.availability_service import AvailabilityService
from app.services.doctor_service import DoctorService


def get_cache_manager() -> CacheManager | None:
    """Cache manager when Redis is configured."""
    client = get_redis_client()
    if client is None:
        return None
    return CacheManager(redis_client=client)


@lru_cache
def get_booking_lock() -> BookingLock:
    """
    Fallback lock selected by BOOKING_LOCK_BACKEND.

    One instance per process so the local backend shares its key table.
    """
    if settings.booking_lock_backend == "local":
        return LocalBookingLock(wait_seconds=settings.booking_lock_wait_seconds)
    if settings.booking_lock_backend == "redis":
        client = get_async_redis_client()
        if client is not None:
            return RedisBookingLock(
                client,
                ttl_seconds=settings.booking_lock_ttl_seconds,
                wait_seconds=settings.booking_lock_wait_seconds,
            )
    return BookingLock()


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_appointment_service(
    session_factory: SessionFactory,
    lock: Annotated[BookingLock, Depends(get_booking_lock)],
) -> AppointmentService:
    """Appointment service bound to the session factory."""
    return AppointmentService(session_factory, settings=settings, lock=lock)


def get_availability_service(session_factory: SessionFactory) -> AvailabilityService:
    """Availability service bound to the session factory."""
    return AvailabilityService(session_factory, settings=settings)


def get_doctor_service(
    cache_manager: Annotated[CacheManager | None, Depends(get_cache_manager)],
) -> DoctorService:
    """Get doctor service instance."""
    return DoctorService(cache_manager=cache_manager)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
AvailabilityServiceDep = Annotated[AvailabilityService, Depends(get_availability_service)]
DoctorServiceDep = Annotated[DoctorService, Depends(get_doctor_service)]
