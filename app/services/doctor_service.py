"""Doctor service for business logic."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.doctors import doctors
from app.schemas.doctors import DoctorCreate, DoctorUpdate

logger = structlog.get_logger()


class DoctorService:
    """Service for doctor operations."""

    # Cache TTL in seconds
    DOCTOR_CACHE_TTL = 900  # 15 minutes for individual doctors

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _get_doctor_cache_key(doctor_id: UUID) -> str:
        """Generate cache key for doctor."""
        return f"doctor:{doctor_id}"

    async def create_doctor(self, db: AsyncSession, doctor_data: DoctorCreate) -> dict:
        """Create a new doctor."""
        now = datetime.now(UTC)
        query = (
            doctors.insert()
            .values(
                name=doctor_data.name,
                specialty=doctor_data.specialty,
                created_at=now,
                updated_at=now,
            )
            .returning(doctors)
        )

        result = await db.execute(query)
        doctor = result.mappings().first()

        if not doctor:
            raise ValueError("Failed to create doctor")

        await db.commit()

        logger.info("doctor_created", doctor_id=str(doctor["id"]), name=doctor["name"])
        return dict(doctor)

    async def get_doctor_by_id(self, db: AsyncSession, doctor_id: UUID) -> dict | None:
        """Get doctor by ID with caching."""
        # Try cache first
        if self.cache:
            cache_key = self._get_doctor_cache_key(doctor_id)
            cached = self.cache.get_json(cache_key)
            if cached:
                return cached

        # Query database
        query = select(doctors).where(doctors.c.id == doctor_id)
        result = await db.execute(query)
        doctor = result.mappings().first()

        if not doctor:
            logger.warning("doctor_not_found", doctor_id=str(doctor_id))
            return None

        doctor_dict = dict(doctor)

        # Cache result
        if self.cache:
            cache_key = self._get_doctor_cache_key(doctor_id)
            self.cache.set_json(cache_key, doctor_dict, ttl=self.DOCTOR_CACHE_TTL)

        return doctor_dict

    async def get_doctors(self, db: AsyncSession, skip: int = 0, limit: int = 100) -> list[dict]:
        """List doctors alphabetically."""
        query = select(doctors).order_by(doctors.c.name.asc()).offset(skip).limit(limit)
        result = await db.execute(query)
        doctor_list = result.mappings().all()

        logger.debug("fetched_doctors", count=len(doctor_list))
        return [dict(d) for d in doctor_list]

    async def search_doctors(self, db: AsyncSession, term: str, limit: int = 50) -> list[dict]:
        """Case-insensitive search on name or specialty."""
        pattern = f"%{term}%"
        query = (
            select(doctors)
            .where(or_(doctors.c.name.ilike(pattern), doctors.c.specialty.ilike(pattern)))
            .order_by(doctors.c.name.asc())
            .limit(limit)
        )
        result = await db.execute(query)
        return [dict(d) for d in result.mappings().all()]

    async def update_doctor(
        self, db: AsyncSession, doctor_id: UUID, doctor_data: DoctorUpdate
    ) -> dict:
        """
        Update doctor information.

        Raises:
            NotFoundException: If doctor not found
        """
        update_values = doctor_data.model_dump(exclude_unset=True, exclude_none=True)

        if not update_values:
            existing = await self.get_doctor_by_id(db, doctor_id)
            if existing is None:
                raise NotFoundException("Doctor not found")
            return existing

        update_values["updated_at"] = datetime.now(UTC)

        query = (
            doctors.update()
            .where(doctors.c.id == doctor_id)
            .values(**update_values)
            .returning(doctors)
        )
        result = await db.execute(query)
        doctor = result.mappings().first()

        if not doctor:
            raise NotFoundException("Doctor not found")

        await db.commit()

        # Invalidate cache
        if self.cache:
            self.cache.delete(self._get_doctor_cache_key(doctor_id))

        logger.info("doctor_updated", doctor_id=str(doctor_id))
        return dict(doctor)
