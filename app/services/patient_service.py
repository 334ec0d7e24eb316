"""Patient service for business logic."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException
from app.models.patients import patients
from app.schemas.patients import PatientCreate, PatientUpdate

logger = structlog.get_logger()


class PatientService:
    """Service for patient operations."""

    @staticmethod
    async def _email_taken(db: AsyncSession, email: str, exclude_id: UUID | None = None) -> bool:
        conditions = [patients.c.email == email]
        if exclude_id is not None:
            conditions.append(patients.c.id != exclude_id)
        result = await db.execute(select(patients.c.id).where(and_(*conditions)))
        return result.first() is not None

    @staticmethod
    async def create_patient(db: AsyncSession, patient_data: PatientCreate) -> dict:
        """
        Create a new patient.

        Raises:
            ConflictException: If a patient with the email already exists
        """
        if patient_data.email and await PatientService._email_taken(db, patient_data.email):
            logger.warning("patient_email_exists", email=patient_data.email)
            raise ConflictException("Patient with this email already exists")

        now = datetime.now(UTC)
        query = (
            patients.insert()
            .values(
                name=patient_data.name,
                email=patient_data.email,
                phone=patient_data.phone,
                created_at=now,
                updated_at=now,
            )
            .returning(patients)
        )
        try:
            result = await db.execute(query)
            patient = result.mappings().one()
            await db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent create for the same email
            await db.rollback()
            logger.warning("patient_email_exists", email=patient_data.email)
            raise ConflictException("Patient with this email already exists") from e

        logger.info("patient_created", patient_id=str(patient["id"]))
        return dict(patient)

    @staticmethod
    async def get_patient_by_id(db: AsyncSession, patient_id: UUID) -> dict | None:
        """Get patient by ID."""
        result = await db.execute(select(patients).where(patients.c.id == patient_id))
        patient = result.mappings().first()
        if not patient:
            logger.warning("patient_not_found", patient_id=str(patient_id))
            return None
        return dict(patient)

    @staticmethod
    async def get_patients(db: AsyncSession, skip: int = 0, limit: int = 100) -> list[dict]:
        """List patients alphabetically with pagination."""
        query = select(patients).order_by(patients.c.name.asc()).offset(skip).limit(limit)
        result = await db.execute(query)
        patient_list = result.mappings().all()

        logger.debug("fetched_patients", count=len(patient_list), skip=skip, limit=limit)
        return [dict(p) for p in patient_list]

    @staticmethod
    async def search_patients(db: AsyncSession, term: str, limit: int = 50) -> list[dict]:
        """Case-insensitive search on name, email or phone."""
        pattern = f"%{term}%"
        query = (
            select(patients)
            .where(
                or_(
                    patients.c.name.ilike(pattern),
                    patients.c.email.ilike(pattern),
                    patients.c.phone.ilike(pattern),
                )
            )
            .order_by(patients.c.name.asc())
            .limit(limit)
        )
        result = await db.execute(query)
        return [dict(p) for p in result.mappings().all()]

    @staticmethod
    async def update_patient(
        db: AsyncSession, patient_id: UUID, patient_data: PatientUpdate
    ) -> dict:
        """
        Update patient information.

        Raises:
            NotFoundException: If patient not found
            ConflictException: If the new email belongs to another patient
        """
        update_values = patient_data.model_dump(exclude_unset=True, exclude_none=True)

        if "email" in update_values and await PatientService._email_taken(
            db, update_values["email"], exclude_id=patient_id
        ):
            raise ConflictException("Email already in use by another patient")

        if not update_values:
            existing = await PatientService.get_patient_by_id(db, patient_id)
            if existing is None:
                raise NotFoundException("Patient not found")
            return existing

        update_values["updated_at"] = datetime.now(UTC)
        query = (
            patients.update()
            .where(patients.c.id == patient_id)
            .values(**update_values)
            .returning(patients)
        )
        try:
            result = await db.execute(query)
            patient = result.mappings().first()
            if patient:
                await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise ConflictException("Email already in use by another patient") from e

        if not patient:
            raise NotFoundException("Patient not found")

        logger.info("patient_updated", patient_id=str(patient_id))
        return dict(patient)
