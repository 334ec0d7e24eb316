"""Doctor management endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.exceptions import NotFoundException
from app.dependencies import DatabaseSession, DoctorServiceDep
from app.schemas.doctors import DoctorCreate, DoctorResponse, DoctorUpdate

router = APIRouter()


@router.post("/", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
async def create_doctor(
    doctor_data: DoctorCreate,
    db: DatabaseSession,
    doctor_service: DoctorServiceDep,
):
    """
    Create a new doctor.

    - **name**: Display name
    - **specialty**: Optional specialty label
    """
    return await doctor_service.create_doctor(db, doctor_data)


@router.get("/", response_model=list[DoctorResponse])
async def list_doctors(
    db: DatabaseSession,
    doctor_service: DoctorServiceDep,
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=500, description="Number of records to return"),
):
    """List doctors sorted by name."""
    return await doctor_service.get_doctors(db, skip=skip, limit=limit)


@router.get("/search", response_model=list[DoctorResponse])
async def search_doctors(
    db: DatabaseSession,
    doctor_service: DoctorServiceDep,
    q: str = Query(..., min_length=1, description="Name or specialty fragment"),
):
    """Search doctors by name or specialty."""
    return await doctor_service.search_doctors(db, q)


@router.get("/{doctor_id}", response_model=DoctorResponse)
async def get_doctor(
    doctor_id: UUID,
    db: DatabaseSession,
    doctor_service: DoctorServiceDep,
):
    """Get doctor details by ID."""
    doctor = await doctor_service.get_doctor_by_id(db, doctor_id)
    if not doctor:
        raise NotFoundException("Doctor not found")
    return doctor


@router.put("/{doctor_id}", response_model=DoctorResponse)
async def update_doctor(
    doctor_id: UUID,
    doctor_data: DoctorUpdate,
    db: DatabaseSession,
    doctor_service: DoctorServiceDep,
):
    """Update doctor name or specialty."""
    return await doctor_service.update_doctor(db, doctor_id, doctor_data)
