"""Patient management endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.exceptions import NotFoundException
from app.dependencies import AppointmentServiceDep, DatabaseSession
from app.schemas.appointments import PatientAppointmentsResponse
from app.schemas.patients import PatientCreate, PatientResponse, PatientUpdate
from app.services.patient_service import PatientService

router = APIRouter()


@router.post("/", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(patient_data: PatientCreate, db: DatabaseSession):
    """
    Register a patient.

    Email addresses are stored lower-cased and must be unique.
    """
    return await PatientService.create_patient(db, patient_data)


@router.get("/", response_model=list[PatientResponse])
async def list_patients(
    db: DatabaseSession,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """List patients sorted by name."""
    return await PatientService.get_patients(db, skip=skip, limit=limit)


@router.get("/search", response_model=list[PatientResponse])
async def search_patients(
    db: DatabaseSession,
    q: str = Query(..., min_length=1, description="Name, email or phone fragment"),
):
    """Search patients by name, email or phone."""
    return await PatientService.search_patients(db, q)


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(patient_id: UUID, db: DatabaseSession):
    """Get patient by ID."""
    patient = await PatientService.get_patient_by_id(db, patient_id)
    if not patient:
        raise NotFoundException("Patient not found")
    return patient


@router.put("/{patient_id}", response_model=PatientResponse)
async def update_patient(patient_id: UUID, patient_data: PatientUpdate, db: DatabaseSession):
    """Update patient details."""
    return await PatientService.update_patient(db, patient_id, patient_data)


@router.get("/{patient_id}/appointments", response_model=PatientAppointmentsResponse)
async def list_patient_appointments(patient_id: UUID, service: AppointmentServiceDep):
    """
    List a patient's appointments, booked and cancelled, most recent first.

    Each appointment carries the doctor's name and specialty.
    """
    return await service.list_patient_appointments(patient_id)
