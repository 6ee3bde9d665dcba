"""Patient endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from app.dependencies import DatabaseSession
from app.schemas.patients import PatientCreate, PatientResponse
from app.services.patient_service import PatientService

router = APIRouter()


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(data: PatientCreate, db: DatabaseSession) -> PatientResponse:
    """Register a patient."""
    return await PatientService.create_patient(db, data)


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(patient_id: UUID, db: DatabaseSession) -> PatientResponse:
    """Get patient by ID."""
    return await PatientService.require_patient(db, patient_id)
