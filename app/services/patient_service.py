"""Patient directory lookups."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.patients import patients
from app.schemas.patients import PatientCreate, PatientResponse


class PatientService:
    """Service for patient identity records."""

    @staticmethod
    async def create_patient(db: AsyncSession, data: PatientCreate) -> PatientResponse:
        """Register a patient."""
        stmt = (
            insert(patients)
            .values(
                full_name=data.full_name,
                phone=data.phone,
                email=data.email,
                created_at=datetime.now(UTC),
            )
            .returning(patients)
        )
        result = await db.execute(stmt)
        row = result.mappings().first()
        await db.commit()
        return PatientResponse.model_validate(dict(row))

    @staticmethod
    async def get_patient_by_id(db: AsyncSession, patient_id: UUID) -> PatientResponse | None:
        """Get patient by ID."""
        result = await db.execute(select(patients).where(patients.c.id == patient_id))
        row = result.mappings().first()
        if not row:
            return None
        return PatientResponse.model_validate(dict(row))

    @staticmethod
    async def require_patient(db: AsyncSession, patient_id: UUID) -> PatientResponse:
        """
        Get patient by ID or fail.

        Raises:
            NotFoundException: If the patient does not exist
        """
        patient = await PatientService.get_patient_by_id(db, patient_id)
        if patient is None:
            raise NotFoundException("Patient not found")
        return patient
