"""Follow-up visit listing and closing."""

from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InvalidTransitionException, NotFoundException
from app.database import transaction
from app.models.follow_ups import follow_ups
from app.schemas.follow_ups import FollowUpResponse, FollowUpStatus, FollowUpStatusUpdate

logger = structlog.get_logger(__name__)


def clinic_today() -> date:
    """Current date in the clinic timezone."""
    return datetime.now(ZoneInfo(settings.clinic_timezone)).date()


class FollowUpService:
    """Service for follow-up visits recommended at the end of a consultation."""

    @staticmethod
    async def get_follow_up(db: AsyncSession, follow_up_id: UUID) -> FollowUpResponse:
        """
        Get follow-up by ID.

        Raises:
            NotFoundException: If the follow-up does not exist
        """
        result = await db.execute(select(follow_ups).where(follow_ups.c.id == follow_up_id))
        row = result.mappings().first()
        if row is None:
            raise NotFoundException("Follow-up not found")
        return FollowUpResponse.model_validate(dict(row))

    @staticmethod
    async def list_doctor_follow_ups(
        db: AsyncSession,
        doctor_id: UUID,
        status: FollowUpStatus | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[FollowUpResponse]:
        """
        List a doctor's follow-ups by date.

        Args:
            db: Database session
            doctor_id: Doctor ID
            status: Filter by status
            from_date: First follow-up date
            to_date: Last follow-up date
        """
        conditions = [follow_ups.c.doctor_id == doctor_id]
        if status is not None:
            conditions.append(follow_ups.c.status == status.value)
        if from_date is not None:
            conditions.append(follow_ups.c.follow_up_date >= from_date)
        if to_date is not None:
            conditions.append(follow_ups.c.follow_up_date <= to_date)

        stmt = (
            select(follow_ups)
            .where(and_(*conditions))
            .order_by(follow_ups.c.follow_up_date, follow_ups.c.created_at)
        )
        result = await db.execute(stmt)
        return [FollowUpResponse.model_validate(dict(row)) for row in result.mappings().all()]

    @staticmethod
    async def list_upcoming(
        db: AsyncSession,
        doctor_id: UUID,
        today: date | None = None,
        days: int | None = None,
    ) -> list[FollowUpResponse]:
        """Pending follow-ups of a doctor due within the next ``days`` days."""
        today = today or clinic_today()
        if days is None:
            days = settings.follow_up_reminder_lead_days
        return await FollowUpService.list_doctor_follow_ups(
            db,
            doctor_id,
            status=FollowUpStatus.PENDING,
            from_date=today,
            to_date=today + timedelta(days=days),
        )

    @staticmethod
    async def update_status(
        db: AsyncSession,
        follow_up_id: UUID,
        data: FollowUpStatusUpdate,
    ) -> FollowUpResponse:
        """
        Close a pending follow-up as completed or cancelled.

        Raises:
            NotFoundException: If the follow-up does not exist
            InvalidTransitionException: If the follow-up is already closed
        """
        async with transaction(db):
            result = await db.execute(
                select(follow_ups).where(follow_ups.c.id == follow_up_id).with_for_update()
            )
            row = result.mappings().first()
            if row is None:
                raise NotFoundException("Follow-up not found")
            if row["status"] != FollowUpStatus.PENDING.value:
                raise InvalidTransitionException(
                    f"Cannot update a follow-up with status '{row['status']}'"
                )

            values: dict[str, Any] = {
                "status": data.status.value,
                "updated_at": datetime.now(UTC),
            }
            if data.notes is not None:
                values["notes"] = data.notes
            result = await db.execute(
                update(follow_ups)
                .where(follow_ups.c.id == follow_up_id)
                .values(**values)
                .returning(follow_ups)
            )
            updated = result.mappings().one()

        logger.info(
            "follow_up_status_updated",
            follow_up_id=str(follow_up_id),
            old_status=row["status"],
            new_status=data.status.value,
        )
        return FollowUpResponse.model_validate(dict(updated))
