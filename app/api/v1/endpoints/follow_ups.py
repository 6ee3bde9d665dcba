"""Follow-up visit endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query

from app.dependencies import DatabaseSession
from app.schemas.follow_ups import FollowUpResponse, FollowUpStatus, FollowUpStatusUpdate
from app.services.follow_up_service import FollowUpService

router = APIRouter()


@router.get("", response_model=list[FollowUpResponse])
async def list_follow_ups(
    db: DatabaseSession,
    doctor_id: UUID = Query(...),
    status_filter: FollowUpStatus | None = Query(None, alias="status"),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
) -> list[FollowUpResponse]:
    """List a doctor's follow-ups ordered by date."""
    return await FollowUpService.list_doctor_follow_ups(
        db, doctor_id, status=status_filter, from_date=from_date, to_date=to_date
    )


@router.get("/upcoming", response_model=list[FollowUpResponse])
async def list_upcoming_follow_ups(
    db: DatabaseSession,
    doctor_id: UUID = Query(...),
    today: date | None = Query(None, description="Start of the window, clinic today by default"),
    days: int | None = Query(None, ge=0, le=90),
) -> list[FollowUpResponse]:
    """List a doctor's pending follow-ups due in the next days."""
    return await FollowUpService.list_upcoming(db, doctor_id, today=today, days=days)


@router.get("/{follow_up_id}", response_model=FollowUpResponse)
async def get_follow_up(follow_up_id: UUID, db: DatabaseSession) -> FollowUpResponse:
    """Get follow-up by ID."""
    return await FollowUpService.get_follow_up(db, follow_up_id)


@router.patch("/{follow_up_id}/status", response_model=FollowUpResponse)
async def update_follow_up_status(
    follow_up_id: UUID,
    data: FollowUpStatusUpdate,
    db: DatabaseSession,
) -> FollowUpResponse:
    """Mark a pending follow-up as completed or cancelled."""
    return await FollowUpService.update_status(db, follow_up_id, data)
