"""Reminder endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query

from app.dependencies import Reminders
from app.schemas.reminders import ReminderCandidate, ReminderDispatchResult

router = APIRouter()


@router.get("/due", response_model=list[ReminderCandidate])
async def list_due_reminders(
    reminders: Reminders,
    now: datetime | None = Query(None, description="Evaluate the window at this time"),
) -> list[ReminderCandidate]:
    """List appointments and follow-ups that are due a reminder."""
    return await reminders.select_due(now)


@router.post("/dispatch", response_model=ReminderDispatchResult)
async def dispatch_reminders(
    reminders: Reminders,
    now: datetime | None = Query(None, description="Evaluate the window at this time"),
) -> ReminderDispatchResult:
    """
    Send every due reminder.

    Meant to be triggered by a scheduler; records are flagged only when delivery succeeded.
    """
    return await reminders.dispatch_due_reminders(now)
