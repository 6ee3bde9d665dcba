"""
Row-level writes of the appointment and queue state machine.

These helpers never commit. Callers run them inside one unit of work
(``app.database.transaction``) while holding the doctor/day scope lock, so an
appointment and its queue entry always change together.
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, date, datetime
from typing import Any, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
)
from app.models.appointments import appointments
from app.models.follow_ups import follow_ups
from app.models.queue_entries import queue_entries
from app.schemas.appointments import (
    OPEN_STATUSES,
    AppointmentStatus,
    AppointmentType,
    ConsultationOutcome,
)
from app.schemas.follow_ups import FollowUpStatus
from app.schemas.queue import OPEN_QUEUE_STATUSES, QueueStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


# ============================================================================
# Loading
# ============================================================================


async def load_appointment(
    db: AsyncSession,
    appointment_id: UUID,
    for_update: bool = False,
) -> RowMapping:
    """
    Load an appointment row.

    Raises:
        NotFoundException: If the appointment does not exist
    """
    stmt = select(appointments).where(appointments.c.id == appointment_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.mappings().first()
    if row is None:
        raise NotFoundException("Appointment not found")
    return row


async def load_entry(db: AsyncSession, entry_id: UUID, for_update: bool = False) -> RowMapping:
    """
    Load a queue entry row.

    Raises:
        NotFoundException: If the entry does not exist
    """
    stmt = select(queue_entries).where(queue_entries.c.id == entry_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    row = result.mappings().first()
    if row is None:
        raise NotFoundException("Queue entry not found")
    return row


async def open_entry_for(
    db: AsyncSession,
    appointment_id: UUID,
    for_update: bool = False,
) -> RowMapping | None:
    """Get the waiting or in-consultation entry of an appointment, if any."""
    stmt = select(queue_entries).where(
        and_(
            queue_entries.c.appointment_id == appointment_id,
            queue_entries.c.status.in_([s.value for s in OPEN_QUEUE_STATUSES]),
        )
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.mappings().first()


# ============================================================================
# Guards
# ============================================================================


def ensure_status(
    row: RowMapping,
    allowed: Iterable[AppointmentStatus],
    action: str,
) -> None:
    """
    Reject an action the appointment's current status does not allow.

    Raises:
        InvalidTransitionException: If the status is not in ``allowed``
    """
    allowed_values = {status.value for status in allowed}
    if row["status"] not in allowed_values:
        raise InvalidTransitionException(
            f"Cannot {action} an appointment with status '{row['status']}'"
        )


def can_close(row: RowMapping) -> bool:
    """Whether an appointment may be completed or marked no-show."""
    if row["status"] == AppointmentStatus.CONFIRMED.value:
        return True
    return row["status"] == AppointmentStatus.PENDING.value and bool(row["checked_in_status"])


def ensure_entry_status(row: RowMapping, allowed: Iterable[QueueStatus], action: str) -> None:
    """
    Reject an action the queue entry's current status does not allow.

    Raises:
        InvalidTransitionException: If the status is not in ``allowed``
    """
    allowed_values = {status.value for status in allowed}
    if row["status"] not in allowed_values:
        raise InvalidTransitionException(
            f"Cannot {action} a queue entry with status '{row['status']}'"
        )


# ============================================================================
# Writes
# ============================================================================


async def update_appointment(db: AsyncSession, appointment_id: UUID, **values: Any) -> RowMapping:
    """Update an appointment row and return it."""
    values.setdefault("updated_at", utcnow())
    stmt = (
        update(appointments)
        .where(appointments.c.id == appointment_id)
        .values(**values)
        .returning(appointments)
    )
    result = await db.execute(stmt)
    return result.mappings().one()


async def update_entry(db: AsyncSession, entry_id: UUID, **values: Any) -> RowMapping:
    """Update a queue entry row and return it."""
    values.setdefault("updated_at", utcnow())
    stmt = (
        update(queue_entries)
        .where(queue_entries.c.id == entry_id)
        .values(**values)
        .returning(queue_entries)
    )
    result = await db.execute(stmt)
    return result.mappings().one()


async def next_token(db: AsyncSession, doctor_id: UUID, day: date) -> int:
    """Next token number of a doctor's queue for a day."""
    stmt = select(func.coalesce(func.max(queue_entries.c.token_number), 0)).where(
        and_(queue_entries.c.doctor_id == doctor_id, queue_entries.c.queue_date == day)
    )
    result = await db.execute(stmt)
    return int(result.scalar() or 0) + 1


async def check_in(
    db: AsyncSession,
    appointment: RowMapping,
    now: datetime,
) -> tuple[RowMapping, RowMapping]:
    """
    Mark an appointment as arrived and put it in the doctor's queue.

    Args:
        db: Database session
        appointment: Appointment row, reloaded inside the scope lock
        now: Check-in time

    Returns:
        Updated appointment row and the new queue entry row

    Raises:
        InvalidTransitionException: If the appointment cannot be checked in
        IntegrityError: If the token was taken concurrently
    """
    ensure_status(appointment, OPEN_STATUSES, "check in")
    if appointment["checked_in_status"]:
        raise InvalidTransitionException("Appointment is already checked in")

    queue_date = appointment["appointment_date"]
    existing = await db.execute(
        select(queue_entries.c.id).where(
            and_(
                queue_entries.c.appointment_id == appointment["id"],
                queue_entries.c.queue_date == queue_date,
            )
        )
    )
    if existing.first() is not None:
        raise InvalidTransitionException("Appointment already has a queue entry for this day")

    token = await next_token(db, appointment["doctor_id"], queue_date)
    result = await db.execute(
        insert(queue_entries)
        .values(
            appointment_id=appointment["id"],
            doctor_id=appointment["doctor_id"],
            patient_id=appointment["patient_id"],
            token_number=token,
            queue_date=queue_date,
            status=QueueStatus.WAITING.value,
            check_in_time=now,
            created_at=now,
            updated_at=now,
        )
        .returning(queue_entries)
    )
    entry = result.mappings().one()

    updated = await update_appointment(
        db,
        appointment["id"],
        checked_in_status=True,
        checked_in_at=now,
        updated_at=now,
    )
    return updated, entry


def is_token_collision(error: IntegrityError) -> bool:
    """Whether an integrity error comes from the per-day token uniqueness."""
    message = str(error.orig)
    return "uq_queue_token" in message or "queue_entries.token_number" in message


def is_duplicate_entry(error: IntegrityError) -> bool:
    """Whether an integrity error comes from a second entry for one appointment."""
    message = str(error.orig)
    return "uq_queue_appointment" in message or "queue_entries.appointment_id" in message


async def retry_token_collisions(
    unit: Callable[[], Awaitable[T]],
    retries: int,
    **log_context: Any,
) -> T:
    """
    Run a check-in unit, re-running it when its token collided.

    The unit must open its own scope lock and transaction so a collision
    rolls it back completely before the next attempt. Other integrity
    errors are not retried.

    Raises:
        InvalidTransitionException: If the appointment was queued concurrently
        ConflictException: If every attempt collided
    """
    for attempt in range(1, retries + 1):
        try:
            return await unit()
        except IntegrityError as e:
            if is_duplicate_entry(e):
                raise InvalidTransitionException(
                    "Appointment already has a queue entry for this day"
                ) from e
            if not is_token_collision(e):
                raise
            logger.warning(
                "token_allocation_collision",
                attempt=attempt,
                error=str(e.orig),
                **log_context,
            )
    raise ConflictException("Could not allocate a queue token, retry the request")


async def close_open_entry(
    db: AsyncSession,
    appointment_id: UUID,
    status: QueueStatus,
    now: datetime,
) -> RowMapping | None:
    """Move the open queue entry of an appointment to a final status."""
    entry = await open_entry_for(db, appointment_id, for_update=True)
    if entry is None:
        return None
    values: dict[str, Any] = {"status": status.value, "updated_at": now}
    if entry["status"] == QueueStatus.IN_CONSULTATION.value:
        values["consultation_end_time"] = now
    return await update_entry(db, entry["id"], **values)


async def close_pending_follow_up(
    db: AsyncSession,
    appointment: RowMapping,
    now: datetime,
) -> RowMapping | None:
    """
    Mark the follow-up a completed follow-up visit was booked for as done.

    The earliest pending follow-up of the same patient with the same doctor
    is closed; there may be none when the visit was booked without one.
    """
    stmt = (
        select(follow_ups)
        .where(
            and_(
                follow_ups.c.doctor_id == appointment["doctor_id"],
                follow_ups.c.patient_id == appointment["patient_id"],
                follow_ups.c.status == FollowUpStatus.PENDING.value,
            )
        )
        .order_by(follow_ups.c.follow_up_date, follow_ups.c.created_at)
        .limit(1)
        .with_for_update()
    )
    result = await db.execute(stmt)
    pending = result.mappings().first()
    if pending is None:
        return None

    result = await db.execute(
        update(follow_ups)
        .where(follow_ups.c.id == pending["id"])
        .values(status=FollowUpStatus.COMPLETED.value, updated_at=now)
        .returning(follow_ups)
    )
    logger.info(
        "follow_up_closed",
        follow_up_id=str(pending["id"]),
        appointment_id=str(appointment["id"]),
    )
    return result.mappings().one()


async def complete(
    db: AsyncSession,
    appointment: RowMapping,
    outcome: ConsultationOutcome,
    now: datetime,
) -> RowMapping:
    """
    Complete an appointment, merging the consultation outcome.

    Closes any open queue entry and records a recommended follow-up.

    Raises:
        InvalidTransitionException: If the appointment cannot be completed
    """
    if not can_close(appointment):
        raise InvalidTransitionException(
            f"Cannot complete an appointment with status '{appointment['status']}'"
        )

    await close_open_entry(db, appointment["id"], QueueStatus.COMPLETED, now)

    values: dict[str, Any] = {
        "status": AppointmentStatus.COMPLETED.value,
        "completed_at": now,
        "updated_at": now,
    }
    if outcome.diagnosis is not None:
        values["diagnosis"] = outcome.diagnosis
    if outcome.prescription is not None:
        values["prescription"] = outcome.prescription.model_dump(mode="json")
    if outcome.vitals is not None:
        values["vitals"] = outcome.vitals.model_dump(mode="json", exclude_none=True)
    if outcome.notes is not None:
        values["notes"] = outcome.notes
    updated = await update_appointment(db, appointment["id"], **values)

    if appointment["appointment_type"] == AppointmentType.FOLLOWUP.value:
        await close_pending_follow_up(db, appointment, now)

    follow_up = outcome.follow_up
    if follow_up is not None and follow_up.required and follow_up.recommended_date is not None:
        await db.execute(
            insert(follow_ups).values(
                appointment_id=appointment["id"],
                doctor_id=appointment["doctor_id"],
                patient_id=appointment["patient_id"],
                follow_up_date=follow_up.recommended_date,
                reason=follow_up.notes or f"Follow-up: {appointment['reason']}",
                notes=follow_up.notes,
                status=FollowUpStatus.PENDING.value,
                created_at=now,
            )
        )
        logger.info(
            "follow_up_recorded",
            appointment_id=str(appointment["id"]),
            follow_up_date=follow_up.recommended_date.isoformat(),
        )
    return updated


async def no_show(
    db: AsyncSession,
    appointment: RowMapping,
    now: datetime,
) -> tuple[RowMapping, RowMapping | None]:
    """
    Mark an appointment as no-show and close its open queue entry.

    Raises:
        InvalidTransitionException: If the appointment cannot be marked no-show
    """
    if not can_close(appointment):
        raise InvalidTransitionException(
            f"Cannot mark no-show an appointment with status '{appointment['status']}'"
        )
    entry = await close_open_entry(db, appointment["id"], QueueStatus.NO_SHOW, now)
    updated = await update_appointment(
        db,
        appointment["id"],
        status=AppointmentStatus.NO_SHOW.value,
        updated_at=now,
    )
    return updated, entry
