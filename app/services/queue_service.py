"""Per doctor/day consultation queue."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    ConsultationInProgressException,
    NoWaitingPatientsException,
)
from app.core.locks import ScopeLockManager
from app.database import transaction
from app.models.appointments import appointments
from app.models.queue_entries import queue_entries
from app.schemas.appointments import AppointmentResponse, ConsultationOutcome
from app.schemas.queue import QueueBoard, QueueCandidate, QueueEntryResponse, QueueStatus
from app.services import transitions
from app.services.emergency_priority import order_emergencies, select_next_emergency
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)


def pick_next(candidates: list[QueueCandidate]) -> QueueCandidate | None:
    """Emergencies by severity then arrival; everyone else by token."""
    emergency = select_next_emergency(candidates)
    if emergency is not None:
        return emergency
    if not candidates:
        return None
    return min(candidates, key=lambda c: c.token_number)


class QueueService:
    """Service for the consultation queue."""

    def __init__(
        self,
        db: AsyncSession,
        locks: ScopeLockManager,
        notifications: NotificationService | None = None,
    ):
        """Initialize service with database session and scope locks."""
        self.db = db
        self.locks = locks
        self.notifications = notifications or NotificationService()

    @asynccontextmanager
    async def _locked_entry(self, entry_id: UUID) -> AsyncIterator[RowMapping]:
        """Hold the entry's scope lock and a unit of work, yielding the fresh row."""
        current = await transitions.load_entry(self.db, entry_id)
        async with self.locks.hold((current["doctor_id"], current["queue_date"])):
            async with transaction(self.db):
                yield await transitions.load_entry(self.db, entry_id, for_update=True)

    async def _waiting_candidates(self, doctor_id: UUID, day: date) -> list[QueueCandidate]:
        stmt = (
            select(
                queue_entries.c.id.label("entry_id"),
                queue_entries.c.token_number,
                appointments.c.appointment_type,
                appointments.c.priority,
                appointments.c.created_at,
            )
            .join(appointments, appointments.c.id == queue_entries.c.appointment_id)
            .where(
                and_(
                    queue_entries.c.doctor_id == doctor_id,
                    queue_entries.c.queue_date == day,
                    queue_entries.c.status == QueueStatus.WAITING.value,
                )
            )
            .order_by(queue_entries.c.token_number)
        )
        result = await self.db.execute(stmt)
        return [QueueCandidate.model_validate(dict(row)) for row in result.mappings().all()]

    async def _current_entry(self, doctor_id: UUID, day: date) -> RowMapping | None:
        stmt = select(queue_entries).where(
            and_(
                queue_entries.c.doctor_id == doctor_id,
                queue_entries.c.queue_date == day,
                queue_entries.c.status == QueueStatus.IN_CONSULTATION.value,
            )
        )
        result = await self.db.execute(stmt)
        return result.mappings().first()

    async def check_in(self, appointment_id: UUID) -> QueueEntryResponse:
        """
        Check a patient in and hand out the next token of the day.

        Args:
            appointment_id: Appointment ID

        Returns:
            The new queue entry

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment cannot be checked in
        """
        current = await transitions.load_appointment(self.db, appointment_id)
        scope = (current["doctor_id"], current["appointment_date"])

        async def unit() -> tuple[RowMapping, RowMapping]:
            async with self.locks.hold(scope):
                async with transaction(self.db):
                    row = await transitions.load_appointment(
                        self.db, appointment_id, for_update=True
                    )
                    if (row["doctor_id"], row["appointment_date"]) != scope:
                        raise ConflictException(
                            "Appointment was moved concurrently, retry the request"
                        )
                    return await transitions.check_in(self.db, row, transitions.utcnow())

        _, entry_row = await transitions.retry_token_collisions(
            unit,
            settings.token_allocation_retries,
            appointment_id=str(appointment_id),
        )

        entry = QueueEntryResponse.model_validate(dict(entry_row))
        logger.info(
            "patient_checked_in",
            appointment_id=str(appointment_id),
            doctor_id=str(entry.doctor_id),
            date=entry.queue_date.isoformat(),
            token_number=entry.token_number,
        )
        await self.notifications.patient_checked_in(entry)
        return entry

    async def call_next(self, doctor_id: UUID, day: date) -> QueueEntryResponse:
        """
        Call the next waiting patient into consultation.

        Raises:
            ConsultationInProgressException: If someone is already with the doctor
            NoWaitingPatientsException: If nobody is waiting
        """
        try:
            async with self.locks.hold((doctor_id, day)):
                async with transaction(self.db):
                    if await self._current_entry(doctor_id, day) is not None:
                        raise ConsultationInProgressException()

                    chosen = pick_next(await self._waiting_candidates(doctor_id, day))
                    if chosen is None:
                        raise NoWaitingPatientsException()

                    now = transitions.utcnow()
                    entry_row = await transitions.update_entry(
                        self.db,
                        chosen.entry_id,
                        status=QueueStatus.IN_CONSULTATION.value,
                        consultation_start_time=now,
                        call_count=queue_entries.c.call_count + 1,
                        last_called_time=now,
                        updated_at=now,
                    )
        except IntegrityError as e:
            # Partial unique index on in-consultation entries
            raise ConsultationInProgressException() from e

        entry = QueueEntryResponse.model_validate(dict(entry_row))
        logger.info(
            "patient_called",
            doctor_id=str(doctor_id),
            date=day.isoformat(),
            token_number=entry.token_number,
            emergency=chosen.is_emergency,
        )
        await self.notifications.patient_called(entry)
        return entry

    async def recall(self, entry_id: UUID) -> QueueEntryResponse:
        """
        Announce the patient in consultation again.

        Raises:
            NotFoundException: If the entry does not exist
            InvalidTransitionException: If the entry is not in consultation
        """
        async with self._locked_entry(entry_id) as row:
            transitions.ensure_entry_status(row, {QueueStatus.IN_CONSULTATION}, "recall")
            now = transitions.utcnow()
            row = await transitions.update_entry(
                self.db,
                entry_id,
                call_count=queue_entries.c.call_count + 1,
                last_called_time=now,
                updated_at=now,
            )

        entry = QueueEntryResponse.model_validate(dict(row))
        logger.info("patient_recalled", entry_id=str(entry_id), call_count=entry.call_count)
        await self.notifications.patient_called(entry)
        return entry

    async def complete_consultation(
        self,
        entry_id: UUID,
        outcome: ConsultationOutcome | None = None,
    ) -> AppointmentResponse:
        """
        Finish the consultation of an entry and complete its appointment.

        Raises:
            NotFoundException: If the entry does not exist
            InvalidTransitionException: If the entry is not in consultation
        """
        async with self._locked_entry(entry_id) as row:
            transitions.ensure_entry_status(row, {QueueStatus.IN_CONSULTATION}, "complete")
            appointment = await transitions.load_appointment(
                self.db, row["appointment_id"], for_update=True
            )
            old_status = appointment["status"]
            appointment = await transitions.complete(
                self.db, appointment, outcome or ConsultationOutcome(), transitions.utcnow()
            )

        result = AppointmentResponse.from_row(appointment)
        logger.info(
            "consultation_completed",
            entry_id=str(entry_id),
            appointment_id=str(result.id),
            token_number=row["token_number"],
        )
        await self.notifications.appointment_status_changed(result, old_status)
        return result

    async def mark_no_show(self, entry_id: UUID) -> QueueEntryResponse:
        """
        Mark a queued patient as absent.

        Raises:
            NotFoundException: If the entry does not exist
            InvalidTransitionException: If the entry is already closed
        """
        async with self._locked_entry(entry_id) as row:
            transitions.ensure_entry_status(
                row, {QueueStatus.WAITING, QueueStatus.IN_CONSULTATION}, "mark no-show"
            )
            appointment = await transitions.load_appointment(
                self.db, row["appointment_id"], for_update=True
            )
            _, entry_row = await transitions.no_show(self.db, appointment, transitions.utcnow())

        entry = QueueEntryResponse.model_validate(dict(entry_row))
        logger.info("queue_no_show", entry_id=str(entry_id), token_number=entry.token_number)
        return entry

    async def remind(self, entry_id: UUID) -> QueueEntryResponse:
        """
        Remind a waiting patient of their token.

        Raises:
            NotFoundException: If the entry does not exist
            InvalidTransitionException: If the entry is not waiting
        """
        async with self._locked_entry(entry_id) as row:
            transitions.ensure_entry_status(row, {QueueStatus.WAITING}, "remind")
            now = transitions.utcnow()
            row = await transitions.update_entry(
                self.db,
                entry_id,
                reminder_count=queue_entries.c.reminder_count + 1,
                last_reminder_time=now,
                updated_at=now,
            )

        entry = QueueEntryResponse.model_validate(dict(row))
        sent = await self.notifications.queue_reminder(entry)
        logger.info(
            "queue_reminder_sent",
            entry_id=str(entry_id),
            reminder_count=entry.reminder_count,
            delivered=sent,
        )
        return entry

    async def get_entry(self, entry_id: UUID) -> QueueEntryResponse:
        """
        Get queue entry by ID.

        Raises:
            NotFoundException: If the entry does not exist
        """
        row = await transitions.load_entry(self.db, entry_id)
        return QueueEntryResponse.model_validate(dict(row))

    async def get_queue(self, doctor_id: UUID, day: date) -> QueueBoard:
        """Snapshot of a doctor's queue for one day."""
        stmt = (
            select(queue_entries)
            .where(and_(queue_entries.c.doctor_id == doctor_id, queue_entries.c.queue_date == day))
            .order_by(queue_entries.c.token_number)
        )
        result = await self.db.execute(stmt)
        entries = [QueueEntryResponse.model_validate(dict(row)) for row in result.mappings().all()]

        by_id = {entry.id: entry for entry in entries}
        waiting = [e for e in entries if e.status == QueueStatus.WAITING]
        current = next((e for e in entries if e.status == QueueStatus.IN_CONSULTATION), None)
        candidates = await self._waiting_candidates(doctor_id, day)
        chosen = pick_next(candidates)

        return QueueBoard(
            doctor_id=doctor_id,
            queue_date=day,
            current=current,
            next_up=by_id.get(chosen.entry_id) if chosen else None,
            waiting=waiting,
            emergencies=[by_id[c.entry_id] for c in order_emergencies(candidates)],
            waiting_count=len(waiting),
            completed_count=sum(1 for e in entries if e.status == QueueStatus.COMPLETED),
            total=len(entries),
        )
