"""Selection and dispatch of upcoming-visit reminders."""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import transaction
from app.models.appointments import appointments
from app.models.follow_ups import follow_ups
from app.schemas.appointments import OPEN_STATUSES, AppointmentType
from app.schemas.follow_ups import FollowUpStatus
from app.schemas.reminders import ReminderCandidate, ReminderDispatchResult, ReminderKind
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)


class ReminderService:
    """Finds appointments and follow-ups that are due a reminder."""

    def __init__(
        self,
        db: AsyncSession,
        notifications: NotificationService | None = None,
        timezone: str | None = None,
    ):
        """Initialize service with database session."""
        self.db = db
        self.notifications = notifications or NotificationService()
        self.tz = ZoneInfo(timezone or settings.clinic_timezone)

    def _aware(self, moment: datetime) -> datetime:
        """Interpret naive datetimes as clinic-local time."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment

    async def select_due_appointments(
        self,
        now: datetime,
        lead: timedelta,
    ) -> list[ReminderCandidate]:
        """
        Select appointments starting within ``[now, now + lead]``.

        Only pending or confirmed, slot-bound appointments that have not been
        reminded yet are considered. Start times are read in the clinic
        timezone.
        """
        window_start = self._aware(now)
        window_end = window_start + lead
        first_day = window_start.astimezone(self.tz).date()
        last_day = window_end.astimezone(self.tz).date()

        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.appointment_date >= first_day,
                    appointments.c.appointment_date <= last_day,
                    appointments.c.status.in_([s.value for s in OPEN_STATUSES]),
                    appointments.c.appointment_type != AppointmentType.EMERGENCY.value,
                    appointments.c.reminder_sent.is_(False),
                )
            )
            .order_by(appointments.c.appointment_date, appointments.c.slot_start)
        )
        result = await self.db.execute(stmt)

        candidates = []
        for row in result.mappings().all():
            starts_at = datetime.combine(row["appointment_date"], row["slot_start"], tzinfo=self.tz)
            if window_start <= starts_at <= window_end:
                candidates.append(
                    ReminderCandidate(
                        kind=ReminderKind.APPOINTMENT,
                        record_id=row["id"],
                        doctor_id=row["doctor_id"],
                        patient_id=row["patient_id"],
                        event_date=row["appointment_date"],
                        event_at=starts_at,
                        reason=row["reason"],
                    )
                )
        return candidates

    async def select_due_follow_ups(self, today: date, lead_days: int) -> list[ReminderCandidate]:
        """Select pending follow-ups dated within ``[today, today + lead_days]``."""
        stmt = (
            select(follow_ups)
            .where(
                and_(
                    follow_ups.c.follow_up_date >= today,
                    follow_ups.c.follow_up_date <= today + timedelta(days=lead_days),
                    follow_ups.c.status == FollowUpStatus.PENDING.value,
                    follow_ups.c.reminder_sent.is_(False),
                )
            )
            .order_by(follow_ups.c.follow_up_date)
        )
        result = await self.db.execute(stmt)
        return [
            ReminderCandidate(
                kind=ReminderKind.FOLLOW_UP,
                record_id=row["id"],
                doctor_id=row["doctor_id"],
                patient_id=row["patient_id"],
                event_date=row["follow_up_date"],
                reason=row["reason"],
            )
            for row in result.mappings().all()
        ]

    async def select_due(self, now: datetime | None = None) -> list[ReminderCandidate]:
        """Select every reminder due at ``now`` with the configured lead times."""
        now = self._aware(now or datetime.now(UTC))
        due = await self.select_due_appointments(
            now, timedelta(hours=settings.appointment_reminder_lead_hours)
        )
        due += await self.select_due_follow_ups(
            now.astimezone(self.tz).date(), settings.follow_up_reminder_lead_days
        )
        return due

    async def dispatch_due_reminders(self, now: datetime | None = None) -> ReminderDispatchResult:
        """
        Send every due reminder.

        Records are flagged as reminded only when delivery succeeded; failed
        ones are picked up again by the next run.
        """
        now = self._aware(now or datetime.now(UTC))
        due = await self.select_due(now)

        delivered: list[ReminderCandidate] = []
        for candidate in due:
            if await self.notifications.upcoming_reminder(candidate):
                delivered.append(candidate)

        async with transaction(self.db):
            for candidate in delivered:
                table = appointments if candidate.kind == ReminderKind.APPOINTMENT else follow_ups
                await self.db.execute(
                    update(table)
                    .where(table.c.id == candidate.record_id)
                    .values(reminder_sent=True, reminder_sent_at=now)
                )

        logger.info(
            "reminders_dispatched",
            selected=len(due),
            sent=len(delivered),
            failed=len(due) - len(delivered),
        )
        return ReminderDispatchResult(
            selected=len(due),
            sent=len(delivered),
            failed=len(due) - len(delivered),
            items=due,
        )
