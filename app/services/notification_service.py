"""Outbound patient notifications (fire-and-forget)."""

from typing import Protocol
from uuid import UUID

import structlog
from firebase_admin import messaging

from app.schemas.appointments import AppointmentResponse
from app.schemas.queue import QueueEntryResponse
from app.schemas.reminders import ReminderCandidate, ReminderKind

logger = structlog.get_logger(__name__)


class NotificationSender(Protocol):
    """Delivery channel for a single patient notification."""

    async def send(
        self,
        patient_id: UUID,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> None:
        """Deliver the notification or raise."""
        ...


class LoggingNotificationSender:
    """Sender that only records the notification in the log."""

    async def send(
        self,
        patient_id: UUID,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> None:
        """Log the notification."""
        logger.info(
            "notification_logged",
            patient_id=str(patient_id),
            title=title,
            body=body,
            notification_type=data.get("type"),
        )


class FirebaseNotificationSender:
    """Sender that publishes to the patient's FCM topic."""

    @staticmethod
    def topic_for(patient_id: UUID) -> str:
        """FCM topic that a patient's devices subscribe to."""
        return f"patient-{patient_id}"

    async def send(
        self,
        patient_id: UUID,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> None:
        """Send push notification through Firebase Cloud Messaging."""
        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=data,
            topic=self.topic_for(patient_id),
            android=messaging.AndroidConfig(priority="high"),
        )
        message_id = messaging.send(message)
        logger.info("push_notification_sent", patient_id=str(patient_id), message_id=message_id)


class NotificationService:
    """
    Sends scheduling notifications to patients.

    Delivery failures are logged and reported through the return value; they
    never propagate to the caller, so a committed state change stands even if
    its notification is lost.
    """

    def __init__(self, sender: NotificationSender | None = None):
        """Initialize service with a delivery channel."""
        self.sender = sender or LoggingNotificationSender()

    async def send(
        self,
        patient_id: UUID,
        title: str,
        body: str,
        notification_type: str,
        data: dict[str, str] | None = None,
    ) -> bool:
        """
        Send one notification.

        Returns:
            True if the sender accepted the notification, False otherwise
        """
        payload = {"type": notification_type, **(data or {})}
        try:
            await self.sender.send(patient_id, title, body, payload)
            return True
        except Exception as e:
            logger.warning(
                "notification_send_failed",
                patient_id=str(patient_id),
                notification_type=notification_type,
                error=str(e),
            )
            return False

    async def appointment_created(self, appointment: AppointmentResponse) -> bool:
        """Notify the patient that an appointment was booked."""
        when = f"{appointment.appointment_date:%b %d} at {appointment.time_slot.start:%H:%M}"
        return await self.send(
            appointment.patient_id,
            title="Appointment Scheduled",
            body=f"Your appointment is booked for {when}",
            notification_type="appointment_created",
            data={"appointment_id": str(appointment.id), "status": appointment.status.value},
        )

    async def appointment_status_changed(
        self,
        appointment: AppointmentResponse,
        old_status: str,
    ) -> bool:
        """Notify the patient about a lifecycle transition."""
        return await self.send(
            appointment.patient_id,
            title="Appointment Updated",
            body=f"Your appointment is now {appointment.status.value}",
            notification_type="appointment_status_changed",
            data={
                "appointment_id": str(appointment.id),
                "old_status": old_status,
                "new_status": appointment.status.value,
            },
        )

    async def patient_checked_in(self, entry: QueueEntryResponse) -> bool:
        """Tell the patient their token number."""
        return await self.send(
            entry.patient_id,
            title="Checked In",
            body=f"Your token number is {entry.token_number}",
            notification_type="queue_checked_in",
            data={"queue_entry_id": str(entry.id), "token_number": str(entry.token_number)},
        )

    async def patient_called(self, entry: QueueEntryResponse) -> bool:
        """Tell the patient the doctor is ready."""
        return await self.send(
            entry.patient_id,
            title="Doctor Ready to See You",
            body=f"Token {entry.token_number} has been called. Please proceed to the doctor.",
            notification_type="queue_called",
            data={"queue_entry_id": str(entry.id), "token_number": str(entry.token_number)},
        )

    async def queue_reminder(self, entry: QueueEntryResponse) -> bool:
        """Remind a waiting patient to stay close."""
        return await self.send(
            entry.patient_id,
            title="Queue Reminder",
            body=f"Reminder: your token number is {entry.token_number}. Please stay in the waiting area.",
            notification_type="queue_reminder",
            data={"queue_entry_id": str(entry.id), "token_number": str(entry.token_number)},
        )

    async def upcoming_reminder(self, candidate: ReminderCandidate) -> bool:
        """Remind a patient about an upcoming appointment or follow-up."""
        if candidate.event_at is not None:
            when = f"{candidate.event_at:%b %d at %H:%M}"
        else:
            when = f"{candidate.event_date:%b %d}"
        title = (
            "Appointment Reminder"
            if candidate.kind == ReminderKind.APPOINTMENT
            else "Follow-up Reminder"
        )
        return await self.send(
            candidate.patient_id,
            title=title,
            body=f"You have a visit scheduled on {when}",
            notification_type=f"{candidate.kind.value}_reminder",
            data={"record_id": str(candidate.record_id)},
        )
