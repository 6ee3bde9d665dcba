"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.locks import ScopeLockManager
from app.core.redis_client import CacheManager, get_async_redis_client, get_redis_client
from app.database import get_db
from app.services.appointment_service import AppointmentService
from app.services.availability_service import AvailabilityService
from app.services.doctor_service import DoctorService
from app.services.notification_service import (
    FirebaseNotificationSender,
    LoggingNotificationSender,
    NotificationSender,
    NotificationService,
)
from app.services.queue_service import QueueService
from app.services.reminder_service import ReminderService


@lru_cache
def get_lock_manager() -> ScopeLockManager:
    """
    Get the process-wide scope lock manager.

    With ``SCOPE_LOCK_BACKEND=redis`` every scope is also locked in Redis.
    """
    redis_client = None
    if settings.scope_lock_backend == "redis":
        redis_client = get_async_redis_client()
    return ScopeLockManager(
        timeout=settings.scope_lock_timeout_seconds,
        redis_client=redis_client,
    )


def get_cache_manager() -> CacheManager | None:
    """Get the availability cache, or None when caching is disabled."""
    if not settings.availability_cache_enabled:
        return None
    return CacheManager(get_redis_client())


@lru_cache
def get_notification_service() -> NotificationService:
    """Get the notification service for the configured backend."""
    sender: NotificationSender
    if settings.notification_backend == "firebase":
        sender = FirebaseNotificationSender()
    else:
        sender = LoggingNotificationSender()
    return NotificationService(sender)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
LockManager = Annotated[ScopeLockManager, Depends(get_lock_manager)]
Cache = Annotated[CacheManager | None, Depends(get_cache_manager)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]


def get_doctor_service(cache: Cache) -> DoctorService:
    """Build the doctor directory service."""
    return DoctorService(cache, settings.availability_cache_ttl_seconds)


DoctorDirectory = Annotated[DoctorService, Depends(get_doctor_service)]


def get_availability_service(db: DatabaseSession, doctors: DoctorDirectory) -> AvailabilityService:
    """Build the availability service for a request."""
    return AvailabilityService(db, doctors)


def get_appointment_service(
    db: DatabaseSession,
    locks: LockManager,
    notifications: Notifications,
    doctors: DoctorDirectory,
) -> AppointmentService:
    """Build the appointment service for a request."""
    return AppointmentService(db, locks, notifications, doctors)


def get_queue_service(
    db: DatabaseSession,
    locks: LockManager,
    notifications: Notifications,
) -> QueueService:
    """Build the queue service for a request."""
    return QueueService(db, locks, notifications)


def get_reminder_service(db: DatabaseSession, notifications: Notifications) -> ReminderService:
    """Build the reminder service for a request."""
    return ReminderService(db, notifications)


Availability = Annotated[AvailabilityService, Depends(get_availability_service)]
Appointments = Annotated[AppointmentService, Depends(get_appointment_service)]
Queue = Annotated[QueueService, Depends(get_queue_service)]
Reminders = Annotated[ReminderService, Depends(get_reminder_service)]
