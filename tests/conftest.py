import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, time
from pathlib import Path
from typing import Any
from uuid import UUID

# Settings are read at import time; point the app at a throwaway database
# and keep Redis out of the picture before anything from app is imported.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'clinic_queue_app.db'}",
)
os.environ["AVAILABILITY_CACHE_ENABLED"] = "false"
os.environ["SCOPE_LOCK_BACKEND"] = "local"
os.environ["NOTIFICATION_BACKEND"] = "log"

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from app.core.locks import ScopeLockManager
from app.database import get_db
from app.dependencies import get_cache_manager, get_lock_manager, get_notification_service
from app.main import app
from app.models import metadata
from app.schemas.appointments import AppointmentCreate, AppointmentResponse, TimeSlot
from app.schemas.doctors import DoctorCreate, DoctorResponse, Weekday, WorkingHours, WorkingHoursUpdate
from app.schemas.patients import PatientCreate, PatientResponse
from app.services.appointment_service import AppointmentService
from app.services.availability_service import AvailabilityService
from app.services.doctor_service import DoctorService
from app.services.notification_service import NotificationService
from app.services.patient_service import PatientService
from app.services.queue_service import QueueService
from app.services.reminder_service import ReminderService

# A Monday far enough ahead that it is never "today"
DAY = date(2030, 1, 7)


class RecordingSender:
    """Notification sender that keeps what it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(
        self,
        patient_id: UUID,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> None:
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.sent.append({"patient_id": patient_id, "title": title, "body": body, "data": data})

    def types(self) -> list[str]:
        return [item["data"]["type"] for item in self.sent]


@pytest_asyncio.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine so concurrent sessions see each other's commits."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create test session factory."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def day() -> date:
    return DAY


@pytest.fixture
def lock_manager() -> ScopeLockManager:
    return ScopeLockManager(timeout=5.0)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def notifications(sender: RecordingSender) -> NotificationService:
    return NotificationService(sender)


@pytest.fixture
def doctor_service() -> DoctorService:
    return DoctorService()


@pytest.fixture
def appointment_service(
    db_session: AsyncSession,
    lock_manager: ScopeLockManager,
    notifications: NotificationService,
    doctor_service: DoctorService,
) -> AppointmentService:
    return AppointmentService(db_session, lock_manager, notifications, doctor_service)


@pytest.fixture
def queue_service(
    db_session: AsyncSession,
    lock_manager: ScopeLockManager,
    notifications: NotificationService,
) -> QueueService:
    return QueueService(db_session, lock_manager, notifications)


@pytest.fixture
def availability_service(
    db_session: AsyncSession,
    doctor_service: DoctorService,
) -> AvailabilityService:
    return AvailabilityService(db_session, doctor_service)


@pytest.fixture
def reminder_service(
    db_session: AsyncSession,
    notifications: NotificationService,
) -> ReminderService:
    return ReminderService(db_session, notifications, timezone="UTC")


def standard_week() -> WorkingHoursUpdate:
    """09:00-17:00 every day with a 13:00-14:00 break."""
    return WorkingHoursUpdate(
        working_hours=[
            WorkingHours(
                weekday=weekday,
                start_time=time(9, 0),
                end_time=time(17, 0),
                break_start=time(13, 0),
                break_end=time(14, 0),
            )
            for weekday in Weekday
        ]
    )


@pytest.fixture
def week() -> WorkingHoursUpdate:
    return standard_week()


@pytest_asyncio.fixture
async def doctor(db_session: AsyncSession, doctor_service: DoctorService) -> DoctorResponse:
    """A doctor with 30 minute slots and the standard week."""
    created = await doctor_service.create_doctor(
        db_session,
        DoctorCreate(
            full_name="Dr. Asha Rao",
            specialization="General Medicine",
            appointment_duration_minutes=30,
        ),
    )
    await doctor_service.set_working_hours(db_session, created.id, standard_week())
    return created


@pytest.fixture
def make_patient(db_session: AsyncSession) -> Callable[..., Awaitable[PatientResponse]]:
    counter = {"n": 0}

    async def _make(full_name: str | None = None) -> PatientResponse:
        counter["n"] += 1
        return await PatientService.create_patient(
            db_session,
            PatientCreate(
                full_name=full_name or f"Patient {counter['n']}",
                phone=f"+1555000{counter['n']:04d}",
            ),
        )

    return _make


@pytest_asyncio.fixture
async def patient(make_patient: Callable[..., Awaitable[PatientResponse]]) -> PatientResponse:
    return await make_patient("Test Patient")


@pytest.fixture
def book(
    appointment_service: AppointmentService,
    doctor: DoctorResponse,
    patient: PatientResponse,
) -> Callable[..., Awaitable[AppointmentResponse]]:
    """Book a slot for the seeded doctor."""

    async def _book(
        start: time,
        end: time,
        day: date = DAY,
        patient_id: UUID | None = None,
        **extra: Any,
    ) -> AppointmentResponse:
        return await appointment_service.create_appointment(
            AppointmentCreate(
                doctor_id=doctor.id,
                patient_id=patient_id or patient.id,
                appointment_date=day,
                time_slot=TimeSlot(start=start, end=end),
                reason="Regular checkup",
                **extra,
            )
        )

    return _book


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    lock_manager: ScopeLockManager,
    notifications: NotificationService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_manager] = lambda: lock_manager
    app.dependency_overrides[get_notification_service] = lambda: notifications
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
