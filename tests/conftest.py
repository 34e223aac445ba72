'''
Pytest configuration.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any app code is imported.
2. A fresh SQLite database file per test, seeded with tutors, students and
   weekly hours through the factories.
3. An async session factory bound to that file, and the services built on it.
4. A FastAPI TestClient whose lifespan points at the same database file.
'''

import os

# Set TEST_MODE before anything from the app is imported
os.environ["TEST_MODE"] = "True"

import pytest
from pathlib import Path
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from tests.constants import (
    TEST_ADMIN_ID,
    TEST_TUTOR_ID, TEST_TUTOR_EMAIL,
    TEST_OTHER_TUTOR_ID, TEST_INACTIVE_TUTOR_ID, TEST_TUTOR_NO_HOURS_ID,
    TEST_STUDENT_ID, TEST_STUDENT_EMAIL,
    TEST_OTHER_STUDENT_ID, TEST_INACTIVE_STUDENT_ID,
    TEST_STUDENT_START, TEST_STUDENT_DISCHARGE,
    TEST_TUTOR_BLOCKS, TEST_NOW, TEST_RAZORPAY_SECRET
)
from tests.database import factories

from tuition_scheduler.common.config import settings
from tuition_scheduler.database import models as db_models
from tuition_scheduler.database.db_enums import OwnerType, UserRole, UserStatus
from tuition_scheduler.database.engine import build_engine, build_session_factory
from tuition_scheduler.database.transactions import RetryPolicy
from tuition_scheduler.models.token import Actor
from tuition_scheduler.services.availability_service import AvailabilityService
from tuition_scheduler.services.booking_service import BookingService
from tuition_scheduler.services.payment_gateway import RazorpayGateway
from tuition_scheduler.services.security import JWTHandler


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio'.
    2. Promotes the scope to 'session'.
    """
    return "asyncio"


# --- 1. Database File & Seed Data ---

def _seed(session: Session) -> None:
    factories.TutorFactory(id=TEST_TUTOR_ID, email=TEST_TUTOR_EMAIL, first_name="Ada", last_name="Lovelace")
    factories.TutorFactory(id=TEST_OTHER_TUTOR_ID)
    factories.TutorFactory(id=TEST_INACTIVE_TUTOR_ID, status=UserStatus.INACTIVE.value)
    factories.TutorFactory(id=TEST_TUTOR_NO_HOURS_ID)

    factories.StudentFactory(
        id=TEST_STUDENT_ID, email=TEST_STUDENT_EMAIL, first_name="Sam", last_name="Student",
        start_date=TEST_STUDENT_START, discharge_date=TEST_STUDENT_DISCHARGE
    )
    factories.StudentFactory(id=TEST_OTHER_STUDENT_ID, start_date=TEST_STUDENT_START)
    factories.StudentFactory(id=TEST_INACTIVE_STUDENT_ID, status=UserStatus.INACTIVE.value)

    for day, start, end in TEST_TUTOR_BLOCKS:
        factories.WeeklyBlockFactory(
            owner_type=OwnerType.TUTOR.value, owner_id=TEST_TUTOR_ID,
            day_of_week=day, start_time=start, end_time=end
        )
    session.commit()


@pytest.fixture(scope="function")
def db_path(tmp_path: Path) -> Path:
    """
    Creates the schema in a fresh SQLite file and seeds it with a plain
    (sync) session, the same way the factories are used by seeding scripts.
    """
    path = tmp_path / "scheduler_test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    db_models.Base.metadata.create_all(sync_engine)
    with Session(sync_engine) as session:
        factories.test_db_session = session
        try:
            _seed(session)
        finally:
            factories.test_db_session = None
    sync_engine.dispose()
    return path


@pytest.fixture(scope="function")
def database_url(db_path: Path) -> str:
    return f"sqlite+aiosqlite:///{db_path}"


# --- 2. Async Session Factory (For Service Tests) ---

@pytest.fixture(scope="function")
async def session_factory(database_url: str) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = build_engine(database_url)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def clock() -> Callable:
    """A fixed 'now' so booking windows are deterministic."""
    return lambda: TEST_NOW


@pytest.fixture(scope="function")
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.01, jitter=0.0)


@pytest.fixture(scope="function")
def mock_notifier() -> MagicMock:
    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value=None)
    notifier.emit = AsyncMock(return_value=None)
    return notifier


@pytest.fixture(scope="function")
def payment_gateway() -> RazorpayGateway:
    """Signatures are verified for real with a known secret; order creation is mocked per test."""
    return RazorpayGateway(key_id="rzp_test", key_secret=TEST_RAZORPAY_SECRET)


# --- 3. Service Fixtures ---

@pytest.fixture(scope="function")
def booking_service(
    session_factory: async_sessionmaker[AsyncSession],
    mock_notifier: MagicMock,
    payment_gateway: RazorpayGateway,
    retry_policy: RetryPolicy,
    clock: Callable
) -> BookingService:
    return BookingService(
        session_factory,
        notifier=mock_notifier,
        payment_gateway=payment_gateway,
        retry_policy=retry_policy,
        now=clock
    )


@pytest.fixture(scope="function")
def availability_service(
    session_factory: async_sessionmaker[AsyncSession],
    retry_policy: RetryPolicy,
    clock: Callable
) -> AvailabilityService:
    return AvailabilityService(session_factory, retry_policy=retry_policy, now=clock)


# --- 4. Actors ---

@pytest.fixture(scope="function")
def admin_actor() -> Actor:
    return Actor(id=TEST_ADMIN_ID, role=UserRole.ADMIN)

@pytest.fixture(scope="function")
def tutor_actor() -> Actor:
    return Actor(id=TEST_TUTOR_ID, role=UserRole.TUTOR)

@pytest.fixture(scope="function")
def other_tutor_actor() -> Actor:
    return Actor(id=TEST_OTHER_TUTOR_ID, role=UserRole.TUTOR)

@pytest.fixture(scope="function")
def student_actor() -> Actor:
    return Actor(id=TEST_STUDENT_ID, role=UserRole.STUDENT)

@pytest.fixture(scope="function")
def other_student_actor() -> Actor:
    return Actor(id=TEST_OTHER_STUDENT_ID, role=UserRole.STUDENT)


# --- 5. HTTP Client ---

@pytest.fixture(scope="function")
def client(db_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """
    Runs the app's lifespan against the per-test database file.
    """
    from tuition_scheduler.main import app
    from tuition_scheduler.services.notifications import get_notifier
    from tuition_scheduler.services.payment_gateway import get_payment_gateway

    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."
    monkeypatch.setattr(settings, "DATABASE_URL_TEST", f"sqlite+aiosqlite:///{db_path}")

    notifier = MagicMock()
    notifier.notify = AsyncMock(return_value=None)
    notifier.emit = AsyncMock(return_value=None)
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: RazorpayGateway(
        key_id="rzp_test", key_secret=TEST_RAZORPAY_SECRET
    )

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _bearer(actor_id, role: UserRole) -> dict[str, str]:
    token = JWTHandler.create_access_token(actor_id, role)
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture(scope="function")
def admin_headers() -> dict[str, str]:
    return _bearer(TEST_ADMIN_ID, UserRole.ADMIN)

@pytest.fixture(scope="function")
def tutor_headers() -> dict[str, str]:
    return _bearer(TEST_TUTOR_ID, UserRole.TUTOR)

@pytest.fixture(scope="function")
def student_headers() -> dict[str, str]:
    return _bearer(TEST_STUDENT_ID, UserRole.STUDENT)

@pytest.fixture(scope="function")
def inactive_student_headers() -> dict[str, str]:
    return _bearer(TEST_INACTIVE_STUDENT_ID, UserRole.STUDENT)
