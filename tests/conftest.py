"""Shared test fixtures and configuration."""

from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict

import pytest

from university_payments.clock import utcnow
from university_payments.config import Settings
from university_payments.database import (
    Base,
    Student,
    create_async_engine,
    get_async_session_factory,
)
from university_payments.messaging import InMemoryMessagePublisher
from university_payments.schemas import PaymentNotificationCreate

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_KEY = "admin_key_12345"
MANAGER_KEY = "manager_key_12345"
STAFF_KEY = "staff_key_12345"


@pytest.fixture
def settings() -> Settings:
    """Settings for an isolated in-memory test database."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        api_keys={ADMIN_KEY: "Admin", MANAGER_KEY: "Manager", STAFF_KEY: "Staff"},
        rate_limit="1000/minute",
    )


@pytest.fixture
def publisher() -> InMemoryMessagePublisher:
    return InMemoryMessagePublisher()


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(database_url=TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    session_factory = get_async_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def students(db_session):
    """An enrolled student S12345 and a withdrawn student S54321."""
    active = Student(student_number="S12345", full_name="Jane Wanjiku", program="Computer Science")
    inactive = Student(
        student_number="S54321",
        full_name="Peter Otieno",
        program="Economics",
        is_active=False,
    )
    db_session.add_all([active, inactive])
    await db_session.flush()
    return {"active": active, "inactive": inactive}


@pytest.fixture
def make_payment():
    """Factory for payment notifications dated yesterday."""

    def _make(**overrides: Any) -> PaymentNotificationCreate:
        data: Dict[str, Any] = {
            "student_number": "S12345",
            "payment_reference": "REF001",
            "amount_paid": Decimal("5000.00"),
            "payment_date": utcnow() - timedelta(days=1),
        }
        data.update(overrides)
        return PaymentNotificationCreate(**data)

    return _make


@pytest.fixture
def payment_body() -> Dict[str, Any]:
    """JSON body for a valid payment notification."""
    return {
        "student_number": "S12345",
        "payment_reference": "REF001",
        "amount_paid": "5000.00",
        "payment_date": (utcnow() - timedelta(days=1)).isoformat(),
    }
