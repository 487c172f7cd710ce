"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import clinic_billing.models  # noqa: F401
from clinic_billing.core import database as db_module
from clinic_billing.core.auth import ActorRole, create_access_token
from clinic_billing.core.database import Base, get_db
from clinic_billing.core.locks import invoice_locks
from clinic_billing.models.appointment import AppointmentModality, AppointmentStatus
from clinic_billing.repositories.appointment_repository import AppointmentRepository
from clinic_billing.schemas.appointment import AppointmentCreate
from clinic_billing.schemas.invoice import InvoiceCreate
from clinic_billing.services.invoice_ledger import InvoiceLedger

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

DOCTOR_ID = uuid.UUID("00000000-0000-0000-0000-0000000000d1")
OTHER_DOCTOR_ID = uuid.UUID("00000000-0000-0000-0000-0000000000d2")
PATIENT_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data and invoice locks after
    each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    invoice_locks.reset()
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository and service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def make_appointment(db_session):
    """Factory for billable appointments; keyword overrides win."""

    def _make(**overrides):  # type: ignore[no-untyped-def]
        defaults = {
            "date": datetime.now(UTC) - timedelta(hours=2),
            "duration": 30,
            "modality": AppointmentModality.IN_PERSON,
            "status": AppointmentStatus.COMPLETED,
            "patient_id": PATIENT_ID,
            "doctor_id": DOCTOR_ID,
            "patient_name": "Ana Pérez",
            "doctor_name": "Dr. Luis Gómez",
            "price": Decimal("1500.00"),
        }
        defaults.update(overrides)
        return AppointmentRepository(db_session).create(AppointmentCreate(**defaults))

    return _make


@pytest.fixture
def make_invoice(db_session, make_appointment):
    """Factory creating a PENDING invoice through the ledger."""

    def _make(amount=None, due_date=None, **appointment_overrides):  # type: ignore[no-untyped-def]
        appointment = make_appointment(**appointment_overrides)
        return InvoiceLedger(db_session).create_invoice(
            InvoiceCreate(appointment_id=appointment.id, amount=amount, due_date=due_date)
        )

    return _make


def _bearer(role: ActorRole, doctor_id: uuid.UUID | None = None) -> dict[str, str]:
    token = create_access_token(f"{role.value}-user", role, doctor_id=doctor_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return _bearer(ActorRole.ADMIN)


@pytest.fixture
def doctor_headers():
    return _bearer(ActorRole.DOCTOR, doctor_id=DOCTOR_ID)


@pytest.fixture
def other_doctor_headers():
    return _bearer(ActorRole.DOCTOR, doctor_id=OTHER_DOCTOR_ID)


@pytest.fixture
def patient_headers():
    return _bearer(ActorRole.PATIENT)
