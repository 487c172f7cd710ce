"""Concurrent mutations on one invoice.

These tests use a file-backed SQLite database so each thread gets its own
connection, the way separate API requests would.
"""

import threading
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from clinic_billing.core.database import Base
from clinic_billing.core.errors import ConflictError, InvalidStateError
from clinic_billing.core.locks import KeyedLock, invoice_locks
from clinic_billing.models.appointment import AppointmentStatus
from clinic_billing.models.invoice import InvoiceStatus
from clinic_billing.repositories.appointment_repository import AppointmentRepository
from clinic_billing.schemas.appointment import AppointmentCreate
from clinic_billing.schemas.invoice import InvoiceCreate, InvoiceUpdate
from clinic_billing.services.billing_stats import BillingStatsService
from clinic_billing.services.invoice_ledger import InvoiceLedger
from tests.conftest import DOCTOR_ID, PATIENT_ID


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def pending_invoice_id(session_factory):
    session = session_factory()
    try:
        appointment = AppointmentRepository(session).create(
            AppointmentCreate(
                date=datetime.now(UTC),
                status=AppointmentStatus.COMPLETED,
                patient_id=PATIENT_ID,
                doctor_id=DOCTOR_ID,
                price=Decimal("1500.00"),
            )
        )
        invoice = InvoiceLedger(session).create_invoice(
            InvoiceCreate(appointment_id=appointment.id)
        )
        return invoice.id
    finally:
        session.close()


def _run_concurrently(worker, count):  # type: ignore[no-untyped-def]
    return _run_together([worker] * count)


def _run_together(workers):  # type: ignore[no-untyped-def]
    barrier = threading.Barrier(len(workers))
    results: list = []
    errors: list = []

    def run(worker) -> None:  # type: ignore[no-untyped-def]
        barrier.wait()
        try:
            results.append(worker())
        except Exception as exc:  # collected for the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=run, args=(worker,)) for worker in workers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


class TestConcurrentCashSettlement:
    def test_two_callers_one_settlement(self, session_factory, pending_invoice_id):
        def settle():  # type: ignore[no-untyped-def]
            session = session_factory()
            try:
                invoice = InvoiceLedger(session).mark_cash_paid(pending_invoice_id)
                return invoice.status, invoice.paid_at
            finally:
                session.close()

        results, errors = _run_concurrently(settle, 2)

        assert errors == []
        assert [status for status, _ in results] == ["COMPLETED", "COMPLETED"]
        assert results[0][1] == results[1][1]

        session = session_factory()
        try:
            ledger = InvoiceLedger(session)
            assert len(ledger.list_payments(pending_invoice_id)) == 1
            invoice = ledger.get_invoice(pending_invoice_id)
            assert invoice.status == InvoiceStatus.COMPLETED.value
            assert invoice.version == 2

            stats = BillingStatsService(session).get_stats()
            assert stats.invoices.total_revenue == Decimal("1500")
            assert stats.payments.completed == 1
        finally:
            session.close()

    def test_many_callers_one_settlement(self, session_factory, pending_invoice_id):
        def settle():  # type: ignore[no-untyped-def]
            session = session_factory()
            try:
                return InvoiceLedger(session).mark_cash_paid(pending_invoice_id).status
            finally:
                session.close()

        results, errors = _run_concurrently(settle, 6)

        assert errors == []
        assert results == ["COMPLETED"] * 6
        session = session_factory()
        try:
            assert len(InvoiceLedger(session).list_payments(pending_invoice_id)) == 1
        finally:
            session.close()


class TestUpdateRacingCashSettlement:
    def test_amount_change_and_settlement_serialize(self, session_factory, pending_invoice_id):
        def settle():  # type: ignore[no-untyped-def]
            session = session_factory()
            try:
                return InvoiceLedger(session).mark_cash_paid(pending_invoice_id).status
            finally:
                session.close()

        def reprice():  # type: ignore[no-untyped-def]
            session = session_factory()
            try:
                invoice = InvoiceLedger(session).update_invoice(
                    pending_invoice_id, InvoiceUpdate(amount=Decimal("2000"))
                )
                return invoice.status
            finally:
                session.close()

        results, errors = _run_together([settle, reprice])

        assert "COMPLETED" in results
        session = session_factory()
        try:
            ledger = InvoiceLedger(session)
            invoice = ledger.get_invoice(pending_invoice_id)
            payments = ledger.list_payments(pending_invoice_id)
        finally:
            session.close()

        assert invoice.status == InvoiceStatus.COMPLETED.value
        assert len(payments) == 1
        assert payments[0].amount == invoice.amount
        if errors:
            # Settlement won: the completed invoice refused the new amount
            assert len(errors) == 1
            assert isinstance(errors[0], InvalidStateError)
            assert invoice.amount == Decimal("1500")
        else:
            # Repricing won: the cash payment covers the new amount
            assert sorted(results) == ["COMPLETED", "PENDING"]
            assert invoice.amount == Decimal("2000")


class TestLockTimeout:
    def test_busy_invoice_raises_conflict(self, session_factory, pending_invoice_id):
        session = session_factory()
        try:
            ledger = InvoiceLedger(session, lock_timeout=0.05)
            with invoice_locks.hold(pending_invoice_id, timeout=1):
                with pytest.raises(ConflictError):
                    ledger.mark_cash_paid(pending_invoice_id)

            assert ledger.get_invoice(pending_invoice_id).status == InvoiceStatus.PENDING.value
            assert ledger.mark_cash_paid(pending_invoice_id).status == "COMPLETED"
        finally:
            session.close()


class TestKeyedLock:
    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        with locks.hold("a", timeout=1):
            with locks.hold("b", timeout=0.01):
                assert locks.is_held("a")
                assert locks.is_held("b")

    def test_same_key_times_out(self):
        locks = KeyedLock()
        with locks.hold("a", timeout=1):
            with pytest.raises(ConflictError):
                with locks.hold("a", timeout=0.01):
                    pass

    def test_released_locks_are_dropped(self):
        locks = KeyedLock()
        with locks.hold("a", timeout=1):
            pass
        assert locks.is_held("a") is False
        assert locks._locks == {}
