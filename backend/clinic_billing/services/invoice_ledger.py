"""Invoice ledger: the only writer of invoice and payment state.

Every mutation of an existing invoice runs under the per-invoice lock, re-reads
the row, applies its changes and commits once. Any error rolls the whole
transaction back, so a failed or conflicting call leaves the invoice exactly
as it was.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clinic_billing.core.config import settings
from clinic_billing.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinic_billing.core.locks import KeyedLock, invoice_locks
from clinic_billing.models.invoice import Invoice, InvoiceStatus, PaymentMethod
from clinic_billing.models.payment import Payment, PaymentStatus
from clinic_billing.models.shared import ensure_utc, utc_now
from clinic_billing.repositories.appointment_repository import AppointmentRepository
from clinic_billing.repositories.invoice_repository import InvoiceRepository
from clinic_billing.repositories.payment_repository import PaymentRepository
from clinic_billing.schemas.invoice import (
    InvoiceCreate,
    InvoiceFilters,
    InvoiceSortField,
    InvoiceUpdate,
    SortOrder,
)
from clinic_billing.schemas.payment import PaymentCreate
from clinic_billing.services.invoice_state_machine import (
    ACTION_FOR_TARGET,
    InvoiceAction,
    Transition,
    ensure_editable,
    resolve_transition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

EDITABLE_FIELDS = ("amount", "due_date", "payment_method")


@dataclass
class InvoicePage:
    items: list[Invoice]
    total: int
    page: int
    limit: int


def reconciles(paid: Decimal, owed: Decimal, policy: str | None = None) -> bool:
    """Whether a completed payment of ``paid`` settles an invoice of ``owed``."""
    policy = policy or settings.RECONCILIATION_POLICY
    if policy == "at_least":
        return paid >= owed
    return paid == owed


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class InvoiceLedger:
    def __init__(
        self,
        db: Session,
        locks: KeyedLock = invoice_locks,
        lock_timeout: float | None = None,
    ):
        self.db = db
        self.locks = locks
        self.lock_timeout = (
            settings.LEDGER_LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        )
        self.invoices = InvoiceRepository(db)
        self.payments = PaymentRepository(db)
        self.appointments = AppointmentRepository(db)

    # --- reads ---

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.invoices.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found", field="id")
        return invoice

    def list_invoices(
        self,
        filters: InvoiceFilters | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: InvoiceSortField | None = None,
        sort_order: SortOrder | None = None,
    ) -> InvoicePage:
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if limit < 1:
            raise ValidationError("limit must be at least 1", field="limit")

        items = self.invoices.get_page(
            filters,
            skip=(page - 1) * limit,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return InvoicePage(items=items, total=self.invoices.count(filters), page=page, limit=limit)

    def list_by_patient(self, patient_id: UUID, doctor_id: UUID | None = None) -> list[Invoice]:
        return self.invoices.get_all(InvoiceFilters(patient_id=patient_id, doctor_id=doctor_id))

    def list_by_doctor(self, doctor_id: UUID) -> list[Invoice]:
        return self.invoices.get_all(InvoiceFilters(doctor_id=doctor_id))

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        invoice = self.get_invoice(invoice_id)
        return self.payments.get_by_invoice(invoice.id)  # type: ignore[arg-type]

    # --- mutations ---

    def create_invoice(self, data: InvoiceCreate) -> Invoice:
        with self.locks.hold(f"appointment:{data.appointment_id}", self.lock_timeout):
            appointment = self.appointments.get_by_id(data.appointment_id)
            if not appointment:
                raise NotFoundError(
                    f"Appointment {data.appointment_id} not found", field="appointment_id"
                )
            if not appointment.is_billable:
                raise ValidationError(
                    f"Appointment status {appointment.status} is not billable",
                    field="appointment_id",
                )
            if self.invoices.get_by_appointment_id(data.appointment_id):
                raise ValidationError(
                    "Appointment already has an invoice", field="appointment_id"
                )

            now = utc_now()
            amount = data.amount if data.amount is not None else Decimal(str(appointment.price))
            due_date = ensure_utc(
                data.due_date or now + timedelta(days=settings.INVOICE_DEFAULT_DUE_DAYS)
            )
            self._validate_amount(amount)
            self._validate_due_date(due_date, now)

            fields: dict[str, Any] = {
                "appointment_id": appointment.id,
                "amount": amount,
                "due_date": due_date,
                "status": InvoiceStatus.PENDING.value,
                "payment_method": data.payment_method.value if data.payment_method else None,
            }
            try:
                invoice = self.invoices.add(**fields)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise ValidationError(
                    "Appointment already has an invoice", field="appointment_id"
                ) from None

        self.db.refresh(invoice)
        logger.info(
            "Created invoice %s for appointment %s (%s %s)",
            invoice.id,
            appointment.id,
            invoice.amount,
            invoice.currency,
        )
        return invoice

    def update_invoice(self, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        changes = data.model_dump(exclude_unset=True)
        target = changes.pop("status", None)

        def apply(invoice: Invoice) -> Invoice:
            if changes:
                ensure_editable(invoice.status)
                self.invoices.apply(invoice, self._clean_field_changes(changes))
            if target is not None:
                self._transition(invoice, ACTION_FOR_TARGET[InvoiceStatus(target)])
            return invoice

        return self._mutate(invoice_id, apply)

    def delete_invoice(self, invoice_id: UUID) -> None:
        def apply(invoice: Invoice) -> None:
            detached = self.payments.detach_from_invoice(invoice.id)  # type: ignore[arg-type]
            self.invoices.delete(invoice)
            logger.info(
                "Deleted invoice %s (status %s); kept %d payment(s)",
                invoice_id,
                invoice.status,
                detached,
            )

        self._mutate(invoice_id, apply)

    def mark_cash_paid(self, invoice_id: UUID) -> Invoice:
        """Settle an invoice in cash. Repeating the call is a no-op success."""

        def apply(invoice: Invoice) -> Invoice:
            transition = resolve_transition(invoice.status, InvoiceAction.SETTLE)
            if not transition.changed:
                logger.info("Invoice %s already settled, cash payment not recorded", invoice.id)
                return invoice

            payment = self.payments.create(
                invoice_id=invoice.id,  # type: ignore[arg-type]
                appointment_id=invoice.appointment_id,  # type: ignore[arg-type]
                amount=invoice.amount,  # type: ignore[arg-type]
                currency=invoice.currency,
                payment_method=PaymentMethod.CASH,
                status=PaymentStatus.COMPLETED,
                payment_id=f"cash-{uuid4().hex}",
            )
            self._transition(
                invoice,
                InvoiceAction.SETTLE,
                payment_id=payment.id,  # type: ignore[arg-type]
                payment_method=PaymentMethod.CASH,
            )
            return invoice

        return self._mutate(invoice_id, apply)

    def record_payment(self, invoice_id: UUID, data: PaymentCreate) -> Invoice:
        """Record a settlement attempt and move the invoice accordingly.

        A completed payment that reconciles with the invoice amount settles it;
        a failed one fails it. Replaying a payment with an already recorded
        gateway ``payment_id`` is a no-op.
        """
        if data.status == PaymentStatus.COMPLETED:
            action = InvoiceAction.SETTLE
        elif data.status == PaymentStatus.FAILED:
            action = InvoiceAction.FAIL
        else:
            raise ValidationError(
                "Payment status must be COMPLETED or FAILED", field="status"
            )

        def apply(invoice: Invoice) -> Invoice:
            if data.payment_id and any(
                p.payment_id == data.payment_id
                for p in self.payments.get_by_invoice(invoice.id)  # type: ignore[arg-type]
            ):
                logger.info(
                    "Payment %s already recorded for invoice %s", data.payment_id, invoice.id
                )
                return invoice

            transition = resolve_transition(invoice.status, action)
            if not transition.changed:
                raise InvalidStateError(
                    f"Invoice is already {invoice.status}", field="status"
                )
            if action == InvoiceAction.SETTLE and not reconciles(
                data.amount, Decimal(str(invoice.amount))
            ):
                raise ValidationError(
                    f"Payment amount {data.amount} does not reconcile with "
                    f"invoice amount {invoice.amount}",
                    field="amount",
                )

            payment = self.payments.create(
                invoice_id=invoice.id,  # type: ignore[arg-type]
                appointment_id=invoice.appointment_id,  # type: ignore[arg-type]
                amount=data.amount,
                currency=invoice.currency,
                payment_method=data.payment_method,
                status=data.status,
                payment_id=data.payment_id,
                failure_reason=data.failure_reason,
            )
            if action == InvoiceAction.SETTLE:
                self._transition(
                    invoice,
                    action,
                    payment_id=payment.id,  # type: ignore[arg-type]
                    payment_method=data.payment_method,
                )
            else:
                self._transition(invoice, action)
            return invoice

        return self._mutate(invoice_id, apply)

    def refund_invoice(self, invoice_id: UUID) -> Invoice:
        def apply(invoice: Invoice) -> Invoice:
            self._transition(invoice, InvoiceAction.REFUND)
            return invoice

        return self._mutate(invoice_id, apply)

    def reopen_invoice(self, invoice_id: UUID) -> Invoice:
        def apply(invoice: Invoice) -> Invoice:
            self._transition(invoice, InvoiceAction.REOPEN)
            return invoice

        return self._mutate(invoice_id, apply)

    # --- internals ---

    def _mutate(self, invoice_id: UUID, apply: Callable[[Invoice], T]) -> T:
        with self.locks.hold(invoice_id, self.lock_timeout):
            try:
                invoice = self.invoices.get_for_update(invoice_id)
                if not invoice:
                    raise NotFoundError(f"Invoice {invoice_id} not found", field="id")
                result = apply(invoice)
                self.db.commit()
            except StaleDataError:
                self.db.rollback()
                logger.warning("Concurrent update lost the race on invoice %s", invoice_id)
                raise ConflictError(
                    f"Invoice {invoice_id} was modified concurrently, try again"
                ) from None
            except Exception:
                self.db.rollback()
                raise
        return result

    def _transition(
        self,
        invoice: Invoice,
        action: InvoiceAction,
        payment_id: UUID | None = None,
        payment_method: PaymentMethod | None = None,
    ) -> Transition:
        transition = resolve_transition(invoice.status, action)
        if not transition.changed:
            return transition

        changes: dict[str, Any] = {"status": transition.target.value}
        if transition.target == InvoiceStatus.COMPLETED:
            changes["paid_at"] = utc_now()
            if invoice.payment_method is None and payment_method is not None:
                changes["payment_method"] = payment_method.value
            if payment_id is not None:
                changes["payment_id"] = payment_id
        elif transition.target == InvoiceStatus.REFUNDED:
            self.payments.mark_refunded(invoice.id)  # type: ignore[arg-type]

        self.invoices.apply(invoice, changes)
        logger.info(
            "Invoice %s %s: %s -> %s",
            invoice.id,
            action.value,
            transition.source.value,
            transition.target.value,
        )
        return transition

    def _clean_field_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in changes.items():
            if key not in EDITABLE_FIELDS:
                continue
            if key == "amount":
                if value is None:
                    raise ValidationError("amount is required", field="amount")
                self._validate_amount(value)
            elif key == "due_date":
                if value is None:
                    raise ValidationError("due_date is required", field="due_date")
                self._validate_due_date(value, utc_now())
                value = ensure_utc(value)
            elif key == "payment_method" and value is not None:
                value = PaymentMethod(value).value
            cleaned[key] = value
        return cleaned

    @staticmethod
    def _validate_amount(amount: Decimal) -> None:
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0", field="amount")

    @staticmethod
    def _validate_due_date(due_date: datetime, now: datetime) -> None:
        if ensure_utc(due_date) < _start_of_day(now):
            raise ValidationError("Due date cannot be before today", field="due_date")
