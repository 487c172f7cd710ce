from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from clinic_billing.models.appointment import Appointment
from clinic_billing.models.invoice import Invoice
from clinic_billing.models.payment import Payment


@dataclass
class LedgerSnapshot:
    invoices: list[Any]
    payments: list[Any]


class BillingStatsRepository:
    """Read-only access to the rows the statistics are projected from.

    Rows come back as plain column tuples, not ORM instances, so nothing the
    aggregator touches is attached to the session or can be flushed back.
    """

    def __init__(self, db: Session):
        self.db = db

    def load_snapshot(self, doctor_id: UUID | None = None) -> LedgerSnapshot:
        invoice_query = self.db.query(
            Invoice.id,
            Invoice.amount,
            Invoice.status,
            Invoice.payment_method,
            Invoice.due_date,
            Invoice.paid_at,
            Invoice.created_at,
        ).join(Appointment, Appointment.id == Invoice.appointment_id)
        payment_query = self.db.query(
            Payment.id,
            Payment.amount,
            Payment.status,
            Payment.payment_method,
            Payment.created_at,
        ).join(Appointment, Appointment.id == Payment.appointment_id)

        if doctor_id is not None:
            invoice_query = invoice_query.filter(Appointment.doctor_id == doctor_id)
            payment_query = payment_query.filter(Appointment.doctor_id == doctor_id)

        return LedgerSnapshot(invoices=invoice_query.all(), payments=payment_query.all())
