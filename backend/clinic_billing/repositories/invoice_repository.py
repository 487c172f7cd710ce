"""Invoice repository for data access.

Write helpers only flush; the ledger service decides when to commit so a
mutation and its side effects land in one transaction.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import String, and_, cast, func, or_
from sqlalchemy.orm import Query, Session

from clinic_billing.core.sorting import apply_order_by
from clinic_billing.models.appointment import Appointment
from clinic_billing.models.invoice import Invoice, InvoiceStatus
from clinic_billing.models.shared import utc_now
from clinic_billing.schemas.invoice import InvoiceFilters, InvoiceSortField, SortOrder

SORTABLE_FIELDS = tuple(f.value for f in InvoiceSortField)


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, filters: InvoiceFilters | None) -> Query:  # type: ignore[type-arg]
        query = self.db.query(Invoice).join(Invoice.appointment)
        if filters is None:
            return query

        if filters.status:
            query = query.filter(Invoice.status == filters.status.value)
        if filters.patient_id:
            query = query.filter(Appointment.patient_id == filters.patient_id)
        if filters.doctor_id:
            query = query.filter(Appointment.doctor_id == filters.doctor_id)
        if filters.payment_method:
            query = query.filter(Invoice.payment_method == filters.payment_method.value)
        if filters.start_date:
            query = query.filter(Invoice.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Invoice.created_at <= filters.end_date)
        if filters.search and filters.search.strip():
            pattern = f"%{filters.search.strip()}%"
            query = query.filter(
                or_(
                    Appointment.patient_name.ilike(pattern),
                    Appointment.doctor_name.ilike(pattern),
                    cast(Invoice.id, String).ilike(pattern),
                )
            )
        if filters.overdue is not None:
            overdue = and_(
                Invoice.status == InvoiceStatus.PENDING.value,
                Invoice.due_date < utc_now(),
            )
            query = query.filter(overdue if filters.overdue else ~overdue)
        return query

    def get_page(
        self,
        filters: InvoiceFilters | None = None,
        skip: int = 0,
        limit: int = 10,
        sort_by: InvoiceSortField | None = None,
        sort_order: SortOrder | None = None,
    ) -> list[Invoice]:
        query = apply_order_by(
            self._filtered(filters),
            Invoice,
            sort_by.value if sort_by else None,
            sort_order.value if sort_order else None,
            allowed_fields=SORTABLE_FIELDS,
        )
        return query.offset(skip).limit(limit).all()

    def count(self, filters: InvoiceFilters | None = None) -> int:
        query = self._filtered(filters).with_entities(func.count(Invoice.id))
        return query.scalar() or 0

    def get_all(self, filters: InvoiceFilters | None = None) -> list[Invoice]:
        return self._filtered(filters).order_by(Invoice.created_at.desc()).all()

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        return self.db.query(Invoice).filter(Invoice.id == invoice_id).first()

    def get_for_update(self, invoice_id: UUID) -> Invoice | None:
        """Re-read an invoice from the database, discarding cached state.

        Row-locks it on databases that support ``SELECT ... FOR UPDATE``.
        """
        return (
            self.db.query(Invoice)
            .filter(Invoice.id == invoice_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def get_by_appointment_id(self, appointment_id: UUID) -> Invoice | None:
        return self.db.query(Invoice).filter(Invoice.appointment_id == appointment_id).first()

    def add(self, **fields: Any) -> Invoice:
        invoice = Invoice(**fields)
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def apply(self, invoice: Invoice, changes: dict[str, Any]) -> Invoice:
        for key, value in changes.items():
            setattr(invoice, key, value)
        self.db.flush()
        return invoice

    def delete(self, invoice: Invoice) -> None:
        self.db.delete(invoice)
        self.db.flush()
