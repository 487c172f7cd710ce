from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from clinic_billing.models.invoice import Invoice, InvoiceStatus, PaymentMethod
from clinic_billing.services.aging import days_overdue_display, is_overdue_display
from clinic_billing.services.currency import format_invoice_amount


class InvoiceSortField(str, Enum):
    AMOUNT = "amount"
    DUE_DATE = "due_date"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class InvoiceCreate(BaseModel):
    appointment_id: UUID
    # Defaults to the appointment price
    amount: Decimal | None = None
    # Defaults to INVOICE_DEFAULT_DUE_DAYS from now
    due_date: datetime | None = None
    payment_method: PaymentMethod | None = None


class InvoiceUpdate(BaseModel):
    amount: Decimal | None = None
    due_date: datetime | None = None
    payment_method: PaymentMethod | None = None
    status: InvoiceStatus | None = None


class InvoiceFilters(BaseModel):
    status: InvoiceStatus | None = None
    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    payment_method: PaymentMethod | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    # Case-insensitive match on patient name, doctor name or invoice id
    search: str | None = None
    # True: pending past their due date; False: everything else
    overdue: bool | None = None


class AppointmentSummary(BaseModel):
    id: UUID
    date: datetime
    duration: int
    modality: str
    status: str
    patient_id: UUID
    doctor_id: UUID
    patient_name: str | None = None
    doctor_name: str | None = None

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: UUID
    appointment_id: UUID
    amount: Decimal
    currency: str
    formatted_amount: str
    status: str
    payment_method: str | None
    payment_id: UUID | None
    paid_at: datetime | None
    due_date: datetime
    is_overdue: bool
    days_overdue: int
    created_at: datetime
    updated_at: datetime
    appointment: AppointmentSummary | None = None

    @classmethod
    def from_invoice(cls, invoice: Invoice, now: datetime | None = None) -> InvoiceResponse:
        """Build the response, evaluating derived fields at read time."""
        return cls(
            id=invoice.id,
            appointment_id=invoice.appointment_id,
            amount=invoice.amount,
            currency=invoice.currency,
            formatted_amount=format_invoice_amount(invoice),
            status=invoice.status,
            payment_method=invoice.payment_method,
            payment_id=invoice.payment_id,
            paid_at=invoice.paid_at,
            due_date=invoice.due_date,
            is_overdue=is_overdue_display(invoice, now),
            days_overdue=days_overdue_display(invoice, now),
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
            appointment=AppointmentSummary.model_validate(invoice.appointment),
        )


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> PaginationMeta:
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_previous_page=page > 1,
            has_next_page=page < total_pages,
        )


class PaginatedInvoicesResponse(BaseModel):
    data: list[InvoiceResponse]
    meta: PaginationMeta


class DeleteInvoiceResponse(BaseModel):
    message: str
    invoice_id: UUID


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None


class ErrorResponse(BaseModel):
    detail: ErrorDetail = Field(description="Machine-readable error code with message")
