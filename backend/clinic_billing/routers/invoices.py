from datetime import datetime
from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from clinic_billing.core.auth import Actor, ensure_invoice_access, require_admin, require_staff
from clinic_billing.core.database import get_db
from clinic_billing.core.errors import LedgerError
from clinic_billing.models.invoice import Invoice, InvoiceStatus, PaymentMethod
from clinic_billing.schemas.invoice import (
    DeleteInvoiceResponse,
    ErrorResponse,
    InvoiceCreate,
    InvoiceFilters,
    InvoiceResponse,
    InvoiceSortField,
    InvoiceUpdate,
    PaginatedInvoicesResponse,
    PaginationMeta,
    SortOrder,
)
from clinic_billing.schemas.payment import PaymentCreate, PaymentResponse
from clinic_billing.services.invoice_export import InvoiceExportService
from clinic_billing.services.invoice_ledger import InvoiceLedger

router = APIRouter()

UNAUTHORIZED = {401: {"description": "Unauthorized – invalid or missing token"}}
FORBIDDEN = {403: {"description": "Forbidden – role or ownership check failed"}}
NOT_FOUND = {404: {"model": ErrorResponse, "description": "Invoice not found"}}
INVALID_STATE = {400: {"model": ErrorResponse, "description": "Not allowed in current status"}}
CONFLICT = {409: {"model": ErrorResponse, "description": "Concurrent update on the invoice"}}
INVALID = {422: {"model": ErrorResponse, "description": "Validation error"}}


def _raise_http(exc: LedgerError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from None


def _load_for_actor(ledger: InvoiceLedger, invoice_id: UUID, actor: Actor) -> Invoice:
    try:
        invoice = ledger.get_invoice(invoice_id)
    except LedgerError as e:
        _raise_http(e)
    ensure_invoice_access(actor, invoice)
    return invoice


@router.get(
    "",
    response_model=PaginatedInvoicesResponse,
    summary="List invoices",
    responses={**UNAUTHORIZED, **FORBIDDEN, **INVALID},
)
async def list_invoices(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: InvoiceStatus | None = None,
    patient_id: UUID | None = None,
    doctor_id: UUID | None = None,
    payment_method: PaymentMethod | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = Query(
        default=None, max_length=255, description="Patient name, doctor name or invoice id"
    ),
    overdue: bool | None = Query(default=None, description="Only (or never) overdue invoices"),
    sort_by: InvoiceSortField | None = None,
    sort_order: SortOrder | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> PaginatedInvoicesResponse:
    """List invoices with filters, sorting and pagination.

    Doctors are always scoped to their own appointments.
    """
    if actor.is_doctor:
        if doctor_id is not None and doctor_id != actor.doctor_id:
            raise HTTPException(status_code=403, detail="Doctors can only list their own invoices")
        doctor_id = actor.doctor_id

    filters = InvoiceFilters(
        status=status,
        patient_id=patient_id,
        doctor_id=doctor_id,
        payment_method=payment_method,
        start_date=start_date,
        end_date=end_date,
        search=search,
        overdue=overdue,
    )
    try:
        result = InvoiceLedger(db).list_invoices(
            filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
    except LedgerError as e:
        _raise_http(e)

    return PaginatedInvoicesResponse(
        data=[InvoiceResponse.from_invoice(invoice) for invoice in result.items],
        meta=PaginationMeta.build(result.page, result.limit, result.total),
    )


@router.get(
    "/patient/{patient_id}",
    response_model=list[InvoiceResponse],
    summary="List a patient's invoices",
    responses={**UNAUTHORIZED, **FORBIDDEN},
)
async def list_patient_invoices(
    patient_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> list[InvoiceResponse]:
    """Invoices for one patient, newest first. Doctors only see their own."""
    doctor_id = actor.doctor_id if actor.is_doctor else None
    invoices = InvoiceLedger(db).list_by_patient(patient_id, doctor_id=doctor_id)
    return [InvoiceResponse.from_invoice(invoice) for invoice in invoices]


@router.get(
    "/doctor/{doctor_id}",
    response_model=list[InvoiceResponse],
    summary="List a doctor's invoices",
    responses={**UNAUTHORIZED, **FORBIDDEN},
)
async def list_doctor_invoices(
    doctor_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> list[InvoiceResponse]:
    if actor.is_doctor and doctor_id != actor.doctor_id:
        raise HTTPException(status_code=403, detail="Doctors can only list their own invoices")
    invoices = InvoiceLedger(db).list_by_doctor(doctor_id)
    return [InvoiceResponse.from_invoice(invoice) for invoice in invoices]


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND},
)
async def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> InvoiceResponse:
    invoice = _load_for_actor(InvoiceLedger(db), invoice_id, actor)
    return InvoiceResponse.from_invoice(invoice)


@router.get(
    "/{invoice_id}/payments",
    response_model=list[PaymentResponse],
    summary="List payments recorded against an invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND},
)
async def list_invoice_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> list[PaymentResponse]:
    ledger = InvoiceLedger(db)
    _load_for_actor(ledger, invoice_id, actor)
    return [PaymentResponse.model_validate(p) for p in ledger.list_payments(invoice_id)]


@router.get(
    "/{invoice_id}/download-pdf",
    summary="Download invoice PDF",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Invoice PDF"},
        **UNAUTHORIZED,
        **FORBIDDEN,
        **NOT_FOUND,
        502: {"model": ErrorResponse, "description": "Document could not be rendered"},
    },
)
def download_invoice_pdf(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> Response:
    """Render the invoice as a PDF attachment. Never changes the invoice."""
    _load_for_actor(InvoiceLedger(db), invoice_id, actor)
    try:
        document = InvoiceExportService(db).export(invoice_id)
    except LedgerError as e:
        _raise_http(e)

    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=201,
    summary="Create invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **INVALID},
)
def create_invoice(
    data: InvoiceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> InvoiceResponse:
    """Create a PENDING invoice for a billable appointment."""
    try:
        invoice = InvoiceLedger(db).create_invoice(data)
    except LedgerError as e:
        _raise_http(e)
    return InvoiceResponse.from_invoice(invoice)


@router.patch(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Update invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **INVALID_STATE, **CONFLICT, **INVALID},
)
def update_invoice(
    invoice_id: UUID,
    data: InvoiceUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> InvoiceResponse:
    """Edit amount, due date or method of a PENDING invoice, or move its status."""
    try:
        invoice = InvoiceLedger(db).update_invoice(invoice_id, data)
    except LedgerError as e:
        _raise_http(e)
    return InvoiceResponse.from_invoice(invoice)


@router.delete(
    "/{invoice_id}",
    response_model=DeleteInvoiceResponse,
    summary="Delete invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **CONFLICT},
)
def delete_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> DeleteInvoiceResponse:
    try:
        InvoiceLedger(db).delete_invoice(invoice_id)
    except LedgerError as e:
        _raise_http(e)
    return DeleteInvoiceResponse(message="Invoice deleted", invoice_id=invoice_id)


@router.post(
    "/{invoice_id}/mark-cash-paid",
    response_model=InvoiceResponse,
    summary="Mark invoice as paid in cash",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **INVALID_STATE, **CONFLICT},
)
def mark_cash_paid(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
) -> InvoiceResponse:
    """Settle an invoice in cash. Repeating the call on a paid invoice is a no-op."""
    ledger = InvoiceLedger(db)
    _load_for_actor(ledger, invoice_id, actor)
    try:
        invoice = ledger.mark_cash_paid(invoice_id)
    except LedgerError as e:
        _raise_http(e)
    return InvoiceResponse.from_invoice(invoice)


@router.post(
    "/{invoice_id}/payments",
    response_model=InvoiceResponse,
    summary="Record a gateway payment outcome",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **INVALID_STATE, **CONFLICT, **INVALID},
)
def record_payment(
    invoice_id: UUID,
    data: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> InvoiceResponse:
    try:
        invoice = InvoiceLedger(db).record_payment(invoice_id, data)
    except LedgerError as e:
        _raise_http(e)
    return InvoiceResponse.from_invoice(invoice)


@router.post(
    "/{invoice_id}/refund",
    response_model=InvoiceResponse,
    summary="Refund a settled invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **INVALID_STATE, **CONFLICT},
)
def refund_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> InvoiceResponse:
    try:
        invoice = InvoiceLedger(db).refund_invoice(invoice_id)
    except LedgerError as e:
        _raise_http(e)
    return InvoiceResponse.from_invoice(invoice)


@router.post(
    "/{invoice_id}/reopen",
    response_model=InvoiceResponse,
    summary="Reopen a failed invoice",
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **INVALID_STATE, **CONFLICT},
)
def reopen_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> InvoiceResponse:
    """Move a FAILED invoice back to PENDING so it can be settled again."""
    try:
        invoice = InvoiceLedger(db).reopen_invoice(invoice_id)
    except LedgerError as e:
        _raise_http(e)
    return InvoiceResponse.from_invoice(invoice)
