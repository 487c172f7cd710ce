"""Invoice aging: overdue status and whole-day counts."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from clinic_billing.models.invoice import InvoiceStatus
from clinic_billing.models.shared import ensure_utc, utc_now

if TYPE_CHECKING:
    from clinic_billing.models.invoice import Invoice

_ONE_DAY = timedelta(days=1)


def is_overdue(due_date: datetime, now: datetime | None = None) -> bool:
    now = ensure_utc(now or utc_now())
    return ensure_utc(due_date) < now


def days_overdue(due_date: datetime, now: datetime | None = None) -> int:
    """Whole days past ``due_date``, truncating any partial day; 0 if not overdue."""
    now = ensure_utc(now or utc_now())
    due = ensure_utc(due_date)
    if due >= now:
        return 0
    return (now - due) // _ONE_DAY


def is_overdue_display(invoice: Invoice, now: datetime | None = None) -> bool:
    """Only pending invoices are ever shown as overdue."""
    if invoice.status != InvoiceStatus.PENDING.value:
        return False
    return is_overdue(invoice.due_date, now)


def days_overdue_display(invoice: Invoice, now: datetime | None = None) -> int:
    if invoice.status != InvoiceStatus.PENDING.value:
        return 0
    return days_overdue(invoice.due_date, now)
