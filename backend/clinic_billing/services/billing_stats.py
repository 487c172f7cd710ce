"""Billing statistics: a pure projection over a ledger snapshot.

Nothing here is stored or cached. ``build_billing_stats`` can be re-run on
the same rows at any time and yields the same numbers.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from clinic_billing.core.config import settings
from clinic_billing.models.invoice import InvoiceStatus, PaymentMethod
from clinic_billing.models.payment import PaymentStatus
from clinic_billing.models.shared import ensure_utc, utc_now
from clinic_billing.repositories.billing_stats_repository import BillingStatsRepository
from clinic_billing.schemas.billing_stats import (
    BillingStatsResponse,
    InvoiceStats,
    MethodBreakdown,
    MonthlyRevenuePoint,
    PaymentStats,
)
from clinic_billing.services.aging import is_overdue_display

ZERO = Decimal("0")


def _amount(row: Any) -> Decimal:
    return Decimal(str(row.amount)) if row.amount is not None else ZERO


def _month_key(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_utc(value).strftime("%Y-%m")


def month_keys(now: datetime, months: int) -> list[str]:
    """The last ``months`` calendar months as ``YYYY-MM``, oldest first."""
    year, month = now.year, now.month
    keys: list[str] = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _by_method(rows: Iterable[Any]) -> list[MethodBreakdown]:
    counts = {method.value: 0 for method in PaymentMethod}
    amounts = {method.value: ZERO for method in PaymentMethod}
    for row in rows:
        if row.payment_method in counts:
            counts[row.payment_method] += 1
            amounts[row.payment_method] += _amount(row)
    return [
        MethodBreakdown(method=method, count=counts[method], amount=amounts[method])
        for method in counts
    ]


def _invoice_stats(invoices: Sequence[Any], now: datetime) -> InvoiceStats:
    def with_status(status: InvoiceStatus) -> list[Any]:
        return [row for row in invoices if row.status == status.value]

    pending = with_status(InvoiceStatus.PENDING)
    completed = with_status(InvoiceStatus.COMPLETED)
    return InvoiceStats(
        total=len(invoices),
        pending=len(pending),
        completed=len(completed),
        failed=len(with_status(InvoiceStatus.FAILED)),
        refunded=len(with_status(InvoiceStatus.REFUNDED)),
        overdue=sum(1 for row in pending if is_overdue_display(row, now)),
        total_revenue=sum((_amount(row) for row in completed), ZERO),
        pending_revenue=sum((_amount(row) for row in pending), ZERO),
        by_payment_method=_by_method(invoices),
    )


def _payment_stats(payments: Sequence[Any]) -> PaymentStats:
    def with_status(status: PaymentStatus) -> list[Any]:
        return [row for row in payments if row.status == status.value]

    completed = with_status(PaymentStatus.COMPLETED)
    pending = with_status(PaymentStatus.PENDING)
    return PaymentStats(
        total=len(payments),
        completed=len(completed),
        pending=len(pending),
        failed=len(with_status(PaymentStatus.FAILED)),
        refunded=len(with_status(PaymentStatus.REFUNDED)),
        total_amount=sum((_amount(row) for row in payments), ZERO),
        completed_amount=sum((_amount(row) for row in completed), ZERO),
        pending_amount=sum((_amount(row) for row in pending), ZERO),
        by_method=_by_method(payments),
    )


def _monthly_revenue(
    invoices: Sequence[Any], payments: Sequence[Any], now: datetime, months: int
) -> list[MonthlyRevenuePoint]:
    keys = month_keys(now, months)
    revenue = {key: ZERO for key in keys}
    invoice_counts = dict.fromkeys(keys, 0)
    payment_counts = dict.fromkeys(keys, 0)

    for row in invoices:
        created = _month_key(row.created_at)
        if created in invoice_counts:
            invoice_counts[created] += 1
        if row.status == InvoiceStatus.COMPLETED.value:
            settled = _month_key(row.paid_at)
            if settled in revenue:
                revenue[settled] += _amount(row)

    for row in payments:
        if row.status != PaymentStatus.COMPLETED.value:
            continue
        created = _month_key(row.created_at)
        if created in payment_counts:
            payment_counts[created] += 1

    return [
        MonthlyRevenuePoint(
            month=key,
            revenue=revenue[key],
            invoice_count=invoice_counts[key],
            payment_count=payment_counts[key],
        )
        for key in keys
    ]


def build_billing_stats(
    invoices: Sequence[Any],
    payments: Sequence[Any],
    now: datetime | None = None,
    months: int | None = None,
) -> BillingStatsResponse:
    """Project invoice and payment rows into the reporting statistics.

    Rows only need the attributes the ledger tables have (``amount``,
    ``status``, ``payment_method``, timestamps); ORM instances and plain column
    tuples both work.
    """
    now = ensure_utc(now or utc_now())
    months = months or settings.BILLING_STATS_MONTHS
    return BillingStatsResponse(
        invoices=_invoice_stats(invoices, now),
        payments=_payment_stats(payments),
        monthly_revenue=_monthly_revenue(invoices, payments, now, months),
    )


def collection_rate(stats: BillingStatsResponse) -> float:
    """Share of invoices that were settled; computed for display, never stored."""
    if stats.invoices.total == 0:
        return 0.0
    return stats.invoices.completed / stats.invoices.total


class BillingStatsService:
    def __init__(self, db: Session):
        self.repo = BillingStatsRepository(db)

    def get_stats(
        self,
        doctor_id: UUID | None = None,
        months: int | None = None,
        now: datetime | None = None,
    ) -> BillingStatsResponse:
        snapshot = self.repo.load_snapshot(doctor_id=doctor_id)
        return build_billing_stats(snapshot.invoices, snapshot.payments, now=now, months=months)
