from decimal import Decimal

from pydantic import BaseModel


class MethodBreakdown(BaseModel):
    method: str
    count: int
    amount: Decimal


class InvoiceStats(BaseModel):
    total: int
    pending: int
    completed: int
    failed: int
    refunded: int
    overdue: int
    total_revenue: Decimal
    pending_revenue: Decimal
    by_payment_method: list[MethodBreakdown]


class PaymentStats(BaseModel):
    total: int
    completed: int
    pending: int
    failed: int
    refunded: int
    total_amount: Decimal
    completed_amount: Decimal
    pending_amount: Decimal
    by_method: list[MethodBreakdown]


class MonthlyRevenuePoint(BaseModel):
    month: str
    revenue: Decimal
    invoice_count: int
    payment_count: int


class BillingStatsResponse(BaseModel):
    invoices: InvoiceStats
    payments: PaymentStats
    monthly_revenue: list[MonthlyRevenuePoint]
