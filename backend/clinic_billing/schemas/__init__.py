from clinic_billing.schemas.appointment import AppointmentCreate
from clinic_billing.schemas.billing_stats import (
    BillingStatsResponse,
    InvoiceStats,
    MethodBreakdown,
    MonthlyRevenuePoint,
    PaymentStats,
)
from clinic_billing.schemas.invoice import (
    DeleteInvoiceResponse,
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

__all__ = [
    "AppointmentCreate",
    "BillingStatsResponse",
    "DeleteInvoiceResponse",
    "InvoiceCreate",
    "InvoiceFilters",
    "InvoiceResponse",
    "InvoiceSortField",
    "InvoiceStats",
    "InvoiceUpdate",
    "MethodBreakdown",
    "MonthlyRevenuePoint",
    "PaginatedInvoicesResponse",
    "PaginationMeta",
    "PaymentCreate",
    "PaymentResponse",
    "PaymentStats",
    "SortOrder",
]
