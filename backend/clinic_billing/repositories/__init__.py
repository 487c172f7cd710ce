from clinic_billing.repositories.appointment_repository import AppointmentRepository
from clinic_billing.repositories.billing_stats_repository import (
    BillingStatsRepository,
    LedgerSnapshot,
)
from clinic_billing.repositories.invoice_repository import InvoiceRepository
from clinic_billing.repositories.payment_repository import PaymentRepository

__all__ = [
    "AppointmentRepository",
    "BillingStatsRepository",
    "InvoiceRepository",
    "LedgerSnapshot",
    "PaymentRepository",
]
