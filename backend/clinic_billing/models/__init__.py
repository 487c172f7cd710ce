from clinic_billing.models.appointment import (
    Appointment,
    AppointmentModality,
    AppointmentStatus,
)
from clinic_billing.models.invoice import Invoice, InvoiceStatus, PaymentMethod
from clinic_billing.models.payment import Payment, PaymentStatus

__all__ = [
    "Appointment",
    "AppointmentModality",
    "AppointmentStatus",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
