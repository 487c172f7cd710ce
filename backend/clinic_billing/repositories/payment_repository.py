"""Payment repository for data access."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from clinic_billing.models.invoice import PaymentMethod
from clinic_billing.models.payment import Payment, PaymentStatus


class PaymentRepository:
    """Repository for Payment model. Writes flush; the caller commits."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_invoice(self, invoice_id: UUID) -> list[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.invoice_id == invoice_id)
            .order_by(Payment.created_at.asc())
            .all()
        )

    def create(
        self,
        invoice_id: UUID,
        appointment_id: UUID,
        amount: Decimal,
        currency: str,
        payment_method: PaymentMethod,
        status: PaymentStatus,
        payment_id: str | None = None,
        failure_reason: str | None = None,
    ) -> Payment:
        payment = Payment(
            invoice_id=invoice_id,
            appointment_id=appointment_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method.value,
            status=status.value,
            payment_id=payment_id,
            failure_reason=failure_reason,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def mark_refunded(self, invoice_id: UUID) -> int:
        """Mark the completed payments of an invoice as refunded."""
        payments = (
            self.db.query(Payment)
            .filter(
                Payment.invoice_id == invoice_id,
                Payment.status == PaymentStatus.COMPLETED.value,
            )
            .all()
        )
        for payment in payments:
            payment.status = PaymentStatus.REFUNDED.value  # type: ignore[assignment]
        self.db.flush()
        return len(payments)

    def detach_from_invoice(self, invoice_id: UUID) -> int:
        """Keep payments as the audit trail when their invoice is deleted."""
        payments = self.db.query(Payment).filter(Payment.invoice_id == invoice_id).all()
        for payment in payments:
            payment.invoice_id = None  # type: ignore[assignment]
        self.db.flush()
        return len(payments)
