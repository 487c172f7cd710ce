"""Payment model for tracking settlement attempts against invoices."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, func

from clinic_billing.core.database import Base
from clinic_billing.models.shared import UUIDType, generate_uuid, utc_now


class PaymentStatus(str, Enum):
    """Payment status enum."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Payment(Base):
    """Payment model - the audit trail of settlement attempts.

    Payments outlive their invoice: deleting an invoice nulls ``invoice_id``
    and ``appointment_id`` keeps the record attributable.
    """

    __tablename__ = "payments"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    appointment_id = Column(UUIDType, nullable=False, index=True)

    amount = Column(Numeric(12, 4), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(20), nullable=False)

    # External gateway reference (generated for cash)
    payment_id = Column(String(255), nullable=True, index=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )
