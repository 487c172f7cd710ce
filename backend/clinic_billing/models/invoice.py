from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from clinic_billing.core.database import Base
from clinic_billing.models.shared import UUIDType, generate_uuid, utc_now


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    PAYPAL = "PAYPAL"
    CASH = "CASH"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    appointment_id = Column(
        UUIDType,
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
        index=True,
    )
    status = Column(String(20), nullable=False, default=InvoiceStatus.PENDING.value, index=True)

    # Stored with 4 decimal places, denominated in the derived currency
    amount = Column(Numeric(12, 4), nullable=False)

    payment_method = Column(String(20), nullable=True)
    payment_id = Column(UUIDType, nullable=True)

    due_date = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )

    appointment = relationship("Appointment", lazy="joined", innerjoin=True)

    __mapper_args__ = {"version_id_col": version}

    @property
    def currency(self) -> str:
        """Display currency, derived from the appointment modality on every read."""
        from clinic_billing.services.currency import currency_for_modality

        return currency_for_modality(self.appointment.modality)
