from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from clinic_billing.models.invoice import PaymentMethod
from clinic_billing.models.payment import PaymentStatus


class PaymentCreate(BaseModel):
    """A settlement attempt reported against an invoice."""

    amount: Decimal = Field(ge=0)
    payment_method: PaymentMethod
    status: PaymentStatus = PaymentStatus.COMPLETED
    payment_id: str | None = Field(default=None, max_length=255)
    failure_reason: str | None = None


class PaymentResponse(BaseModel):
    id: UUID
    invoice_id: UUID | None
    appointment_id: UUID
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    payment_id: str | None
    failure_reason: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
