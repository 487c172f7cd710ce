from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from clinic_billing.models.appointment import AppointmentModality, AppointmentStatus


class AppointmentCreate(BaseModel):
    """Appointment data as received from the scheduling collaborator."""

    id: UUID | None = None
    date: datetime
    duration: int = Field(default=30, gt=0)
    modality: AppointmentModality = AppointmentModality.IN_PERSON
    status: AppointmentStatus = AppointmentStatus.PENDING
    patient_id: UUID
    doctor_id: UUID
    patient_name: str | None = None
    doctor_name: str | None = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
