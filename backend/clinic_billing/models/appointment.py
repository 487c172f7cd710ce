"""Appointment model - local mirror of the scheduling collaborator's records."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, Numeric, String, func

from clinic_billing.core.database import Base
from clinic_billing.models.shared import UUIDType, generate_uuid, utc_now


class AppointmentModality(str, Enum):
    IN_PERSON = "IN_PERSON"
    VIRTUAL = "VIRTUAL"


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# Appointments in these statuses can be invoiced
BILLABLE_APPOINTMENT_STATUSES = frozenset(
    {AppointmentStatus.CONFIRMED.value, AppointmentStatus.COMPLETED.value}
)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    date = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, nullable=False, default=30)  # minutes
    modality = Column(String(20), nullable=False, default=AppointmentModality.IN_PERSON.value)
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)

    patient_id = Column(UUIDType, nullable=False, index=True)
    doctor_id = Column(UUIDType, nullable=False, index=True)
    patient_name = Column(String(255), nullable=True)
    doctor_name = Column(String(255), nullable=True)

    price = Column(Numeric(12, 4), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )

    @property
    def is_billable(self) -> bool:
        return self.status in BILLABLE_APPOINTMENT_STATUSES
