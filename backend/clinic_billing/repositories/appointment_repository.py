from uuid import UUID

from sqlalchemy.orm import Session

from clinic_billing.models.appointment import Appointment
from clinic_billing.schemas.appointment import AppointmentCreate


class AppointmentRepository:
    """Local mirror of appointments pushed by the scheduling collaborator."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, appointment_id: UUID) -> Appointment | None:
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def create(self, data: AppointmentCreate) -> Appointment:
        kwargs = data.model_dump(exclude_none=True)
        kwargs["modality"] = data.modality.value
        kwargs["status"] = data.status.value
        appointment = Appointment(**kwargs)
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        return appointment
