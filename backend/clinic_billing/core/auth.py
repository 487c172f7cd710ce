from dataclasses import dataclass
from enum import Enum
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request

from clinic_billing.core.config import settings
from clinic_billing.models.invoice import Invoice

JWT_ALGORITHM = "HS256"


class ActorRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: ActorRole
    doctor_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_doctor(self) -> bool:
        return self.role == ActorRole.DOCTOR


def create_access_token(
    user_id: str, role: ActorRole | str, doctor_id: UUID | None = None
) -> str:
    """Issue a token the way the auth service does; used by tooling and tests."""
    payload: dict[str, str] = {"sub": user_id, "role": ActorRole(role).value}
    if doctor_id is not None:
        payload["doctor_id"] = str(doctor_id)
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=JWT_ALGORITHM)


def get_current_actor(request: Request) -> Actor:
    """Resolve the calling actor from the Bearer token in the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Authorization header is required")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = auth_header[7:]
    if not token:
        raise HTTPException(status_code=401, detail="Token is required")

    try:
        claims = jwt.decode(token, settings.AUTH_JWT_SECRET, algorithms=[JWT_ALGORITHM])
        role = ActorRole(claims["role"])
        doctor_id = UUID(claims["doctor_id"]) if claims.get("doctor_id") else None
        user_id = str(claims["sub"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired") from None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token") from None

    if role == ActorRole.DOCTOR and doctor_id is None:
        raise HTTPException(status_code=401, detail="Doctor token is missing doctor_id")

    return Actor(user_id=user_id, role=role, doctor_id=doctor_id)


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return actor


def require_doctor(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_doctor:
        raise HTTPException(status_code=403, detail="Doctor access required")
    return actor


def require_staff(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Admins and doctors; patients never reach the billing surface."""
    if not (actor.is_admin or actor.is_doctor):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return actor


def ensure_invoice_access(actor: Actor, invoice: Invoice) -> None:
    """Doctors only see invoices for their own appointments."""
    if actor.is_admin:
        return
    if actor.is_doctor and invoice.appointment.doctor_id == actor.doctor_id:
        return
    raise HTTPException(status_code=403, detail="Not allowed to access this invoice")
