from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_billing.core.auth import Actor, require_admin, require_doctor
from clinic_billing.core.database import get_db
from clinic_billing.schemas.billing_stats import BillingStatsResponse
from clinic_billing.services.billing_stats import BillingStatsService

router = APIRouter()


@router.get(
    "/stats",
    response_model=BillingStatsResponse,
    summary="Get clinic-wide billing statistics",
    responses={
        401: {"description": "Unauthorized – invalid or missing token"},
        403: {"description": "Admin access required"},
    },
)
async def get_billing_stats(
    months: int | None = Query(default=None, ge=1, le=36),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> BillingStatsResponse:
    """Invoice and payment totals plus the monthly revenue series."""
    return BillingStatsService(db).get_stats(months=months)


@router.get(
    "/doctor/stats",
    response_model=BillingStatsResponse,
    summary="Get billing statistics for the calling doctor",
    responses={
        401: {"description": "Unauthorized – invalid or missing token"},
        403: {"description": "Doctor access required"},
    },
)
async def get_doctor_billing_stats(
    months: int | None = Query(default=None, ge=1, le=36),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_doctor),
) -> BillingStatsResponse:
    return BillingStatsService(db).get_stats(doctor_id=actor.doctor_id, months=months)
