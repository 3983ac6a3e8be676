"""Fines router: payments, clearing, summaries and reconciliation."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin, require_staff
from app.auth.schemas import CurrentUser
from app.db.session import get_db

from . import service, sync
from .schemas import (
    ClearFinesRequest,
    ClearFinesResponse,
    FinePaymentHistory,
    FinePaymentRequest,
    FinePaymentResponse,
    FineSyncRequest,
    FineSyncResponse,
    StudentFineSummary,
)

router = APIRouter(prefix="/api/v1/fines", tags=["fines"])


# --- Payments ---
@router.patch("/{fine_id}/payment", response_model=FinePaymentResponse)
async def apply_payment(
    fine_id: UUID,
    payload: FinePaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> FinePaymentResponse:
    fine = await service.apply_payment(db, fine_id, payload, current_user.id)
    return FinePaymentResponse(
        message="Payment recorded successfully",
        fine=fine,
        remaining_balance=fine.pending_amount,
    )


@router.get(
    "/{fine_id}/payment-history",
    response_model=FinePaymentHistory,
    dependencies=[Depends(get_current_user)],
)
async def get_payment_history(
    fine_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> FinePaymentHistory:
    return await service.get_payment_history(db, fine_id)


# --- Student ---
@router.get(
    "/student/{student_id}/summary",
    response_model=StudentFineSummary,
    dependencies=[Depends(get_current_user)],
)
async def get_student_fine_summary(
    student_id: UUID,
    class_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
) -> StudentFineSummary:
    return await service.get_student_fine_summary(db, student_id, class_id)


@router.post("/student/{student_id}/clear", response_model=ClearFinesResponse)
async def clear_student_fines(
    student_id: UUID,
    payload: Optional[ClearFinesRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
) -> ClearFinesResponse:
    """Pay off every open fine of the student in full."""
    result = await service.clear_student_fines(db, student_id, payload or ClearFinesRequest(), current_user.id)
    return ClearFinesResponse(
        message=f"Cleared {result.cleared_fines} fine(s)",
        **result.model_dump(),
    )


# --- Reconciliation ---
@router.post("/sync", response_model=FineSyncResponse, dependencies=[Depends(require_admin)])
async def sync_fines(
    payload: Optional[FineSyncRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> FineSyncResponse:
    """Create missing fines for absent records and re-align fine amounts."""
    payload = payload or FineSyncRequest()
    stats = await sync.sync_fines(db, payload.class_id, payload.start_date, payload.end_date)
    return FineSyncResponse(message="Fine sync completed", stats=stats)
