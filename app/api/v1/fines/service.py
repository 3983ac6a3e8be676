"""Fine ledger: absence fine creation, payments, clearing and reads."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.config import settings
from app.core.dates import utcnow
from app.core.enums import FineStatus
from app.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from app.core.models import Fine, FinePayment
from app.core.models.fine import to_cents

from .schemas import (
    ClearFinesRequest,
    ClearFinesResult,
    FinePaymentEntry,
    FinePaymentHistory,
    FinePaymentRequest,
    FineResponse,
    FineSummaryTotals,
    StudentFineSummary,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = (FineStatus.pending.value, FineStatus.partially_paid.value)


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def _fine_to_response(fine: Fine) -> FineResponse:
    return FineResponse(
        id=fine.id,
        student_id=fine.student_id,
        class_id=fine.class_id,
        attendance_id=fine.attendance_id,
        date=fine.date,
        fine_amount=_to_decimal(fine.fine_amount),
        paid_amount=_to_decimal(fine.paid_amount),
        pending_amount=_to_decimal(fine.pending_amount),
        status=fine.status,
        remarks=fine.remarks or "",
        payment_history=[FinePaymentEntry.model_validate(p) for p in fine.payments],
        created_at=fine.created_at,
        updated_at=fine.updated_at,
    )


async def _load_fine(db: AsyncSession, fine_id: UUID) -> Optional[Fine]:
    result = await db.execute(
        select(Fine).where(Fine.id == fine_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_fine(db: AsyncSession, fine_id: UUID) -> FineResponse:
    fine = await _load_fine(db, fine_id)
    if not fine:
        raise NotFoundError("Fine record not found")
    return _fine_to_response(fine)


# --- Creation ---
async def _find_existing_fine(
    db: AsyncSession,
    attendance_id: UUID,
    student_id: UUID,
    class_id: UUID,
    fine_date: date,
) -> Optional[Fine]:
    """A fine linked to the attendance record, or one already keyed by (student, class, date)."""
    result = await db.execute(
        select(Fine)
        .where(
            or_(
                Fine.attendance_id == attendance_id,
                and_(Fine.student_id == student_id, Fine.class_id == class_id, Fine.date == fine_date),
            )
        )
        .limit(1)
    )
    return result.scalars().first()


async def ensure_fine_for_absence(
    db: AsyncSession,
    attendance_id: UUID,
    student_id: UUID,
    class_id: UUID,
    fine_date: date,
    amount: Optional[Decimal] = None,
) -> Fine:
    """
    Idempotent: an existing fine is returned untouched. The lookup is only an optimization;
    the unique constraints decide, and losing an insert race returns the winner's fine.
    """
    existing = await _find_existing_fine(db, attendance_id, student_id, class_id, fine_date)
    if existing is not None:
        return existing

    fine = Fine(
        student_id=student_id,
        class_id=class_id,
        attendance_id=attendance_id,
        date=fine_date,
        fine_amount=_to_decimal(amount) if amount is not None else settings.absence_fine_amount,
        paid_amount=Decimal("0"),
        remarks="Fine for absent day",
        payments=[],
    )
    db.add(fine)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _find_existing_fine(db, attendance_id, student_id, class_id, fine_date)
        if existing is None:
            raise
        logger.warning(
            "Fine for attendance %s was created concurrently; using fine %s", attendance_id, existing.id
        )
        return existing
    logger.info("Created fine %s of %s for student %s on %s", fine.id, fine.fine_amount, student_id, fine_date)
    return fine


# --- Payments ---
async def apply_payment(
    db: AsyncSession,
    fine_id: UUID,
    payload: FinePaymentRequest,
    received_by: Optional[UUID],
) -> FineResponse:
    """Apply a partial or full payment. The only code path that moves paid_amount forward."""
    amount = _to_decimal(payload.payment_amount)
    if amount <= 0:
        raise InvalidArgumentError("payment_amount must be greater than 0")
    if amount != to_cents(amount):
        raise InvalidArgumentError(
            "payment_amount must not have more than 2 decimal places",
            details={"attempted": str(amount)},
        )

    fine = (
        await db.execute(select(Fine).where(Fine.id == fine_id).with_for_update())
    ).scalar_one_or_none()
    if not fine:
        raise NotFoundError("Fine record not found")
    if fine.status == FineStatus.paid.value:
        raise ConflictError("Fine is already fully paid")
    pending = _to_decimal(fine.pending_amount)
    if amount > pending:
        raise InvalidArgumentError(
            f"Payment amount (Rs.{amount}) exceeds pending amount (Rs.{pending})",
            details={"attempted": str(amount), "available": str(pending)},
        )

    fine.paid_amount = _to_decimal(fine.paid_amount) + amount
    fine.payments.append(FinePayment(
        payment_date=utcnow(),
        amount=amount,
        payment_method=payload.payment_method.value,
        remarks=payload.remarks or "",
        received_by=received_by,
    ))
    await db.commit()
    logger.info("Payment of %s applied to fine %s by %s", amount, fine_id, received_by)
    return await get_fine(db, fine_id)


async def clear_student_fines(
    db: AsyncSession,
    student_id: UUID,
    payload: ClearFinesRequest,
    received_by: Optional[UUID],
) -> ClearFinesResult:
    """
    Pay off every open fine of the student (optionally one class) in full.
    Each fine commits on its own: a failure partway leaves the earlier ones paid.
    """
    student = await db.get(User, student_id)
    if not student:
        raise NotFoundError("Student not found")
    stmt = select(Fine).where(Fine.student_id == student_id, Fine.status.in_(OPEN_STATUSES))
    if payload.class_id is not None:
        stmt = stmt.where(Fine.class_id == payload.class_id)
    fines = (await db.execute(stmt.order_by(Fine.date))).scalars().all()
    if not fines:
        raise NotFoundError("No pending fines found for this student")

    payment_date = utcnow()
    amount_cleared = Decimal("0")
    for fine in fines:
        amount = _to_decimal(fine.pending_amount)
        fine.paid_amount = _to_decimal(fine.paid_amount) + amount
        fine.payments.append(FinePayment(
            payment_date=payment_date,
            amount=amount,
            payment_method=payload.payment_method.value,
            remarks=payload.remarks or "",
            received_by=received_by,
        ))
        await db.commit()
        amount_cleared += amount

    logger.info("Cleared %d fine(s) totalling %s for student %s", len(fines), amount_cleared, student_id)
    summary = await get_student_fine_summary(db, student_id, payload.class_id)
    return ClearFinesResult(
        cleared_fines=len(fines),
        amount_cleared=amount_cleared,
        updated_summary=summary.summary,
    )


# --- Reads ---
def _summarize(fines: List[Fine]) -> FineSummaryTotals:
    totals = FineSummaryTotals(total_records=len(fines))
    for fine in fines:
        totals.total_fine += _to_decimal(fine.fine_amount)
        totals.total_paid += _to_decimal(fine.paid_amount)
        totals.total_pending += _to_decimal(fine.pending_amount)
        if fine.status == FineStatus.paid.value:
            totals.paid_records += 1
        else:
            totals.pending_records += 1
    return totals


async def get_student_fine_summary(
    db: AsyncSession,
    student_id: UUID,
    class_id: Optional[UUID] = None,
) -> StudentFineSummary:
    student = await db.get(User, student_id)
    if not student:
        raise NotFoundError("Student not found")
    stmt = select(Fine).where(Fine.student_id == student_id)
    if class_id is not None:
        stmt = stmt.where(Fine.class_id == class_id)
    stmt = stmt.order_by(Fine.date.desc()).execution_options(populate_existing=True)
    fines = (await db.execute(stmt)).scalars().all()
    return StudentFineSummary(
        student_id=student.id,
        student_name=student.full_name,
        class_id=class_id,
        summary=_summarize(fines),
        fines=[_fine_to_response(f) for f in fines],
    )


async def get_payment_history(db: AsyncSession, fine_id: UUID) -> FinePaymentHistory:
    fine = await _load_fine(db, fine_id)
    if not fine:
        raise NotFoundError("Fine record not found")
    student = await db.get(User, fine.student_id)
    return FinePaymentHistory(
        fine_id=fine.id,
        student_id=fine.student_id,
        student_name=student.full_name if student else None,
        fine_amount=_to_decimal(fine.fine_amount),
        paid_amount=_to_decimal(fine.paid_amount),
        pending_amount=_to_decimal(fine.pending_amount),
        status=fine.status,
        payment_history=[FinePaymentEntry.model_validate(p) for p in fine.payments],
    )
