"""
Reconcile absent attendance records with the fines table.

Creates the fines that best-effort accrual missed and re-aligns fine amounts with
the per-record legacy amount. Paid amounts and payment history are never touched.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import AttendanceStatus
from app.core.exceptions import InvalidArgumentError
from app.core.models import Attendance, Fine

from .schemas import FineSyncStats
from .service import _to_decimal, ensure_fine_for_absence

logger = logging.getLogger(__name__)


def target_amount(legacy_amount) -> Decimal:
    """Fine owed for one absent record: the record's own amount when set, else the configured penalty."""
    amount = _to_decimal(legacy_amount)
    return amount if amount > 0 else settings.absence_fine_amount


async def sync_fines(
    db: AsyncSession,
    class_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> FineSyncStats:
    if start_date and end_date and start_date > end_date:
        raise InvalidArgumentError("start_date must not be after end_date")

    stmt = (
        select(
            Attendance.id,
            Attendance.student_id,
            Attendance.class_id,
            Attendance.date,
            Attendance.fine_amount,
            Fine.id.label("fine_id"),
            Fine.fine_amount.label("current_amount"),
        )
        .outerjoin(Fine, Fine.attendance_id == Attendance.id)
        .where(Attendance.status == AttendanceStatus.ABSENT.value)
    )
    if class_id is not None:
        stmt = stmt.where(Attendance.class_id == class_id)
    if start_date is not None:
        stmt = stmt.where(Attendance.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Attendance.date <= end_date)
    rows = (await db.execute(stmt.order_by(Attendance.date, Attendance.id))).all()

    created = 0
    updated = 0
    for row in rows:
        amount = target_amount(row.fine_amount)
        if row.fine_id is None:
            fine = await ensure_fine_for_absence(db, row.id, row.student_id, row.class_id, row.date, amount=amount)
            # A fine found under (student, class, date) for another record is not ours to create
            if fine.attendance_id == row.id:
                created += 1
            continue
        if _to_decimal(row.current_amount) != amount:
            fine = await db.get(Fine, row.fine_id)
            fine.fine_amount = amount
            await db.commit()
            updated += 1
            logger.info("Fine %s amount set to %s", row.fine_id, amount)

    stats = FineSyncStats(
        total_absent_records=len(rows),
        fines_created=created,
        fines_updated=updated,
        existing_fines=len(rows) - created,
    )
    logger.info(
        "Fine sync done (class=%s, %s..%s): %d absent, %d created, %d updated",
        class_id,
        start_date,
        end_date,
        stats.total_absent_records,
        created,
        updated,
    )
    return stats
