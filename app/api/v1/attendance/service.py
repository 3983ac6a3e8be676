"""Attendance reconciler: single mark, update and delete, with best-effort fine accrual for absences."""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fines import service as fines_service
from app.auth.models import StudentProfile, User
from app.core.config import settings
from app.core.enums import AttendanceStatus
from app.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from app.core.models import Attendance, Fine, SchoolClass

from .schemas import (
    ATTENDANCE_STATUSES,
    AttendanceMarkRequest,
    AttendanceResponse,
    AttendanceUpdate,
    ClassAttendanceDay,
    ClassAttendanceItem,
    StudentAttendanceHistory,
    StudentAttendanceStats,
)

logger = logging.getLogger(__name__)

ABSENT = AttendanceStatus.ABSENT.value


# ----- Helpers shared with the bulk batcher -----
def validate_status(value: Optional[str]) -> str:
    if value not in ATTENDANCE_STATUSES:
        raise InvalidArgumentError("Status must be one of: present, absent, leave")
    return value


def legacy_fine_fields(status_value: str) -> Dict[str, Any]:
    """Legacy per-record fine columns, rewritten whenever the status is set or changes."""
    if status_value == ABSENT:
        return {"fine_amount": settings.absence_fine_amount}
    return {"fine_amount": Decimal("0"), "fine_paid": False}


def detail_values(supplied: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    """Map supplied detail fields to column values; explicit null clears (remarks back to "")."""
    values = dict(supplied)
    if "remarks" in values and values["remarks"] is None:
        values["remarks"] = ""
    return values


async def get_class_or_404(db: AsyncSession, class_id: UUID) -> SchoolClass:
    school_class = await db.get(SchoolClass, class_id)
    if not school_class:
        raise NotFoundError("Class not found")
    return school_class


async def _ensure_enrolled(db: AsyncSession, class_id: UUID, student_id: UUID) -> None:
    result = await db.execute(
        select(StudentProfile.id).where(
            StudentProfile.user_id == student_id,
            StudentProfile.class_id == class_id,
            StudentProfile.status == "active",
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Student not found or does not belong to this class")


async def accrue_fine(
    db: AsyncSession,
    attendance_id: UUID,
    student_id: UUID,
    class_id: UUID,
    day: date,
) -> bool:
    """
    Make sure an absent record has its fine. Never raises: the attendance write has
    already committed and must stand even when fine creation fails. The sync job
    repairs whatever is missed here.
    """
    try:
        fine = await fines_service.ensure_fine_for_absence(db, attendance_id, student_id, class_id, day)
    except Exception:
        await db.rollback()
        logger.exception(
            "Fine accrual failed for attendance %s (student %s, %s)", attendance_id, student_id, day
        )
        return False
    logger.info("Fine %s in place for absent student %s on %s", fine.id, student_id, day)
    return True


# ----- Mark / update / delete -----
async def _find_attendance(db: AsyncSession, student_id: UUID, class_id: UUID, day: date) -> Optional[Attendance]:
    result = await db.execute(
        select(Attendance).where(
            Attendance.student_id == student_id,
            Attendance.class_id == class_id,
            Attendance.date == day,
        )
    )
    return result.scalar_one_or_none()


async def mark_attendance(
    db: AsyncSession,
    actor_id: UUID,
    payload: AttendanceMarkRequest,
) -> Tuple[AttendanceResponse, bool]:
    """Create or overwrite the record for (student, class, day). Returns (record, created)."""
    status_value = validate_status(payload.status)
    await get_class_or_404(db, payload.class_id)
    await _ensure_enrolled(db, payload.class_id, payload.student_id)

    day = payload.date
    existing = await _find_attendance(db, payload.student_id, payload.class_id, day)
    details = detail_values(payload.supplied_details())

    if existing is None:
        record = Attendance(
            class_id=payload.class_id,
            student_id=payload.student_id,
            date=day,
            status=status_value,
            taken_by=actor_id,
            remarks=details.get("remarks", ""),
            check_in_time=details.get("check_in_time"),
            check_out_time=details.get("check_out_time"),
            **legacy_fine_fields(status_value),
        )
        db.add(record)
    else:
        record = existing
        if record.status != status_value:
            for name, value in legacy_fine_fields(status_value).items():
                setattr(record, name, value)
        record.status = status_value
        record.taken_by = actor_id
        for name, value in details.items():
            setattr(record, name, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Attendance already marked for this student on this date")

    attendance_id = record.id
    if status_value == ABSENT:
        await accrue_fine(db, attendance_id, payload.student_id, payload.class_id, day)

    await db.refresh(record)
    return AttendanceResponse.model_validate(record), existing is None


async def update_attendance(
    db: AsyncSession,
    actor_id: UUID,
    attendance_id: UUID,
    payload: AttendanceUpdate,
) -> AttendanceResponse:
    """Partial update. Fine accrual only on a transition into absent."""
    record = await db.get(Attendance, attendance_id)
    if not record:
        raise NotFoundError("Attendance record not found")
    if payload.status is not None:
        validate_status(payload.status)

    previous_status = record.status
    if payload.status is not None and payload.status != previous_status:
        record.status = payload.status
        for name, value in legacy_fine_fields(payload.status).items():
            setattr(record, name, value)
    for name, value in detail_values(payload.supplied_details()).items():
        setattr(record, name, value)
    record.taken_by = actor_id
    await db.commit()

    if record.status == ABSENT and previous_status != ABSENT:
        await accrue_fine(db, record.id, record.student_id, record.class_id, record.date)

    await db.refresh(record)
    return AttendanceResponse.model_validate(record)


async def delete_attendance(db: AsyncSession, attendance_id: UUID) -> int:
    """Delete a record and every fine linked to it. Returns the number of fines removed."""
    record = await db.get(Attendance, attendance_id)
    if not record:
        raise NotFoundError("Attendance record not found")
    fines = (await db.execute(select(Fine).where(Fine.attendance_id == attendance_id))).scalars().all()
    for fine in fines:
        await db.delete(fine)
    await db.flush()
    await db.delete(record)
    await db.commit()
    if fines:
        logger.info("Deleted %d fine(s) with attendance %s", len(fines), attendance_id)
    return len(fines)


# ----- Reads -----
async def get_class_attendance(db: AsyncSession, class_id: UUID, day: date) -> ClassAttendanceDay:
    """Roster of the class with each student's mark for the day ('not-marked' when absent from the table)."""
    await get_class_or_404(db, class_id)
    roster = (
        await db.execute(
            select(User.id, User.full_name)
            .join(StudentProfile, StudentProfile.user_id == User.id)
            .where(StudentProfile.class_id == class_id, StudentProfile.status == "active")
            .order_by(User.full_name)
        )
    ).all()
    records = (
        await db.execute(
            select(Attendance).where(Attendance.class_id == class_id, Attendance.date == day)
        )
    ).scalars().all()
    by_student = {a.student_id: a for a in records}

    items = []
    for student_id, full_name in roster:
        att = by_student.get(student_id)
        items.append(ClassAttendanceItem(
            student_id=student_id,
            student_name=full_name,
            status=att.status if att else "not-marked",
            remarks=(att.remarks or "") if att else "",
            check_in_time=att.check_in_time if att else None,
            check_out_time=att.check_out_time if att else None,
            taken_by=att.taken_by if att else None,
            attendance_id=att.id if att else None,
        ))
    return ClassAttendanceDay(class_id=class_id, date=day, total_students=len(roster), attendance=items)


async def get_student_attendance(
    db: AsyncSession,
    student_id: UUID,
    class_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> StudentAttendanceHistory:
    student = await db.get(User, student_id)
    if not student:
        raise NotFoundError("Student not found")
    stmt = select(Attendance).where(Attendance.student_id == student_id)
    if class_id is not None:
        stmt = stmt.where(Attendance.class_id == class_id)
    if start_date is not None:
        stmt = stmt.where(Attendance.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Attendance.date <= end_date)
    records = (await db.execute(stmt.order_by(Attendance.date.desc()))).scalars().all()

    counts = {s: 0 for s in ATTENDANCE_STATUSES}
    for a in records:
        counts[a.status] = counts.get(a.status, 0) + 1
    total = len(records)
    percentage = round(counts["present"] / total * 100, 2) if total else 0.0
    return StudentAttendanceHistory(
        student_id=student.id,
        student_name=student.full_name,
        records=[AttendanceResponse.model_validate(a) for a in records],
        stats=StudentAttendanceStats(
            total=total,
            present=counts["present"],
            absent=counts["absent"],
            leave=counts["leave"],
            attendance_percentage=percentage,
        ),
    )
