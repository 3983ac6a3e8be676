"""
Bulk attendance for one class and one date.

Roster and existing records are preloaded with one query each, valid records are written
as one multi-row INSERT plus one bulk UPDATE by primary key, and fines for absentees are
accrued afterwards, one by one, on the same best-effort terms as a single mark.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Set
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import StudentProfile
from app.core.exceptions import ConflictError
from app.core.models import Attendance

from .schemas import ATTENDANCE_STATUSES, AttendanceBulkMarkRequest, BulkAttendanceResult, BulkFailure
from .service import ABSENT, accrue_fine, detail_values, get_class_or_404, legacy_fine_fields

logger = logging.getLogger(__name__)

INVALID_STATUS_REASON = "Invalid status. Must be: present, absent, or leave"
NOT_IN_CLASS_REASON = "Student not found or does not belong to this class"
DUPLICATE_REASON = "Duplicate record for student in request"


async def _load_existing(db: AsyncSession, class_id: UUID, day: date, student_ids: Set[UUID]) -> Dict[UUID, Any]:
    """Records already stored for the day, keyed by student."""
    rows = (
        await db.execute(
            select(Attendance.id, Attendance.student_id, Attendance.status).where(
                Attendance.class_id == class_id,
                Attendance.date == day,
                Attendance.student_id.in_(list(student_ids)),
            )
        )
    ).all()
    return {row.student_id: row for row in rows}

async def mark_attendance_bulk(
    db: AsyncSession,
    actor_id: UUID,
    payload: AttendanceBulkMarkRequest,
) -> BulkAttendanceResult:
    await get_class_or_404(db, payload.class_id)
    day = payload.date
    requested_ids = {r.student_id for r in payload.records}

    roster = set(
        (
            await db.execute(
                select(StudentProfile.user_id).where(
                    StudentProfile.class_id == payload.class_id,
                    StudentProfile.status == "active",
                )
            )
        ).scalars().all()
    )
    existing = await _load_existing(db, payload.class_id, day, requested_ids)

    result = BulkAttendanceResult()
    inserts: List[Dict[str, Any]] = []
    updates: List[Dict[str, Any]] = []
    updated_students: Dict[UUID, UUID] = {}
    seen = set()

    for item in payload.records:
        if item.status not in ATTENDANCE_STATUSES:
            result.failed.append(BulkFailure(student_id=item.student_id, reason=INVALID_STATUS_REASON))
            continue
        if item.student_id not in roster:
            result.failed.append(BulkFailure(student_id=item.student_id, reason=NOT_IN_CLASS_REASON))
            continue
        if item.student_id in seen:
            result.failed.append(BulkFailure(student_id=item.student_id, reason=DUPLICATE_REASON))
            continue
        seen.add(item.student_id)

        details = detail_values(item.supplied_details())
        current = existing.get(item.student_id)
        if current is not None:
            values = {"id": current.id, "status": item.status, "taken_by": actor_id, **details}
            if current.status != item.status:
                values.update(legacy_fine_fields(item.status))
            updates.append(values)
            updated_students[current.id] = item.student_id
            result.updated.append(item.student_id)
        else:
            values = {
                "id": uuid.uuid4(),
                "class_id": payload.class_id,
                "student_id": item.student_id,
                "date": day,
                "status": item.status,
                "taken_by": actor_id,
                "remarks": details.get("remarks", ""),
                "check_in_time": details.get("check_in_time"),
                "check_out_time": details.get("check_out_time"),
                "fine_paid": False,
            }
            values.update(legacy_fine_fields(item.status))
            inserts.append(values)
            result.success.append(item.student_id)

    try:
        if inserts:
            await db.execute(insert(Attendance), inserts)
        if updates:
            await db.execute(update(Attendance), updates)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Attendance already marked for one or more students on this date")

    absentees = [(v["id"], v["student_id"]) for v in inserts if v["status"] == ABSENT]
    absentees += [(v["id"], updated_students[v["id"]]) for v in updates if v["status"] == ABSENT]
    failed_fines = 0
    for attendance_id, student_id in absentees:
        if not await accrue_fine(db, attendance_id, student_id, payload.class_id, day):
            failed_fines += 1

    logger.info(
        "Bulk attendance for class %s on %s: %d inserted, %d updated, %d rejected, %d absent (%d fine failures)",
        payload.class_id,
        day,
        len(result.success),
        len(result.updated),
        len(result.failed),
        len(absentees),
        failed_fines,
    )
    return result
