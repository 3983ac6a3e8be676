"""Attendance API router."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_staff
from app.auth.schemas import CurrentUser
from app.db.session import get_db

from . import bulk, service
from .schemas import (
    AttendanceBulkMarkRequest,
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    AttendanceUpdate,
    BulkAttendanceResponse,
    ClassAttendanceDay,
    StudentAttendanceHistory,
)

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


@router.post(
    "/mark",
    response_model=AttendanceMarkResponse,
    status_code=status.HTTP_201_CREATED,
)
async def mark_attendance(
    payload: AttendanceMarkRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
):
    """Mark one student. 201 when the record is new, 200 when an existing mark is overwritten."""
    record, created = await service.mark_attendance(db, current_user.id, payload)
    if not created:
        response.status_code = status.HTTP_200_OK
        return {"message": "Attendance updated successfully", "attendance": record}
    return {"message": "Attendance marked successfully", "attendance": record}


@router.post("/mark-bulk", response_model=BulkAttendanceResponse)
async def mark_attendance_bulk(
    payload: AttendanceBulkMarkRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
):
    """Mark a class roster for one date. Invalid records are reported, the rest are written."""
    results = await bulk.mark_attendance_bulk(db, current_user.id, payload)
    return {"message": "Bulk attendance processed", "results": results}


@router.get("/class", response_model=ClassAttendanceDay, dependencies=[Depends(require_staff)])
async def get_class_attendance(
    class_id: UUID,
    att_date: date = Query(..., alias="date", description="Attendance date"),
    db: AsyncSession = Depends(get_db),
):
    return await service.get_class_attendance(db, class_id, att_date)


@router.get(
    "/student/{student_id}",
    response_model=StudentAttendanceHistory,
    dependencies=[Depends(get_current_user)],
)
async def get_student_attendance(
    student_id: UUID,
    class_id: Optional[UUID] = None,
    start_date: Optional[date] = Query(None, description="Inclusive"),
    end_date: Optional[date] = Query(None, description="Inclusive"),
    db: AsyncSession = Depends(get_db),
):
    """Attendance history of a student, newest first, with stats."""
    return await service.get_student_attendance(db, student_id, class_id, start_date, end_date)


@router.put("/{attendance_id}", response_model=AttendanceMarkResponse)
async def update_attendance(
    attendance_id: UUID,
    payload: AttendanceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
):
    record = await service.update_attendance(db, current_user.id, attendance_id, payload)
    return {"message": "Attendance updated successfully", "attendance": record}


@router.delete("/{attendance_id}", dependencies=[Depends(require_staff)])
async def delete_attendance(
    attendance_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Delete a record together with its fines."""
    deleted_fines = await service.delete_attendance(db, attendance_id)
    return {"message": "Attendance deleted successfully", "deleted_fines": deleted_fines}
