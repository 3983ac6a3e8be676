from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.dates import to_utc_day


ATTENDANCE_STATUSES = ("present", "absent", "leave")

# Optional per-record fields with tri-state semantics:
# omitted -> keep stored value, null -> clear, string (even "") -> store as given.
DETAIL_FIELDS = ("remarks", "check_in_time", "check_out_time")


class AttendanceDetails(BaseModel):
    remarks: Optional[str] = None
    check_in_time: Optional[str] = Field(None, max_length=20, description="Free text, e.g. 09:05")
    check_out_time: Optional[str] = Field(None, max_length=20)

    def supplied_details(self) -> Dict[str, Optional[str]]:
        """Detail fields present in the request body (explicit null included)."""
        return {name: getattr(self, name) for name in DETAIL_FIELDS if name in self.model_fields_set}


# ----- Mark -----
class AttendanceMarkRequest(AttendanceDetails):
    """Mark attendance for a single student."""

    class_id: UUID
    student_id: UUID
    date: date
    status: str = Field(..., description="present, absent, leave")

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_day(cls, value):
        return to_utc_day(value)


class AttendanceBulkItem(AttendanceDetails):
    """One student in a bulk mark."""

    student_id: UUID
    status: str = Field(..., description="present, absent, leave")


class AttendanceBulkMarkRequest(BaseModel):
    """Bulk mark a class roster for one date."""

    class_id: UUID
    date: date
    records: List[AttendanceBulkItem] = Field(..., min_length=1)

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_day(cls, value):
        return to_utc_day(value)


class AttendanceUpdate(AttendanceDetails):
    """Partial update of one record. Omitted status keeps the current status."""

    status: Optional[str] = Field(None, description="present, absent, leave")


# ----- Responses -----
class AttendanceResponse(BaseModel):
    id: UUID
    class_id: UUID
    student_id: UUID
    date: date
    status: str
    taken_by: UUID
    remarks: str
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    fine_amount: Decimal
    fine_paid: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AttendanceMarkResponse(BaseModel):
    message: str
    attendance: AttendanceResponse


class BulkFailure(BaseModel):
    student_id: UUID
    reason: str


class BulkAttendanceResult(BaseModel):
    """success: newly inserted; updated: existing records overwritten; failed: rejected records."""

    success: List[UUID] = Field(default_factory=list)
    updated: List[UUID] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)


class BulkAttendanceResponse(BaseModel):
    message: str
    results: BulkAttendanceResult


class ClassAttendanceItem(BaseModel):
    student_id: UUID
    student_name: str
    status: str  # present | absent | leave | not-marked
    remarks: str = ""
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    taken_by: Optional[UUID] = None
    attendance_id: Optional[UUID] = None


class ClassAttendanceDay(BaseModel):
    class_id: UUID
    date: date
    total_students: int
    attendance: List[ClassAttendanceItem]


class StudentAttendanceStats(BaseModel):
    total: int
    present: int
    absent: int
    leave: int
    attendance_percentage: float


class StudentAttendanceHistory(BaseModel):
    student_id: UUID
    student_name: str
    records: List[AttendanceResponse]
    stats: StudentAttendanceStats
