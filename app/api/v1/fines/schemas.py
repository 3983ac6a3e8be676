from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import FineStatus, PaymentMethod


# --- Requests ---
class FinePaymentRequest(BaseModel):
    # Sign and precision (whole cents) are checked by the ledger
    payment_amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.cash
    remarks: Optional[str] = None


class ClearFinesRequest(BaseModel):
    class_id: Optional[UUID] = None
    payment_method: PaymentMethod = PaymentMethod.cash
    remarks: Optional[str] = None


class FineSyncRequest(BaseModel):
    class_id: Optional[UUID] = None
    start_date: Optional[date] = Field(None, description="Inclusive")
    end_date: Optional[date] = Field(None, description="Inclusive")


# --- Fine ---
class FinePaymentEntry(BaseModel):
    id: UUID
    payment_date: datetime
    amount: Decimal
    payment_method: PaymentMethod
    remarks: str = ""
    received_by: Optional[UUID] = None

    class Config:
        from_attributes = True


class FineResponse(BaseModel):
    id: UUID
    student_id: UUID
    class_id: UUID
    attendance_id: UUID
    date: date
    fine_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    status: FineStatus
    remarks: str = ""
    payment_history: List[FinePaymentEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class FinePaymentResponse(BaseModel):
    message: str
    fine: FineResponse
    remaining_balance: Decimal


class FinePaymentHistory(BaseModel):
    fine_id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    fine_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    status: FineStatus
    payment_history: List[FinePaymentEntry]


# --- Student summary / clear ---
class FineSummaryTotals(BaseModel):
    total_fine: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_pending: Decimal = Decimal("0")
    total_records: int = 0
    pending_records: int = 0
    paid_records: int = 0


class StudentFineSummary(BaseModel):
    student_id: UUID
    student_name: str
    class_id: Optional[UUID] = None
    summary: FineSummaryTotals
    fines: List[FineResponse]


class ClearFinesResult(BaseModel):
    cleared_fines: int
    amount_cleared: Decimal
    updated_summary: FineSummaryTotals


class ClearFinesResponse(ClearFinesResult):
    message: str


# --- Sync ---
class FineSyncStats(BaseModel):
    total_absent_records: int
    fines_created: int
    fines_updated: int
    existing_fines: int


class FineSyncResponse(BaseModel):
    message: str
    stats: FineSyncStats
