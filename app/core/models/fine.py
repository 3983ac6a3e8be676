"""Absence fines and their append-only payment history."""

import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.dates import utcnow
from app.core.enums import FineStatus, PaymentMethod
from app.db.session import Base

CENT = Decimal("0.01")


def to_cents(value) -> Decimal:
    """Round to the Numeric(12, 2) precision the amounts are stored at."""
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def derive_fine_status(paid_amount: Decimal, fine_amount: Decimal) -> FineStatus:
    """pending while nothing is paid, paid once paid covers the amount, partially_paid in between."""
    if paid_amount <= 0:
        return FineStatus.pending
    if paid_amount < fine_amount:
        return FineStatus.partially_paid
    return FineStatus.paid


class Fine(Base):
    """
    One fine per absent attendance record.
    pending_amount and status are derived; they are recomputed on every insert/update
    and must never be assigned directly.
    """

    __tablename__ = "fines"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", "date", name="uq_fine_student_class_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=False, index=True)
    attendance_id = Column(
        UUID(as_uuid=True),
        ForeignKey("attendance.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    date = Column(Date, nullable=False, index=True)
    fine_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    pending_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=FineStatus.pending.value)
    remarks = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    payments = relationship(
        "FinePayment",
        back_populates="fine",
        order_by="FinePayment.payment_date",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def recalculate(self) -> None:
        # Derive from stored precision so status and pending agree with the persisted amounts
        amount = to_cents(self.fine_amount)
        paid = to_cents(self.paid_amount)
        self.fine_amount = amount
        self.paid_amount = paid
        self.pending_amount = max(amount - paid, Decimal("0"))
        self.status = derive_fine_status(paid, amount).value


@event.listens_for(Fine, "before_insert")
@event.listens_for(Fine, "before_update")
def _recalculate_fine_balances(mapper, connection, target: Fine) -> None:
    target.recalculate()


class FinePayment(Base):
    """Payment history entry. Append-only audit trail: rows are never updated."""

    __tablename__ = "fine_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    fine_id = Column(UUID(as_uuid=True), ForeignKey("fines.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.cash.value)  # cash, online, cheque
    remarks = Column(Text, nullable=False, default="")
    received_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    fine = relationship("Fine", back_populates="payments")
    receiver = relationship("User", foreign_keys=[received_by])
