import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.dates import utcnow
from app.db.session import Base


class Attendance(Base):
    """Student attendance: one per student per class per UTC day."""

    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", "date", name="uq_attendance_student_class_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="present")  # present, absent, leave
    taken_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    remarks = Column(Text, nullable=False, default="")
    check_in_time = Column(String(20), nullable=True)
    check_out_time = Column(String(20), nullable=True)

    # Legacy per-record fine fields, superseded by Fine. Kept in sync on status change;
    # the fine sync job compares against fine_amount.
    fine_amount = Column(Numeric(12, 2), nullable=False, default=0)
    fine_paid = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    student = relationship("User", foreign_keys=[student_id])
    school_class = relationship("SchoolClass", foreign_keys=[class_id])
    taker = relationship("User", foreign_keys=[taken_by])
