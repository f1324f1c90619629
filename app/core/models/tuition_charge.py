"""Tuition charge: one monthly obligation per (student, group, year, month)."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.enums import TuitionChargeStatus
from app.db.session import Base


class TuitionCharge(Base):
    """
    Monthly tuition obligation of a student in a group.

    amount_due is the gross prorated fee (rounded to 1000), discount is subtracted
    from it to get the effective amount. status is always recomputed from the
    allocation sum, never tracked incrementally.
    """

    __tablename__ = "tuition_charges"
    __table_args__ = (
        UniqueConstraint("student_id", "group_id", "year", "month", name="uq_tuition_charge_student_group_month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="chk_tuition_charge_month"),
        CheckConstraint("discount >= 0", name="chk_tuition_charge_discount_non_negative"),
        CheckConstraint("discount <= amount_due", name="chk_tuition_charge_discount_le_amount"),
        CheckConstraint(
            "status IN ('PENDING','PARTIALLY_PAID','PAID')",
            name="chk_tuition_charge_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id", ondelete="RESTRICT"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    amount_due = Column(Numeric(14, 2), nullable=False)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    planned_lessons = Column(Integer, nullable=False, default=0)
    charged_lessons = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=TuitionChargeStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student")
    group = relationship("Group")
