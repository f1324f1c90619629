"""Payments and their allocations onto tuition charges."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.enums import PaymentStatus
from app.db.session import Base


class Payment(Base):
    """Incoming cash from a student. Immutable once recorded."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    # Optional hint: restrict allocation to this group's charges
    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    method = Column(String(30), nullable=False)  # CASH, CARD, BANK_TRANSFER, ONLINE
    status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED.value)
    paid_at = Column(DateTime(timezone=True), nullable=False, index=True)
    reference = Column(String(100), nullable=True)
    comment = Column(Text, nullable=True)
    recorded_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    allocations = relationship("PaymentAllocation", back_populates="payment", order_by="PaymentAllocation.created_at")


class PaymentAllocation(Base):
    """Portion of a payment applied to one tuition charge."""

    __tablename__ = "payment_allocations"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_allocation_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id", ondelete="RESTRICT"), nullable=False, index=True)
    charge_id = Column(
        UUID(as_uuid=True),
        ForeignKey("tuition_charges.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    payment = relationship("Payment", back_populates="allocations")
    charge = relationship("TuitionCharge", backref="allocations")
