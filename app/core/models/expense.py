"""Expense: cash outflow, used only for cash balance reporting."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_expense_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)  # RENT, SALARY, UTILITIES, ...
    amount = Column(Numeric(14, 2), nullable=False)
    method = Column(String(30), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False, index=True)
    note = Column(Text, nullable=True)
    recorded_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
