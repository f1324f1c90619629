"""Study group: the monthly fee and lesson-day pattern billing prorates against."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID

from app.core.enums import DaysPattern
from app.db.session import Base


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (
        CheckConstraint("days_pattern IN ('ODD','EVEN')", name="chk_group_days_pattern"),
        CheckConstraint("monthly_fee >= 0", name="chk_group_monthly_fee"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    monthly_fee = Column(Integer, nullable=False, default=0)
    days_pattern = Column(String(10), nullable=False, default=DaysPattern.ODD.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
