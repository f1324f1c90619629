from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.finance.schemas import TuitionChargeResponse
from app.core.enums import EnrollmentStatus


class EnrollmentCreate(BaseModel):
    student_id: UUID
    group_id: UUID
    join_date: date


class EnrollmentTransferRequest(BaseModel):
    student_id: UUID
    from_group_id: UUID
    to_group_id: UUID
    transfer_date: date = Field(..., description="First day in the new group")


class EnrollmentResponse(BaseModel):
    id: UUID
    student_id: UUID
    group_id: UUID
    join_date: date
    leave_date: Optional[date] = None
    status: EnrollmentStatus
    created_at: datetime

    class Config:
        from_attributes = True


class EnrollmentWithCharge(BaseModel):
    """Enrollment plus the join-month charge; charge is None for a zero-fee group."""

    enrollment: EnrollmentResponse
    charge: Optional[TuitionChargeResponse] = None
