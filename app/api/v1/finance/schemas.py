"""Finance schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import PaymentMethod, TuitionChargeStatus


# --- Tuition Charge ---
class TuitionChargeResponse(BaseModel):
    id: UUID
    student_id: UUID
    group_id: UUID
    year: int
    month: int
    amount_due: Decimal
    discount: Decimal
    effective_amount: Decimal
    planned_lessons: int
    charged_lessons: int
    status: TuitionChargeStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApplyDiscountRequest(BaseModel):
    student_id: UUID
    group_id: UUID
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    # Range is checked against the charge by the ledger (InvalidInput on violation)
    discount_amount: Decimal


# --- Payment ---
class PaymentCreate(BaseModel):
    student_id: UUID
    group_id: Optional[UUID] = Field(None, description="Only pay off charges of this group")
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: PaymentMethod
    paid_at: Optional[datetime] = None
    reference: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = None


class PaymentAllocationResponse(BaseModel):
    id: UUID
    charge_id: UUID
    amount: Decimal

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    group_id: Optional[UUID] = None
    amount: Decimal
    method: str
    status: str
    paid_at: datetime
    reference: Optional[str] = None
    comment: Optional[str] = None
    recorded_by: Optional[UUID] = None
    created_at: datetime
    allocations: List[PaymentAllocationResponse] = Field(default_factory=list)


class PaymentBrief(BaseModel):
    id: UUID
    amount: Decimal
    method: str
    paid_at: datetime
    reference: Optional[str] = None

    class Config:
        from_attributes = True


# --- Expense ---
class ExpenseCreate(BaseModel):
    title: str = Field(..., max_length=255)
    category: str = Field(..., max_length=50, description="RENT, SALARY, UTILITIES, ...")
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: PaymentMethod
    paid_at: Optional[datetime] = None
    note: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: UUID
    title: str
    category: str
    amount: Decimal
    method: str
    paid_at: datetime
    note: Optional[str] = None
    recorded_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


# --- Reports ---
class StudentSummary(BaseModel):
    """Current-month position of a student in their current group."""

    student_id: UUID
    full_name: str
    group_id: Optional[UUID] = None
    group_name: Optional[str] = None
    year: int
    month: int
    charge_id: Optional[UUID] = None
    amount_due: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    effective_amount: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")
    debt: Decimal = Decimal("0")
    debt_rounded: Decimal = Decimal("0")
    status: Optional[TuitionChargeStatus] = None
    last_payments: List[PaymentBrief] = Field(default_factory=list)


class PaymentWithSummary(BaseModel):
    payment: PaymentResponse
    unapplied_amount: Decimal
    summary: StudentSummary


class StudentHistoryMonth(BaseModel):
    charge_id: UUID
    year: int
    month: int
    planned_lessons: int
    charged_lessons: int
    amount_due: Decimal
    discount: Decimal
    effective_amount: Decimal
    paid: Decimal
    debt: Decimal
    status: TuitionChargeStatus


class StudentHistoryGroup(BaseModel):
    group_id: UUID
    group_name: str
    total_effective: Decimal
    total_paid: Decimal
    total_debt: Decimal
    total_debt_rounded: Decimal
    months: List[StudentHistoryMonth]


class StudentHistory(BaseModel):
    student_id: UUID
    full_name: str
    total_effective: Decimal
    total_paid: Decimal
    total_debt: Decimal
    total_debt_rounded: Decimal
    groups: List[StudentHistoryGroup]


class GroupChargeItem(BaseModel):
    charge_id: UUID
    student_id: UUID
    full_name: str
    phone: Optional[str] = None
    original_amount: Decimal
    discount: Decimal
    amount_to_pay: Decimal
    paid: Decimal
    debt: Decimal
    status: TuitionChargeStatus
    planned_lessons: int
    charged_lessons: int
    lessons: str  # "charged/planned"


class GroupChargesReport(BaseModel):
    group_id: UUID
    group_name: str
    monthly_fee: int
    year: int
    month: int
    total_to_pay: Decimal
    total_paid: Decimal
    total_debt: Decimal
    total_debt_rounded: Decimal
    items: List[GroupChargeItem]


class DebtorGroupDebt(BaseModel):
    group_id: UUID
    group_name: str
    debt: Decimal
    months: List[str]  # "YYYY-MM", oldest first


class Debtor(BaseModel):
    student_id: UUID
    full_name: str
    phone: Optional[str] = None
    total_debt: Decimal
    total_debt_rounded: Decimal
    groups: List[DebtorGroupDebt]


class GlobalBalance(BaseModel):
    total_charges: Decimal  # net of discounts
    total_allocated: Decimal
    total_debt: Decimal
    total_debt_rounded: Decimal
    total_income: Decimal
    total_expense: Decimal
    net_cash: Decimal
    net_cash_rounded: Decimal


class FinanceOverview(BaseModel):
    date_from: datetime
    date_to: datetime
    method: str  # payment method or "ALL"
    total_income: Decimal
    total_expense: Decimal
    profit: Decimal
    total_income_rounded: Decimal
    total_expense_rounded: Decimal
    profit_rounded: Decimal
