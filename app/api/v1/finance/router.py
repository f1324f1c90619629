"""Finance router: payments, expenses, discounts, charges and balance reports."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import FINANCE_ROLES, require_roles
from app.auth.schemas import CurrentUser
from app.core.enums import PaymentMethod
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    ApplyDiscountRequest,
    Debtor,
    ExpenseCreate,
    ExpenseResponse,
    FinanceOverview,
    GlobalBalance,
    GroupChargesReport,
    PaymentCreate,
    PaymentResponse,
    PaymentWithSummary,
    StudentHistory,
    StudentSummary,
    TuitionChargeResponse,
)
from . import reports, service

router = APIRouter(prefix="/api/v1/finance", tags=["finance"])


# --- Payments ---
@router.post(
    "/payments",
    response_model=PaymentWithSummary,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(*FINANCE_ROLES)),
) -> PaymentWithSummary:
    try:
        return await service.record_payment(db, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/payments/{student_id}",
    response_model=List[PaymentResponse],
    dependencies=[Depends(get_current_user)],
)
async def get_payment_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[PaymentResponse]:
    try:
        return await service.get_payment_history(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Expenses ---
@router.post(
    "/expenses",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_expense(
    payload: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(*FINANCE_ROLES)),
) -> ExpenseResponse:
    try:
        return await service.record_expense(db, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Discount ---
@router.post(
    "/discount",
    response_model=TuitionChargeResponse,
)
async def apply_discount(
    payload: ApplyDiscountRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(*FINANCE_ROLES)),
) -> TuitionChargeResponse:
    try:
        return await service.apply_discount(db, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Reports ---
@router.get(
    "/groups/{group_id}/charges",
    response_model=GroupChargesReport,
    dependencies=[Depends(get_current_user)],
)
async def get_group_charges(
    group_id: UUID,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: AsyncSession = Depends(get_db),
) -> GroupChargesReport:
    try:
        return await reports.get_group_charges(db, group_id, year, month)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/debtors",
    response_model=List[Debtor],
    dependencies=[Depends(get_current_user)],
)
async def get_debtors(
    min_debt: Decimal = Query(Decimal("0"), ge=0, description="Only students owing at least this much"),
    db: AsyncSession = Depends(get_db),
) -> List[Debtor]:
    return await reports.get_debtors(db, min_debt)


@router.get(
    "/students/{student_id}/summary",
    response_model=StudentSummary,
    dependencies=[Depends(get_current_user)],
)
async def get_student_summary(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> StudentSummary:
    try:
        return await reports.get_student_summary(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/students/{student_id}/history",
    response_model=StudentHistory,
    dependencies=[Depends(get_current_user)],
)
async def get_student_history(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> StudentHistory:
    try:
        return await reports.get_student_history(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/balance",
    response_model=GlobalBalance,
    dependencies=[Depends(get_current_user)],
)
async def get_global_balance(
    db: AsyncSession = Depends(get_db),
) -> GlobalBalance:
    return await reports.get_global_balance(db)


@router.get(
    "/overview",
    response_model=FinanceOverview,
    dependencies=[Depends(get_current_user)],
)
async def get_finance_overview(
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    method: Optional[PaymentMethod] = Query(None, description="Restrict to one payment method"),
    db: AsyncSession = Depends(get_db),
) -> FinanceOverview:
    try:
        return await reports.get_finance_overview(db, date_from, date_to, method)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
