"""Finance service: payments, expenses, discounts and the ledger reads behind the finance router."""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentStatus
from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.models import Expense, Group, Payment, PaymentAllocation, TuitionCharge
from app.db.session import run_with_retry, unit_of_work

from . import ledger, reports
from .allocator import allocate_payment
from .audit import log_fee_audit, money_str
from .calculator import to_decimal
from .schemas import (
    ApplyDiscountRequest,
    ExpenseCreate,
    ExpenseResponse,
    PaymentAllocationResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentWithSummary,
    TuitionChargeResponse,
)

logger = logging.getLogger(__name__)


def _to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


# --- Tuition Charge ---
def charge_to_response(charge: TuitionCharge) -> TuitionChargeResponse:
    return TuitionChargeResponse(
        id=_to_uuid(charge.id),
        student_id=_to_uuid(charge.student_id),
        group_id=_to_uuid(charge.group_id),
        year=charge.year,
        month=charge.month,
        amount_due=to_decimal(charge.amount_due),
        discount=to_decimal(charge.discount),
        effective_amount=ledger.effective_amount(charge),
        planned_lessons=charge.planned_lessons,
        charged_lessons=charge.charged_lessons,
        status=charge.status,
        created_at=charge.created_at,
        updated_at=charge.updated_at,
    )


async def apply_discount(
    db: AsyncSession,
    payload: ApplyDiscountRequest,
    changed_by: Optional[UUID],
) -> TuitionChargeResponse:
    charge = await ledger.apply_discount(
        db,
        payload.student_id,
        payload.group_id,
        payload.year,
        payload.month,
        payload.discount_amount,
        changed_by,
    )
    return charge_to_response(charge)


# --- Payment ---
def _payment_to_response(payment: Payment, allocations: List[PaymentAllocation]) -> PaymentResponse:
    return PaymentResponse(
        id=_to_uuid(payment.id),
        student_id=_to_uuid(payment.student_id),
        group_id=_to_uuid(payment.group_id),
        amount=to_decimal(payment.amount),
        method=payment.method,
        status=payment.status,
        paid_at=payment.paid_at,
        reference=payment.reference,
        comment=payment.comment,
        recorded_by=_to_uuid(payment.recorded_by),
        created_at=payment.created_at,
        allocations=[PaymentAllocationResponse.model_validate(a) for a in allocations],
    )


async def record_payment(
    db: AsyncSession,
    payload: PaymentCreate,
    recorded_by: Optional[UUID],
) -> PaymentWithSummary:
    """
    Store a payment and spread it over the student's open charges, oldest first.
    Payment, allocations and charge statuses commit together or not at all.
    """
    if payload.amount <= 0:
        raise InvalidInputError("Payment amount must be positive")

    async def _op():
        async with unit_of_work(db):
            await ledger.lock_student(db, payload.student_id)
            if payload.group_id is not None and not await db.get(Group, payload.group_id):
                raise NotFoundError("Group not found")
            payment = Payment(
                student_id=payload.student_id,
                group_id=payload.group_id,
                amount=payload.amount,
                method=payload.method.value,
                status=PaymentStatus.COMPLETED.value,
                paid_at=payload.paid_at or datetime.now(timezone.utc),
                reference=(payload.reference or "").strip() or None,
                comment=payload.comment,
                recorded_by=recorded_by,
            )
            db.add(payment)
            await db.flush()
            await log_fee_audit(
                db, "payments", payment.id,
                "CREATE",
                None,
                {"amount": money_str(payment.amount), "method": payment.method, "student_id": str(payment.student_id)},
                recorded_by,
            )
            result = await allocate_payment(db, payment.id, payload.student_id, payload.group_id, recorded_by)
            return payment, result

    payment, result = await run_with_retry(_op)
    logger.info(
        "Payment %s recorded for student %s: amount=%s allocated=%s unapplied=%s",
        payment.id, payment.student_id, payment.amount, result.allocated, result.unapplied,
    )
    summary = await reports.get_student_summary(db, payload.student_id)
    return PaymentWithSummary(
        payment=_payment_to_response(payment, result.allocations),
        unapplied_amount=result.unapplied,
        summary=summary,
    )


async def get_payment_history(db: AsyncSession, student_id: UUID) -> List[PaymentResponse]:
    """All payments of a student, newest first, with their allocations."""
    await reports.get_student(db, student_id)
    payments = (
        await db.execute(
            select(Payment)
            .where(Payment.student_id == student_id)
            .order_by(Payment.paid_at.desc(), Payment.created_at.desc())
        )
    ).scalars().all()
    if not payments:
        return []
    allocations = (
        await db.execute(
            select(PaymentAllocation)
            .where(PaymentAllocation.payment_id.in_([p.id for p in payments]))
            .order_by(PaymentAllocation.created_at)
        )
    ).scalars().all()
    by_payment = {}
    for a in allocations:
        by_payment.setdefault(a.payment_id, []).append(a)
    return [_payment_to_response(p, by_payment.get(p.id, [])) for p in payments]


# --- Expense ---
async def record_expense(
    db: AsyncSession,
    payload: ExpenseCreate,
    recorded_by: Optional[UUID],
) -> ExpenseResponse:
    if payload.amount <= 0:
        raise InvalidInputError("Expense amount must be positive")
    title = payload.title.strip()
    if not title:
        raise InvalidInputError("Expense title is required")
    expense = Expense(
        title=title,
        category=payload.category.strip().upper(),
        amount=payload.amount,
        method=payload.method.value,
        paid_at=payload.paid_at or datetime.now(timezone.utc),
        note=payload.note,
        recorded_by=recorded_by,
    )
    async with unit_of_work(db):
        db.add(expense)
        await db.flush()
        await log_fee_audit(
            db, "expenses", expense.id,
            "CREATE",
            None,
            {"amount": money_str(expense.amount), "category": expense.category, "method": expense.method},
            recorded_by,
        )
    await db.refresh(expense)
    logger.info("Expense %s recorded: %s %s", expense.id, expense.category, expense.amount)
    return ExpenseResponse.model_validate(expense)

