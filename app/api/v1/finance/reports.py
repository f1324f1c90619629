"""
Ledger reports: read-only projections over charges, allocations, payments and expenses.
Nothing here writes; totals for people are rounded to 1000 at the very end.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import EnrollmentStatus, PaymentMethod, PaymentStatus, TuitionChargeStatus
from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.models import Enrollment, Expense, Group, Payment, PaymentAllocation, Student, TuitionCharge

from .calculator import round_to_thousand, to_decimal
from .ledger import allocated_total, allocated_totals, effective_amount, get_charge_by_key
from .schemas import (
    Debtor,
    DebtorGroupDebt,
    FinanceOverview,
    GlobalBalance,
    GroupChargeItem,
    GroupChargesReport,
    PaymentBrief,
    StudentHistory,
    StudentHistoryGroup,
    StudentHistoryMonth,
    StudentSummary,
)

ZERO = Decimal("0")


async def get_student(db: AsyncSession, student_id: UUID) -> Student:
    student = await db.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")
    return student


# --- Student summary ---
async def get_student_summary(
    db: AsyncSession,
    student_id: UUID,
    today: Optional[date] = None,
) -> StudentSummary:
    """This month's charge, payments against it and debt, for the student's current group only."""
    student = await get_student(db, student_id)
    today = today or date.today()

    enrollment = (
        await db.execute(
            select(Enrollment)
            .where(
                Enrollment.student_id == student_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .order_by(Enrollment.join_date.desc(), Enrollment.created_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    last_payments = (
        await db.execute(
            select(Payment)
            .where(Payment.student_id == student_id)
            .order_by(Payment.paid_at.desc())
            .limit(5)
        )
    ).scalars().all()

    summary = StudentSummary(
        student_id=student.id,
        full_name=student.full_name,
        year=today.year,
        month=today.month,
        last_payments=[PaymentBrief.model_validate(p) for p in last_payments],
    )
    if not enrollment:
        return summary

    group = await db.get(Group, enrollment.group_id)
    summary.group_id = enrollment.group_id
    summary.group_name = group.name if group else None

    charge = await get_charge_by_key(db, student_id, enrollment.group_id, today.year, today.month)
    if not charge:
        return summary

    effective = effective_amount(charge)
    paid = await allocated_total(db, charge.id)
    debt = effective - paid
    summary.charge_id = charge.id
    summary.amount_due = to_decimal(charge.amount_due)
    summary.discount = to_decimal(charge.discount)
    summary.effective_amount = effective
    summary.paid = paid
    summary.debt = debt
    summary.debt_rounded = round_to_thousand(debt)
    summary.status = TuitionChargeStatus(charge.status)
    return summary


# --- Student history ---
async def get_student_history(db: AsyncSession, student_id: UUID) -> StudentHistory:
    """Every charge of the student, grouped by group, with per-group and overall totals."""
    student = await get_student(db, student_id)
    rows = (
        await db.execute(
            select(TuitionCharge, Group.name)
            .join(Group, Group.id == TuitionCharge.group_id)
            .where(TuitionCharge.student_id == student_id)
            .order_by(Group.name, TuitionCharge.year, TuitionCharge.month)
        )
    ).all()
    paid_map = await allocated_totals(db, [charge.id for charge, _ in rows])

    groups: Dict[UUID, StudentHistoryGroup] = {}
    for charge, group_name in rows:
        effective = effective_amount(charge)
        paid = paid_map[charge.id]
        debt = effective - paid
        entry = groups.get(charge.group_id)
        if entry is None:
            entry = groups[charge.group_id] = StudentHistoryGroup(
                group_id=charge.group_id,
                group_name=group_name,
                total_effective=ZERO,
                total_paid=ZERO,
                total_debt=ZERO,
                total_debt_rounded=ZERO,
                months=[],
            )
        entry.total_effective += effective
        entry.total_paid += paid
        entry.total_debt += debt
        entry.months.append(
            StudentHistoryMonth(
                charge_id=charge.id,
                year=charge.year,
                month=charge.month,
                planned_lessons=charge.planned_lessons,
                charged_lessons=charge.charged_lessons,
                amount_due=to_decimal(charge.amount_due),
                discount=to_decimal(charge.discount),
                effective_amount=effective,
                paid=paid,
                debt=debt,
                status=charge.status,
            )
        )

    for entry in groups.values():
        entry.total_debt_rounded = round_to_thousand(entry.total_debt)

    total_effective = sum((g.total_effective for g in groups.values()), ZERO)
    total_paid = sum((g.total_paid for g in groups.values()), ZERO)
    total_debt = total_effective - total_paid
    return StudentHistory(
        student_id=student.id,
        full_name=student.full_name,
        total_effective=total_effective,
        total_paid=total_paid,
        total_debt=total_debt,
        total_debt_rounded=round_to_thousand(total_debt),
        groups=list(groups.values()),
    )


# --- Group roster ---
async def get_group_charges(db: AsyncSession, group_id: UUID, year: int, month: int) -> GroupChargesReport:
    if not 1 <= month <= 12:
        raise InvalidInputError(f"Invalid month: {month}")
    group = await db.get(Group, group_id)
    if not group:
        raise NotFoundError("Group not found")

    rows = (
        await db.execute(
            select(TuitionCharge, Student)
            .join(Student, Student.id == TuitionCharge.student_id)
            .where(
                TuitionCharge.group_id == group_id,
                TuitionCharge.year == year,
                TuitionCharge.month == month,
            )
            .order_by(Student.full_name)
        )
    ).all()
    paid_map = await allocated_totals(db, [charge.id for charge, _ in rows])

    items: List[GroupChargeItem] = []
    for charge, student in rows:
        effective = effective_amount(charge)
        paid = paid_map[charge.id]
        items.append(
            GroupChargeItem(
                charge_id=charge.id,
                student_id=student.id,
                full_name=student.full_name,
                phone=student.phone,
                original_amount=to_decimal(charge.amount_due),
                discount=to_decimal(charge.discount),
                amount_to_pay=effective,
                paid=paid,
                debt=effective - paid,
                status=charge.status,
                planned_lessons=charge.planned_lessons,
                charged_lessons=charge.charged_lessons,
                lessons=f"{charge.charged_lessons}/{charge.planned_lessons}",
            )
        )

    total_to_pay = sum((i.amount_to_pay for i in items), ZERO)
    total_paid = sum((i.paid for i in items), ZERO)
    total_debt = total_to_pay - total_paid
    return GroupChargesReport(
        group_id=group.id,
        group_name=group.name,
        monthly_fee=group.monthly_fee,
        year=year,
        month=month,
        total_to_pay=total_to_pay,
        total_paid=total_paid,
        total_debt=total_debt,
        total_debt_rounded=round_to_thousand(total_debt),
        items=items,
    )


# --- Debtors ---
async def get_debtors(db: AsyncSession, min_debt: Decimal = ZERO) -> List[Debtor]:
    """Students with open debt, largest first, each with a per-group breakdown."""
    rows = (
        await db.execute(
            select(TuitionCharge, Student, Group.name)
            .join(Student, Student.id == TuitionCharge.student_id)
            .join(Group, Group.id == TuitionCharge.group_id)
            .where(
                TuitionCharge.status.in_(
                    [TuitionChargeStatus.PENDING.value, TuitionChargeStatus.PARTIALLY_PAID.value]
                )
            )
            .order_by(TuitionCharge.year, TuitionCharge.month)
        )
    ).all()
    paid_map = await allocated_totals(db, [charge.id for charge, _, _ in rows])

    debtors: Dict[UUID, Debtor] = {}
    per_group: Dict[UUID, Dict[UUID, DebtorGroupDebt]] = {}
    for charge, student, group_name in rows:
        debt = effective_amount(charge) - paid_map[charge.id]
        if debt <= 0:
            continue
        debtor = debtors.get(student.id)
        if debtor is None:
            debtor = debtors[student.id] = Debtor(
                student_id=student.id,
                full_name=student.full_name,
                phone=student.phone,
                total_debt=ZERO,
                total_debt_rounded=ZERO,
                groups=[],
            )
            per_group[student.id] = {}
        debtor.total_debt += debt

        group_debt = per_group[student.id].get(charge.group_id)
        if group_debt is None:
            group_debt = per_group[student.id][charge.group_id] = DebtorGroupDebt(
                group_id=charge.group_id,
                group_name=group_name,
                debt=ZERO,
                months=[],
            )
            debtor.groups.append(group_debt)
        group_debt.debt += debt
        group_debt.months.append(f"{charge.year:04d}-{charge.month:02d}")

    threshold = to_decimal(min_debt)
    out = [d for d in debtors.values() if d.total_debt >= threshold]
    for d in out:
        d.total_debt_rounded = round_to_thousand(d.total_debt)
    out.sort(key=lambda d: d.total_debt, reverse=True)
    return out


# --- Organisation totals ---
async def _sum(db: AsyncSession, column, *conditions) -> Decimal:
    stmt = select(func.coalesce(func.sum(column), 0))
    if conditions:
        stmt = stmt.where(*conditions)
    return to_decimal((await db.execute(stmt)).scalar())


async def get_global_balance(db: AsyncSession) -> GlobalBalance:
    """Debt view (charges vs allocations) and cash view (payments vs expenses), kept apart."""
    total_charges = await _sum(db, TuitionCharge.amount_due - TuitionCharge.discount)
    total_allocated = await _sum(db, PaymentAllocation.amount)
    total_debt = total_charges - total_allocated

    total_income = await _sum(db, Payment.amount, Payment.status == PaymentStatus.COMPLETED.value)
    total_expense = await _sum(db, Expense.amount)
    net_cash = total_income - total_expense

    return GlobalBalance(
        total_charges=total_charges,
        total_allocated=total_allocated,
        total_debt=total_debt,
        total_debt_rounded=round_to_thousand(total_debt),
        total_income=total_income,
        total_expense=total_expense,
        net_cash=net_cash,
        net_cash_rounded=round_to_thousand(net_cash),
    )


def _as_utc(value: datetime) -> datetime:
    # naive query values are taken as UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


async def get_finance_overview(
    db: AsyncSession,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    method: Optional[PaymentMethod] = None,
) -> FinanceOverview:
    """Income, expense and profit for [date_from, date_to]. Defaults to the current year so far."""
    now = datetime.now(timezone.utc)
    date_from = _as_utc(date_from or datetime(now.year, 1, 1, tzinfo=timezone.utc))
    date_to = _as_utc(date_to or now)
    if date_from > date_to:
        raise InvalidInputError("date_from must not be after date_to")

    income_filters = [
        Payment.status == PaymentStatus.COMPLETED.value,
        Payment.paid_at >= date_from,
        Payment.paid_at <= date_to,
    ]
    expense_filters = [Expense.paid_at >= date_from, Expense.paid_at <= date_to]
    if method is not None:
        income_filters.append(Payment.method == method.value)
        expense_filters.append(Expense.method == method.value)

    total_income = await _sum(db, Payment.amount, *income_filters)
    total_expense = await _sum(db, Expense.amount, *expense_filters)
    profit = total_income - total_expense
    return FinanceOverview(
        date_from=date_from,
        date_to=date_to,
        method=method.value if method is not None else "ALL",
        total_income=total_income,
        total_expense=total_expense,
        profit=profit,
        total_income_rounded=round_to_thousand(total_income),
        total_expense_rounded=round_to_thousand(total_expense),
        profit_rounded=round_to_thousand(profit),
    )
