"""Charge ledger: the only writer of tuition charge amounts, discounts and lesson counts."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, Optional, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import TuitionChargeStatus
from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.models import Group, PaymentAllocation, Student, TuitionCharge
from app.db.session import run_with_retry, unit_of_work

from .audit import charge_snapshot, log_fee_audit
from .calculator import (
    compute_amount_due,
    count_lessons,
    resolve_charge_status,
    round_to_thousand,
    to_date,
    to_decimal,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def effective_amount(charge: TuitionCharge) -> Decimal:
    return to_decimal(charge.amount_due) - to_decimal(charge.discount)


async def lock_student(db: AsyncSession, student_id: UUID) -> Student:
    """Serialize money operations per student (row lock; a no-op on SQLite)."""
    student = (
        await db.execute(select(Student).where(Student.id == student_id).with_for_update())
    ).scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    return student


async def allocated_total(db: AsyncSession, charge_id: UUID) -> Decimal:
    total = (
        await db.execute(
            select(func.coalesce(func.sum(PaymentAllocation.amount), 0)).where(
                PaymentAllocation.charge_id == charge_id,
            )
        )
    ).scalar()
    return to_decimal(total)


async def allocated_totals(db: AsyncSession, charge_ids: Iterable[UUID]) -> Dict[UUID, Decimal]:
    """Allocation sum per charge id; charges without allocations map to 0."""
    ids = list(charge_ids)
    if not ids:
        return {}
    rows = (
        await db.execute(
            select(PaymentAllocation.charge_id, func.sum(PaymentAllocation.amount))
            .where(PaymentAllocation.charge_id.in_(ids))
            .group_by(PaymentAllocation.charge_id)
        )
    ).all()
    totals = {cid: Decimal("0") for cid in ids}
    for cid, total in rows:
        totals[cid] = to_decimal(total)
    return totals


async def get_charge_by_key(
    db: AsyncSession,
    student_id: UUID,
    group_id: UUID,
    year: int,
    month: int,
    for_update: bool = False,
) -> Optional[TuitionCharge]:
    stmt = select(TuitionCharge).where(
        TuitionCharge.student_id == student_id,
        TuitionCharge.group_id == group_id,
        TuitionCharge.year == year,
        TuitionCharge.month == month,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


# --- Enrollment ---
async def upsert_enrollment_charge(
    db: AsyncSession,
    student_id: UUID,
    group_id: UUID,
    join_date: DateLike,
    changed_by: Optional[UUID] = None,
) -> Optional[TuitionCharge]:
    """
    Create or replace the join-month charge of a student in a group. Caller must commit.

    Returns None (no charge) when the group is missing or its fee is zero.
    On an existing charge the amount and lesson counts are overwritten, the
    discount is reset and the status is recomputed from the allocations.
    """
    group = await db.get(Group, group_id)
    if not group:
        logger.warning("Group %s not found, no tuition charge created", group_id)
        return None
    if not group.monthly_fee or group.monthly_fee <= 0:
        logger.warning("Group %s has monthly_fee=%s, no tuition charge created", group_id, group.monthly_fee)
        return None

    join = to_date(join_date)
    year, month = join.year, join.month
    counts = count_lessons(group.days_pattern, join)
    raw_amount = compute_amount_due(group.monthly_fee, counts.planned, counts.charged)
    amount_due = round_to_thousand(raw_amount)

    charge = await get_charge_by_key(db, student_id, group_id, year, month, for_update=True)
    if charge is None:
        charge = TuitionCharge(
            student_id=student_id,
            group_id=group_id,
            year=year,
            month=month,
            amount_due=amount_due,
            discount=Decimal("0"),
            planned_lessons=counts.planned,
            charged_lessons=counts.charged,
            status=resolve_charge_status(amount_due, 0).value,
        )
        db.add(charge)
        await db.flush()
        await log_fee_audit(db, "tuition_charges", charge.id, "CREATE", None, charge_snapshot(charge), changed_by)
        action = "created"
    else:
        paid = await allocated_total(db, charge.id)
        if paid > amount_due:
            # Never leave more money allocated than the charge is worth
            logger.warning(
                "Charge %s already has %s allocated, keeping amount_due at the paid total instead of %s",
                charge.id, paid, amount_due,
            )
            amount_due = paid
        old = charge_snapshot(charge)
        charge.amount_due = amount_due
        charge.discount = Decimal("0")
        charge.planned_lessons = counts.planned
        charge.charged_lessons = counts.charged
        charge.status = resolve_charge_status(amount_due, paid).value
        await db.flush()
        new = charge_snapshot(charge)
        if new != old:
            await log_fee_audit(db, "tuition_charges", charge.id, "UPDATE", old, new, changed_by)
        action = "updated"

    logger.info(
        "Tuition charge %s %s: student=%s group=%s %04d-%02d amount_due=%s (raw %s) lessons=%s/%s",
        charge.id, action, student_id, group_id, year, month,
        amount_due, raw_amount, counts.charged, counts.planned,
    )
    return charge


async def compute_initial_charge(
    db: AsyncSession,
    student_id: UUID,
    group_id: UUID,
    join_date: DateLike,
    changed_by: Optional[UUID] = None,
) -> Optional[TuitionCharge]:
    """Charge for the month a student joins a group, in its own transaction."""

    async def _op() -> Optional[TuitionCharge]:
        async with unit_of_work(db):
            await lock_student(db, student_id)
            return await upsert_enrollment_charge(db, student_id, group_id, join_date, changed_by)

    return await run_with_retry(_op)


# --- Transfer ---
async def release_other_group_charges(
    db: AsyncSession,
    student_id: UUID,
    keep_group_id: UUID,
    year: int,
    month: int,
    changed_by: Optional[UUID] = None,
) -> None:
    """
    Settle the student's charges for year/month in every group except keep_group_id.
    Paid charges are frozen at the paid total; unpaid ones are deleted. Caller must commit.
    """
    charges = (
        await db.execute(
            select(TuitionCharge)
            .where(
                TuitionCharge.student_id == student_id,
                TuitionCharge.year == year,
                TuitionCharge.month == month,
                TuitionCharge.group_id != keep_group_id,
            )
            .with_for_update()
        )
    ).scalars().all()
    paid_map = await allocated_totals(db, [c.id for c in charges])

    for charge in charges:
        paid = paid_map[charge.id]
        old = charge_snapshot(charge)
        if paid > 0:
            charge.amount_due = paid
            charge.discount = Decimal("0")
            charge.status = TuitionChargeStatus.PAID.value
            await db.flush()
            await log_fee_audit(db, "tuition_charges", charge.id, "FREEZE", old, charge_snapshot(charge), changed_by)
            logger.info("Froze charge %s at paid total %s after transfer", charge.id, paid)
        else:
            await log_fee_audit(db, "tuition_charges", charge.id, "DELETE", old, None, changed_by)
            await db.delete(charge)
            await db.flush()
            logger.info("Deleted unpaid charge %s after transfer", charge.id)


async def transfer_charges(
    db: AsyncSession,
    student_id: UUID,
    old_group_id: UUID,
    new_group_id: UUID,
    transfer_date: DateLike,
    changed_by: Optional[UUID] = None,
) -> Optional[TuitionCharge]:
    """Cleanup-then-create for a mid-month group switch. Caller must commit."""
    new_group = await db.get(Group, new_group_id)
    if not new_group:
        raise NotFoundError("New group not found")
    when = to_date(transfer_date)
    logger.info(
        "Transferring student %s from group %s to %s on %s", student_id, old_group_id, new_group_id, when
    )
    await release_other_group_charges(db, student_id, new_group_id, when.year, when.month, changed_by)
    return await upsert_enrollment_charge(db, student_id, new_group_id, when, changed_by)


async def transfer_charge(
    db: AsyncSession,
    student_id: UUID,
    old_group_id: UUID,
    new_group_id: UUID,
    transfer_date: DateLike,
    changed_by: Optional[UUID] = None,
) -> Optional[TuitionCharge]:

    async def _op() -> Optional[TuitionCharge]:
        async with unit_of_work(db):
            await lock_student(db, student_id)
            return await transfer_charges(db, student_id, old_group_id, new_group_id, transfer_date, changed_by)

    return await run_with_retry(_op)


# --- Discount ---
async def _apply_discount(
    db: AsyncSession,
    student_id: UUID,
    group_id: UUID,
    year: int,
    month: int,
    discount_amount: Decimal,
    changed_by: Optional[UUID],
) -> TuitionCharge:
    await lock_student(db, student_id)
    charge = await get_charge_by_key(db, student_id, group_id, year, month, for_update=True)
    if not charge:
        raise NotFoundError("No tuition charge for this student, group and month")

    amount_due = to_decimal(charge.amount_due)
    discount = to_decimal(discount_amount)
    if discount < 0:
        raise InvalidInputError("Discount cannot be negative")
    if discount > amount_due:
        raise InvalidInputError("Discount cannot exceed the charged amount")

    discount = min(round_to_thousand(discount), amount_due)
    paid = await allocated_total(db, charge.id)
    if amount_due - discount < paid:
        raise InvalidInputError(
            f"Discount would leave the charge below the {paid} already paid against it"
        )

    old = charge_snapshot(charge)
    charge.discount = discount
    charge.status = resolve_charge_status(amount_due - discount, paid).value
    await db.flush()
    await log_fee_audit(db, "tuition_charges", charge.id, "UPDATE", old, charge_snapshot(charge), changed_by)
    logger.info("Discount %s applied to charge %s, status %s", discount, charge.id, charge.status)
    return charge


async def apply_discount(
    db: AsyncSession,
    student_id: UUID,
    group_id: UUID,
    year: int,
    month: int,
    discount_amount: Decimal,
    changed_by: Optional[UUID] = None,
) -> TuitionCharge:

    async def _op() -> TuitionCharge:
        async with unit_of_work(db):
            return await _apply_discount(db, student_id, group_id, year, month, discount_amount, changed_by)

    return await run_with_retry(_op)
