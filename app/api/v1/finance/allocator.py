"""
Payment allocator: spreads a payment over the student's open charges, oldest month first.

The order (year, month ascending) is part of the contract: the same payments
against the same charges always clear the same months. Money left after every
open charge is covered stays unapplied; there is no credit balance.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import TuitionChargeStatus
from app.core.models import Payment, PaymentAllocation, TuitionCharge

from .audit import log_fee_audit, money_str
from .calculator import resolve_charge_status, to_decimal
from .ledger import allocated_totals, effective_amount

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TuitionChargeStatus.PENDING.value, TuitionChargeStatus.PARTIALLY_PAID.value)


@dataclass
class AllocationResult:
    allocations: List[PaymentAllocation] = field(default_factory=list)
    allocated: Decimal = Decimal("0")
    unapplied: Decimal = Decimal("0")


async def _open_charges(
    db: AsyncSession,
    student_id: UUID,
    group_id: Optional[UUID],
) -> List[TuitionCharge]:
    stmt = select(TuitionCharge).where(
        TuitionCharge.student_id == student_id,
        TuitionCharge.status.in_(OPEN_STATUSES),
    )
    if group_id is not None:
        stmt = stmt.where(TuitionCharge.group_id == group_id)
    # created_at / id only break ties between groups billed for the same month
    stmt = stmt.order_by(
        TuitionCharge.year.asc(),
        TuitionCharge.month.asc(),
        TuitionCharge.created_at.asc(),
        TuitionCharge.id.asc(),
    ).with_for_update()
    return list((await db.execute(stmt)).scalars().all())


async def allocate_payment(
    db: AsyncSession,
    payment_id: UUID,
    student_id: UUID,
    group_id_hint: Optional[UUID] = None,
    changed_by: Optional[UUID] = None,
) -> AllocationResult:
    """
    Allocate one payment onto open charges. Caller must commit, and should hold the student lock.

    A payment that already has allocations, or a non-positive one, is left alone.
    """
    payment = await db.get(Payment, payment_id)
    if not payment:
        return AllocationResult()

    already = (
        await db.execute(
            select(func.count(PaymentAllocation.id)).where(PaymentAllocation.payment_id == payment_id)
        )
    ).scalar()
    if already:
        logger.info("Payment %s already allocated, skipping", payment_id)
        return AllocationResult()

    remaining = to_decimal(payment.amount)
    if remaining <= 0:
        return AllocationResult()

    charges = await _open_charges(db, student_id, group_id_hint)
    paid_map = await allocated_totals(db, [c.id for c in charges])
    result = AllocationResult()

    for charge in charges:
        if remaining <= 0:
            break
        effective = effective_amount(charge)
        paid = paid_map[charge.id]
        outstanding = effective - paid
        if outstanding <= 0:
            if charge.status != TuitionChargeStatus.PAID.value:
                logger.info("Charge %s was fully covered but marked %s, healing to PAID", charge.id, charge.status)
                charge.status = TuitionChargeStatus.PAID.value
            continue

        amount = min(remaining, outstanding)
        allocation = PaymentAllocation(payment_id=payment.id, charge_id=charge.id, amount=amount)
        db.add(allocation)
        result.allocations.append(allocation)
        remaining -= amount

        old_status = charge.status
        charge.status = resolve_charge_status(effective, paid + amount).value
        await log_fee_audit(
            db, "tuition_charges", charge.id,
            "ALLOCATE",
            {"paid": money_str(paid), "status": old_status},
            {"paid": money_str(paid + amount), "status": charge.status, "payment_id": str(payment.id)},
            changed_by,
        )

    await db.flush()
    result.allocated = to_decimal(payment.amount) - remaining
    result.unapplied = remaining
    if remaining > 0:
        logger.warning(
            "Payment %s: %s of %s left unapplied, student %s has no more open charges",
            payment.id, remaining, payment.amount, student_id,
        )
    else:
        logger.info("Payment %s fully allocated over %s charge(s)", payment.id, len(result.allocations))
    return result
