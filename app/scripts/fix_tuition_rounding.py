"""
Round stored tuition charges to the 1000 granularity and recompute their statuses.

For charges written before amounts were rounded, or whose status drifted from the
allocations. Idempotent: a second run updates nothing.
Usage: python -m app.scripts.fix_tuition_rounding
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.finance.audit import charge_snapshot, log_fee_audit
from app.api.v1.finance.calculator import resolve_charge_status, round_down_to_thousand, round_to_thousand
from app.api.v1.finance.ledger import allocated_totals, effective_amount
from app.core.models import TuitionCharge
from app.db.session import AsyncSessionLocal


def fix_charge(charge: TuitionCharge, paid: Decimal) -> bool:
    """Normalize one charge in place. Returns True when anything changed."""
    amount_due = round_to_thousand(charge.amount_due)
    if amount_due < paid:
        amount_due = paid
    discount = min(round_to_thousand(charge.discount or 0), amount_due)
    if amount_due - discount < paid:
        discount = round_down_to_thousand(amount_due - paid)
    status = resolve_charge_status(amount_due - discount, paid).value

    if (
        amount_due == charge.amount_due
        and discount == (charge.discount or 0)
        and status == charge.status
    ):
        return False
    charge.amount_due = amount_due
    charge.discount = discount
    charge.status = status
    return True


async def fix_tuition_rounding(session: AsyncSession) -> int:
    """Fix every charge in one transaction. Returns the number of charges updated."""
    charges = (
        await session.execute(
            select(TuitionCharge).order_by(TuitionCharge.year, TuitionCharge.month).with_for_update()
        )
    ).scalars().all()
    paid_map = await allocated_totals(session, [c.id for c in charges])

    updated = 0
    for charge in charges:
        old = charge_snapshot(charge)
        if not fix_charge(charge, paid_map[charge.id]):
            continue
        await log_fee_audit(session, "tuition_charges", charge.id, "UPDATE", old, charge_snapshot(charge), None)
        updated += 1
        print(
            f"  {charge.id} {charge.year:04d}-{charge.month:02d}: "
            f"{old['amount_due']} -> {charge.amount_due}, effective {effective_amount(charge)}, {charge.status}"
        )
    await session.commit()
    return updated


async def main_async() -> None:
    async with AsyncSessionLocal() as session:
        updated = await fix_tuition_rounding(session)
        print(f"Done. Updated {updated} tuition charge(s).")


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
