from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.api.v1.finance import allocator
from app.api.v1.finance.allocator import allocate_payment
from app.api.v1.finance.calculator import resolve_charge_status
from app.api.v1.finance.ledger import allocated_total, effective_amount
from app.core.models import Payment, PaymentAllocation, TuitionCharge
from app.db.session import unit_of_work


async def _new_payment(db, student, amount, group=None) -> Payment:
    payment = Payment(
        student_id=student.id,
        group_id=group.id if group else None,
        amount=Decimal(str(amount)),
        method="CASH",
        paid_at=datetime(2025, 2, 10, tzinfo=timezone.utc),
    )
    db.add(payment)
    await db.flush()
    return payment


async def _allocate(db, student, amount, group=None):
    async with unit_of_work(db):
        payment = await _new_payment(db, student, amount, group)
        result = await allocate_payment(db, payment.id, student.id, group.id if group else None)
    return payment, result


async def test_fifo_oldest_month_first(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    # created out of order on purpose
    feb = await make_charge(student, group, 2025, 2, 30000)
    jan = await make_charge(student, group, 2025, 1, 50000)

    payment, result = await _allocate(db_session, student, 60000)

    assert result.allocated == Decimal("60000")
    assert result.unapplied == Decimal("0")
    assert [a.charge_id for a in result.allocations] == [jan.id, feb.id]
    assert await allocated_total(db_session, jan.id) == Decimal("50000")
    assert await allocated_total(db_session, feb.id) == Decimal("10000")
    assert jan.status == "PAID"
    assert feb.status == "PARTIALLY_PAID"


async def test_fifo_crosses_year_boundary(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    jan = await make_charge(student, group, 2025, 1, 40000)
    dec = await make_charge(student, group, 2024, 12, 40000)

    _, result = await _allocate(db_session, student, 40000)

    assert [a.charge_id for a in result.allocations] == [dec.id]
    assert dec.status == "PAID"
    assert jan.status == "PENDING"


async def test_surplus_stays_unapplied(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    await make_charge(student, group, 2025, 1, 50000)
    await make_charge(student, group, 2025, 2, 30000)

    payment, result = await _allocate(db_session, student, 100000)

    assert result.allocated == Decimal("80000")
    assert result.unapplied == Decimal("20000")
    total = (
        await db_session.execute(
            select(func.sum(PaymentAllocation.amount)).where(PaymentAllocation.payment_id == payment.id)
        )
    ).scalar()
    assert Decimal(str(total)) == Decimal("80000")


async def test_no_open_charges_is_a_no_op(db_session, make_student):
    student = await make_student()

    _, result = await _allocate(db_session, student, 50000)

    assert result.allocations == []
    assert result.unapplied == Decimal("50000")


async def test_group_hint_restricts_allocation(db_session, make_student, make_group, make_charge):
    student = await make_student()
    math = await make_group(name="Math")
    english = await make_group(name="English")
    math_jan = await make_charge(student, math, 2025, 1, 50000)
    english_feb = await make_charge(student, english, 2025, 2, 50000)

    _, result = await _allocate(db_session, student, 20000, group=english)

    assert [a.charge_id for a in result.allocations] == [english_feb.id]
    assert math_jan.status == "PENDING"
    assert english_feb.status == "PARTIALLY_PAID"


async def test_discounted_charge_only_takes_effective_amount(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    jan = await make_charge(student, group, 2025, 1, 50000, discount=10000)
    feb = await make_charge(student, group, 2025, 2, 50000)

    _, result = await _allocate(db_session, student, 50000)

    assert await allocated_total(db_session, jan.id) == Decimal("40000")
    assert await allocated_total(db_session, feb.id) == Decimal("10000")
    assert jan.status == "PAID"


async def test_stale_status_is_healed(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    jan = await make_charge(student, group, 2025, 1, 30000)
    feb = await make_charge(student, group, 2025, 2, 30000)
    # January is fully covered but still marked PENDING
    async with unit_of_work(db_session):
        old = await _new_payment(db_session, student, 30000)
        db_session.add(PaymentAllocation(payment_id=old.id, charge_id=jan.id, amount=Decimal("30000")))

    _, result = await _allocate(db_session, student, 30000)

    assert [a.charge_id for a in result.allocations] == [feb.id]
    assert jan.status == "PAID"
    assert feb.status == "PAID"


async def test_payment_is_allocated_once(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    await make_charge(student, group, 2025, 1, 50000)
    await make_charge(student, group, 2025, 2, 50000)
    payment, _ = await _allocate(db_session, student, 30000)

    async with unit_of_work(db_session):
        again = await allocate_payment(db_session, payment.id, student.id)

    assert again.allocations == []
    count = (
        await db_session.execute(
            select(func.count(PaymentAllocation.id)).where(PaymentAllocation.payment_id == payment.id)
        )
    ).scalar()
    assert count == 1


async def test_conservation_and_status_consistency(db_session, make_student, make_group, make_charge):
    student = await make_student()
    group = await make_group()
    for month, amount in ((1, 50000), (2, 45000), (3, 47000)):
        await make_charge(student, group, 2025, month, amount)

    payments = []
    for amount in (20000, 35000, 70000, 40000):
        payment, result = await _allocate(db_session, student, amount)
        assert result.allocated + result.unapplied == Decimal(str(amount))
        payments.append(payment)

    charges = (
        await db_session.execute(select(TuitionCharge).where(TuitionCharge.student_id == student.id))
    ).scalars().all()
    for charge in charges:
        paid = await allocated_total(db_session, charge.id)
        assert paid <= effective_amount(charge)
        assert charge.status == resolve_charge_status(effective_amount(charge), paid).value

    for payment in payments:
        total = (
            await db_session.execute(
                select(func.coalesce(func.sum(PaymentAllocation.amount), 0)).where(
                    PaymentAllocation.payment_id == payment.id
                )
            )
        ).scalar()
        assert Decimal(str(total)) <= Decimal(payment.amount)


async def test_failure_midway_leaves_ledger_untouched(
    db_session, make_student, make_group, make_charge, monkeypatch
):
    student = await make_student()
    group = await make_group()
    await make_charge(student, group, 2025, 1, 50000)
    await make_charge(student, group, 2025, 2, 50000)
    student_id = student.id

    real_audit = allocator.log_fee_audit
    calls = []

    async def audit_fails_on_second_charge(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise RuntimeError("audit write failed")
        return await real_audit(*args, **kwargs)

    monkeypatch.setattr(allocator, "log_fee_audit", audit_fails_on_second_charge)
    with pytest.raises(RuntimeError):
        await _allocate(db_session, student, 80000)

    allocations = (await db_session.execute(select(func.count(PaymentAllocation.id)))).scalar()
    payments = (await db_session.execute(select(func.count(Payment.id)))).scalar()
    statuses = (
        await db_session.execute(
            select(TuitionCharge.status)
            .where(TuitionCharge.student_id == student_id)
            .order_by(TuitionCharge.month)
        )
    ).scalars().all()
    assert allocations == 0
    assert payments == 0
    assert statuses == ["PENDING", "PENDING"]
