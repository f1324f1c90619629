"""
Audit logging for charge, payment and expense changes. Call on every money mutation.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import FeeAuditLog, TuitionCharge

CENTS = Decimal("0.01")


def money_str(value) -> str:
    return str(Decimal(str(value or 0)).quantize(CENTS))


def charge_snapshot(charge: TuitionCharge) -> dict:
    return {
        "student_id": str(charge.student_id),
        "group_id": str(charge.group_id),
        "year": charge.year,
        "month": charge.month,
        "amount_due": money_str(charge.amount_due),
        "discount": money_str(charge.discount),
        "planned_lessons": charge.planned_lessons,
        "charged_lessons": charge.charged_lessons,
        "status": charge.status,
    }


async def log_fee_audit(
    db: AsyncSession,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    """Append one audit log entry. Caller must commit."""
    log = FeeAuditLog(
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)
