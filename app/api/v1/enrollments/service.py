"""Enrollment service: joining and switching groups, with the join-month charge in the same transaction."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.finance import ledger
from app.api.v1.finance.service import charge_to_response
from app.core.enums import EnrollmentStatus
from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.models import Enrollment, Group
from app.db.session import run_with_retry, unit_of_work

from .schemas import EnrollmentCreate, EnrollmentResponse, EnrollmentTransferRequest, EnrollmentWithCharge

logger = logging.getLogger(__name__)


async def _active_enrollment(db: AsyncSession, student_id: UUID, group_id: UUID) -> Optional[Enrollment]:
    return (
        await db.execute(
            select(Enrollment).where(
                Enrollment.student_id == student_id,
                Enrollment.group_id == group_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
        )
    ).scalar_one_or_none()


def _to_response(enrollment: Enrollment, charge) -> EnrollmentWithCharge:
    return EnrollmentWithCharge(
        enrollment=EnrollmentResponse.model_validate(enrollment),
        charge=charge_to_response(charge) if charge is not None else None,
    )


async def enroll_student(
    db: AsyncSession,
    payload: EnrollmentCreate,
    changed_by: Optional[UUID],
) -> EnrollmentWithCharge:
    """Create an ACTIVE enrollment and bill the join month."""

    async def _op():
        async with unit_of_work(db):
            await ledger.lock_student(db, payload.student_id)
            if not await db.get(Group, payload.group_id):
                raise NotFoundError("Group not found")
            if await _active_enrollment(db, payload.student_id, payload.group_id):
                raise InvalidInputError("Student is already enrolled in this group")
            enrollment = Enrollment(
                student_id=payload.student_id,
                group_id=payload.group_id,
                join_date=payload.join_date,
                status=EnrollmentStatus.ACTIVE.value,
            )
            db.add(enrollment)
            await db.flush()
            charge = await ledger.upsert_enrollment_charge(
                db, payload.student_id, payload.group_id, payload.join_date, changed_by
            )
            return enrollment, charge

    enrollment, charge = await run_with_retry(_op)
    logger.info("Student %s enrolled in group %s from %s", payload.student_id, payload.group_id, payload.join_date)
    return _to_response(enrollment, charge)


async def transfer_student(
    db: AsyncSession,
    payload: EnrollmentTransferRequest,
    changed_by: Optional[UUID],
) -> EnrollmentWithCharge:
    """
    Move a student between groups mid-month.

    The old enrollment is closed (LEFT) on the transfer date, a new one is opened,
    and the month's charges are settled: nothing stays billed in the old group
    beyond what was already paid there.
    """
    if payload.from_group_id == payload.to_group_id:
        raise InvalidInputError("Source and target group must differ")

    async def _op():
        async with unit_of_work(db):
            await ledger.lock_student(db, payload.student_id)
            if not await db.get(Group, payload.to_group_id):
                raise NotFoundError("New group not found")
            old = await _active_enrollment(db, payload.student_id, payload.from_group_id)
            if not old:
                raise NotFoundError("Active enrollment in the source group not found")
            if await _active_enrollment(db, payload.student_id, payload.to_group_id):
                raise InvalidInputError("Student is already enrolled in the target group")

            old.status = EnrollmentStatus.LEFT.value
            old.leave_date = payload.transfer_date
            enrollment = Enrollment(
                student_id=payload.student_id,
                group_id=payload.to_group_id,
                join_date=payload.transfer_date,
                status=EnrollmentStatus.ACTIVE.value,
            )
            db.add(enrollment)
            await db.flush()
            charge = await ledger.transfer_charges(
                db,
                payload.student_id,
                payload.from_group_id,
                payload.to_group_id,
                payload.transfer_date,
                changed_by,
            )
            return enrollment, charge

    enrollment, charge = await run_with_retry(_op)
    return _to_response(enrollment, charge)
