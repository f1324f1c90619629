"""Enrollments router: join a group, transfer between groups."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import FINANCE_ROLES, require_roles
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import EnrollmentCreate, EnrollmentTransferRequest, EnrollmentWithCharge
from . import service

router = APIRouter(prefix="/api/v1/enrollments", tags=["enrollments"])


@router.post(
    "",
    response_model=EnrollmentWithCharge,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_student(
    payload: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(*FINANCE_ROLES)),
) -> EnrollmentWithCharge:
    try:
        return await service.enroll_student(db, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/transfer",
    response_model=EnrollmentWithCharge,
)
async def transfer_student(
    payload: EnrollmentTransferRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(*FINANCE_ROLES)),
) -> EnrollmentWithCharge:
    try:
        return await service.transfer_student(db, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
