from uuid import uuid4

import pytest
from fastapi import HTTPException

from app.auth.dependencies import get_current_user
from app.auth.rbac import FINANCE_ROLES, require_roles
from app.auth.schemas import CurrentUser
from app.auth.security import create_access_token


async def test_token_resolves_current_user():
    user_id = uuid4()
    token = create_access_token(subject={"user_id": str(user_id), "role": "MANAGER"})

    user = await get_current_user(token)

    assert user.id == user_id
    assert user.role == "MANAGER"


async def test_sub_claim_is_accepted():
    user_id = uuid4()
    token = create_access_token(subject={"sub": str(user_id), "role": "ADMIN"})
    assert (await get_current_user(token)).id == user_id


@pytest.mark.parametrize(
    "claims",
    [
        {"role": "ADMIN"},
        {"user_id": "not-a-uuid", "role": "ADMIN"},
        {"user_id": "6f1c2f7e-8a55-4d3b-9c41-0f4a4c7d2b10"},
    ],
)
async def test_incomplete_token_rejected(claims):
    with pytest.raises(HTTPException) as exc:
        await get_current_user(create_access_token(subject=claims))
    assert exc.value.status_code == 401


async def test_expired_token_rejected():
    token = create_access_token(subject={"user_id": str(uuid4()), "role": "ADMIN"}, expires_minutes=-1)
    with pytest.raises(HTTPException) as exc:
        await get_current_user(token)
    assert exc.value.status_code == 401


async def test_garbage_token_rejected():
    with pytest.raises(HTTPException):
        await get_current_user("definitely.not.a-jwt")


async def test_require_roles():
    checker = require_roles(*FINANCE_ROLES)
    admin = CurrentUser(id=uuid4(), role="ADMIN")
    assert await checker(current_user=admin) is admin

    with pytest.raises(HTTPException) as exc:
        await checker(current_user=CurrentUser(id=uuid4(), role="TEACHER"))
    assert exc.value.status_code == 403
