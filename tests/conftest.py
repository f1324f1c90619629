import os
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import TuitionChargeStatus
from app.core.models import Group, Student, TuitionCharge
from app.main import app
from app.db.session import Base, get_db


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; also overrides the FastAPI dependency."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
def current_user() -> CurrentUser:
    return CurrentUser(id=uuid4(), role="ADMIN")


@pytest.fixture()
async def client(db_session: AsyncSession, current_user: CurrentUser) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, authenticated as current_user."""
    app.dependency_overrides[get_current_user] = lambda: current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture()
def make_student(db_session: AsyncSession):
    async def _make(full_name: str = "Aziz Karimov", phone: str = "+998901234567") -> Student:
        student = Student(full_name=full_name, phone=phone)
        db_session.add(student)
        await db_session.commit()
        return student

    return _make


@pytest.fixture()
def make_group(db_session: AsyncSession):
    async def _make(name: str = "English A1", monthly_fee: int = 100000, days_pattern: str = "ODD") -> Group:
        group = Group(name=name, monthly_fee=monthly_fee, days_pattern=days_pattern)
        db_session.add(group)
        await db_session.commit()
        return group

    return _make


@pytest.fixture()
def make_charge(db_session: AsyncSession):
    """Insert a charge row directly, bypassing the calculator."""

    async def _make(
        student: Student,
        group: Group,
        year: int,
        month: int,
        amount_due,
        discount=0,
        status: str = TuitionChargeStatus.PENDING.value,
    ) -> TuitionCharge:
        charge = TuitionCharge(
            student_id=student.id,
            group_id=group.id,
            year=year,
            month=month,
            amount_due=Decimal(str(amount_due)),
            discount=Decimal(str(discount)),
            planned_lessons=12,
            charged_lessons=12,
            status=status,
        )
        db_session.add(charge)
        await db_session.commit()
        return charge

    return _make
