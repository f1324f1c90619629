import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings
from app.core.exceptions import ConflictError, ServiceError

logger = logging.getLogger(__name__)

# pool_pre_ping: check connection is alive before use (avoids "connection is closed" errors
# when DB or network closed idle connections).
# pool_recycle: discard connections after this many seconds to avoid stale connections.
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    pool_pre_ping=True,
    pool_recycle=300,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        await db.commit()
    except (ServiceError, DBAPIError):
        await db.rollback()
        raise
    except Exception:
        logger.exception("Unexpected error, transaction rolled back")
        await db.rollback()
        raise


def _is_retryable(exc: DBAPIError) -> bool:
    if isinstance(exc, IntegrityError):
        # Only a lost race on the charge natural key; the retry will find the row.
        text = str(exc.orig)
        return "uq_tuition_charge_student_group_month" in text or "UNIQUE constraint failed: tuition_charges" in text
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in _RETRYABLE_SQLSTATES


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
) -> T:
    """Re-run a whole unit of work when the store reports a write conflict.

    The operation must own its transaction (commit/rollback inside), so each
    attempt starts from a clean session state.
    """
    attempts = attempts or settings.allocation_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except DBAPIError as exc:
            if not _is_retryable(exc):
                raise
            if attempt == attempts:
                logger.warning("Write conflict persisted after %s attempts: %s", attempts, exc)
                raise ConflictError("The ledger is busy, please retry the operation") from exc
            logger.warning("Write conflict on attempt %s/%s, retrying", attempt, attempts)
    raise ConflictError("The ledger is busy, please retry the operation")
