from typing import Optional

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError

from app.core.exceptions import ConflictError
from app.db.session import run_with_retry


class _DriverError(Exception):
    def __init__(self, message: str, sqlstate: Optional[str] = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _db_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE tuition_charges SET status=?", {}, _DriverError("could not serialize access", sqlstate))


async def test_serialization_failure_is_retried():
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise _db_error("40001")
        return "done"

    assert await run_with_retry(operation, attempts=3) == "done"
    assert len(attempts) == 3


async def test_deadlock_that_persists_becomes_conflict():
    attempts = []

    async def operation():
        attempts.append(1)
        raise _db_error("40P01")

    with pytest.raises(ConflictError) as exc_info:
        await run_with_retry(operation, attempts=2)
    assert exc_info.value.status_code == 409
    assert len(attempts) == 2


async def test_other_integrity_errors_are_not_retried():
    attempts = []

    async def operation():
        attempts.append(1)
        raise IntegrityError(
            "INSERT INTO payments ...",
            {},
            _DriverError("CHECK constraint failed: chk_payment_amount_positive"),
        )

    with pytest.raises(IntegrityError):
        await run_with_retry(operation, attempts=3)
    assert len(attempts) == 1
