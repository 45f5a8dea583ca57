"""Unit tests for atomic-unit retries"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from invest_ledger.domain.exceptions import ConcurrencyConflictError, InsufficientEarningsError
from invest_ledger.infrastructure.database.session import run_atomic


class FlakyOperation:
    """Raises the given errors in order, then returns 'done'"""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "done"


def test_commits_on_success():
    db = MagicMock()
    assert run_atomic(db, lambda: 42) == 42
    db.commit.assert_called_once()
    db.rollback.assert_not_called()


def test_retries_conflicts_then_succeeds():
    db = MagicMock()
    operation = FlakyOperation(
        StaleDataError("version mismatch"),
        OperationalError("SELECT 1", {}, Exception("deadlock detected")),
    )

    assert run_atomic(db, operation, max_retries=3, backoff_base=0) == "done"
    assert operation.calls == 3
    assert db.rollback.call_count == 2
    db.commit.assert_called_once()


def test_gives_up_with_concurrency_conflict():
    db = MagicMock()
    operation = FlakyOperation(*[IntegrityError("INSERT", {}, Exception("duplicate key")) for _ in range(3)])

    with pytest.raises(ConcurrencyConflictError) as exc:
        run_atomic(db, operation, name="earnings withdrawal", max_retries=3, backoff_base=0)

    assert exc.value.attempts == 3
    assert exc.value.operation == "earnings withdrawal"
    db.commit.assert_not_called()


def test_domain_errors_roll_back_without_retry():
    db = MagicMock()
    operation = FlakyOperation(InsufficientEarningsError(1, 2))

    with pytest.raises(InsufficientEarningsError):
        run_atomic(db, operation, max_retries=3, backoff_base=0)

    assert operation.calls == 1
    db.rollback.assert_called_once()
    db.commit.assert_not_called()
