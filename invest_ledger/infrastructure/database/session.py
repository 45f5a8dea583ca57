"""Database session management and atomic-unit execution"""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Lost optimistic-lock races, lock timeouts/deadlocks and unique-key races
RETRYABLE_ERRORS = (StaleDataError, OperationalError, IntegrityError)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_atomic(
    db: Session,
    operation: Callable[[], T],
    *,
    name: str = "ledger operation",
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> T:
    """
    Run ``operation`` as one all-or-nothing unit on ``db``.

    Commits when the operation returns, rolls back on any exception. Conflicts
    from concurrent writers are retried with exponential backoff
    (base, 2*base, 4*base, ...); ``operation`` must therefore re-read every
    row it depends on. Domain errors are never retried.

    Raises:
        ConcurrencyConflictError: still conflicting after the last attempt
    """
    attempts = max_retries if max_retries is not None else settings.ledger_max_retries
    base = backoff_base if backoff_base is not None else settings.retry_backoff_base
    attempt = 0

    while True:
        attempt += 1
        try:
            result = operation()
            db.commit()
            return result

        except RETRYABLE_ERRORS as e:
            db.rollback()
            if attempt >= attempts:
                logger.warning(
                    f"{name} conflicted on every attempt",
                    extra={"operation": name, "attempts": attempt, "error": type(e).__name__},
                )
                raise ConcurrencyConflictError(name, attempt) from e

            backoff = base * (2 ** (attempt - 1))
            logger.info(
                f"{name} conflicted, retrying",
                extra={"operation": name, "attempt": attempt, "backoff_seconds": backoff},
            )
            time.sleep(backoff)

        except Exception:
            db.rollback()
            raise
