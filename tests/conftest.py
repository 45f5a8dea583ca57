"""Pytest fixtures for testing"""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from invest_ledger.api.main import create_app
from invest_ledger.domain.models import EarningType, InvestmentStatus
from invest_ledger.infrastructure.database.models import Base, Earning, Investment
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services.wallets import credit_manual_deposit


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Independent sessions on the test database, e.g. one per thread"""
    return TestingSessionLocal


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def investor_headers() -> dict:
    return {"X-User-Id": "investor_1", "X-User-Role": "investor"}


@pytest.fixture
def admin_headers() -> dict:
    return {"X-User-Id": "operator_1", "X-User-Role": "admin"}


@pytest.fixture
def fund_wallet(db: Session) -> Callable[..., None]:
    """Credit a user's wallet as an operator would"""

    def fund(user_id: str, amount: str, currency: str = "USDT") -> None:
        credit_manual_deposit(db, user_id, Decimal(amount), currency)

    return fund


@pytest.fixture
def seed_investment(db: Session) -> Callable[..., Investment]:
    """Insert an investment directly, e.g. one that started days ago"""

    def seed(
        user_id: str,
        amount: str = "200",
        percentage: str = "10",
        tier: str = "Gold",
        started_days_ago: float = 0,
        status: InvestmentStatus = InvestmentStatus.ACTIVE,
        duration_days: int = 30,
    ) -> Investment:
        start = datetime.now(timezone.utc) - timedelta(days=started_days_ago)
        investment = Investment(
            user_id=user_id,
            plan_key=tier.lower(),
            plan_name=f"{tier} Plan",
            plan_tier=tier,
            percentage=Decimal(percentage),
            amount=Decimal(amount),
            currency="USDT",
            status=status.value,
            start_date=start,
            end_date=start + timedelta(days=duration_days),
            monthly_return=Decimal(amount) * Decimal(percentage) / 100,
            created_at=start,
        )
        db.add(investment)
        db.commit()
        return investment

    return seed


@pytest.fixture
def seed_earning(db: Session) -> Callable[..., Earning]:
    """Insert an earning whose maturity is ``matured_days_ago`` in the past (negative = future)"""

    def seed(
        user_id: str,
        amount: str,
        matured_days_ago: float = 1,
        earning_type: EarningType = EarningType.INVESTMENT_EARNING,
        investment_id: Optional[uuid.UUID] = None,
    ) -> Earning:
        now = datetime.now(timezone.utc)
        withdrawable = now - timedelta(days=matured_days_ago)
        earning = Earning(
            user_id=user_id,
            investment_id=investment_id,
            type=earning_type.value,
            amount=Decimal(amount),
            earning_date=(withdrawable - timedelta(days=30)).date(),
            withdrawable_at=withdrawable,
            is_withdrawn=False,
            created_at=now,
        )
        db.add(earning)
        db.commit()
        return earning

    return seed


@pytest.fixture
def today() -> date:
    return datetime.now(timezone.utc).date()
