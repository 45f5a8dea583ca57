"""Investment creation and lifecycle"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import InvalidStateTransitionError, NotFoundError, ValidationError
from invest_ledger.domain.models import (
    InvestmentReceipt,
    InvestmentStatus,
    PlanConfig,
    TransactionStatus,
    TransactionType,
)
from invest_ledger.domain.plans import PlanCatalog
from invest_ledger.infrastructure.database.models import Investment
from invest_ledger.infrastructure.database.repositories import (
    InvestmentRepository,
    TransactionRepository,
    WalletRepository,
)
from invest_ledger.infrastructure.database.session import run_atomic
from invest_ledger.infrastructure.observability.metrics import investment_counter
from invest_ledger.services.plans import load_catalog
from invest_ledger.services.referral_bonus import award_referral_bonus_safely
from invest_ledger.services.wallets import debit_balance
from invest_ledger.utils.date_utils import ensure_utc, utc_now
from invest_ledger.utils.money import Number, to_amount

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "id",
    "plan",
    "tier",
    "amount",
    "currency",
    "percentage",
    "monthly_return",
    "status",
    "start_date",
    "end_date",
    "created_at",
]


def create_investment(
    db: Session,
    user_id: str,
    plan_key: str,
    amount: Number,
    currency: Optional[str] = None,
    catalog: Optional[PlanCatalog] = None,
    now: Optional[datetime] = None,
) -> InvestmentReceipt:
    """
    Commit wallet funds to a plan.

    The plan and amount are validated first. The wallet debit, the active
    investment and its debit transaction are then written as one unit. The
    referrer's first-investment bonus runs afterwards on its own; its
    failure never undoes the investment.

    Raises:
        PlanNotFoundError: unknown or inactive plan
        AmountOutOfRangeError: amount outside the plan's bounds
        InsufficientBalanceError: wallet balance below the amount
    """
    code = (currency or settings.default_currency).strip().upper()
    if code != settings.default_currency:
        raise ValidationError(f"Investments are only accepted in {settings.default_currency}")

    catalog = catalog or load_catalog(db)
    plan: PlanConfig = catalog.check_amount(plan_key, amount)
    value = to_amount(amount)
    monthly_return = catalog.periodic_return(value, plan.key)

    def operation() -> InvestmentReceipt:
        wallets = WalletRepository(db)
        wallet = wallets.get_or_create(user_id, lock=True)
        balance = wallets.balance_for(wallet, code)
        debit_balance(balance, value)

        start = now or utc_now()
        investment = Investment(
            user_id=user_id,
            plan_key=plan.key,
            plan_name=plan.name,
            plan_tier=plan.tier,
            percentage=plan.percentage,
            amount=value,
            currency=code,
            status=InvestmentStatus.ACTIVE.value,
            start_date=start,
            end_date=start + timedelta(days=plan.duration_days),
            monthly_return=monthly_return,
            created_at=start,
        )
        db.add(investment)
        db.flush()

        transaction = TransactionRepository(db).create(
            user_id=user_id,
            type=TransactionType.INVESTMENT.value,
            amount=value,
            currency=code,
            reference=f"inv_{uuid.uuid4()}",
            status=TransactionStatus.CONFIRMED.value,
            confirmations=1,
            created_at=start,
        )
        return InvestmentReceipt(
            investment_id=investment.id,
            transaction_id=transaction.id,
            reference=transaction.reference,
            plan=plan.name,
            amount=value,
            monthly_return=monthly_return,
            start_date=start,
            end_date=investment.end_date,
            wallet_balance=to_amount(balance.balance),
        )

    receipt = run_atomic(db, operation, name="create investment")

    investment_counter.labels(tier=plan.tier).inc()
    logger.info(
        "Investment created",
        extra={
            "user_id": user_id,
            "investment_id": str(receipt.investment_id),
            "plan": plan.key,
            "amount": str(value),
        },
    )

    award_referral_bonus_safely(db, user_id, receipt.investment_id)
    return receipt


def list_investments(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Investment], int]:
    return InvestmentRepository(db).list_for_user(user_id, status=status, page=page, limit=limit)


def get_investment(db: Session, user_id: str, investment_id: uuid.UUID) -> Investment:
    investment = InvestmentRepository(db).get(investment_id, user_id=user_id)
    if investment is None:
        raise NotFoundError("Investment", investment_id)
    return investment


def _transition(
    db: Session,
    user_id: str,
    investment_id: uuid.UUID,
    allowed_from: InvestmentStatus,
    target: InvestmentStatus,
    action: str,
) -> Investment:
    def operation() -> Investment:
        investment = InvestmentRepository(db).get(investment_id, user_id=user_id, lock=True)
        if investment is None:
            raise NotFoundError("Investment", investment_id)
        if investment.status != allowed_from.value:
            raise InvalidStateTransitionError("investment", investment.status, action)
        investment.status = target.value
        db.flush()
        return investment

    investment = run_atomic(db, operation, name=f"{action} investment")
    logger.info(
        f"Investment {target.value}",
        extra={"user_id": user_id, "investment_id": str(investment_id)},
    )
    return investment


def pause_investment(db: Session, user_id: str, investment_id: uuid.UUID) -> Investment:
    """Paused investments stop accruing until resumed"""
    return _transition(db, user_id, investment_id, InvestmentStatus.ACTIVE, InvestmentStatus.PAUSED, "pause")


def resume_investment(db: Session, user_id: str, investment_id: uuid.UUID) -> Investment:
    return _transition(db, user_id, investment_id, InvestmentStatus.PAUSED, InvestmentStatus.ACTIVE, "resume")


def cancel_investment(db: Session, user_id: str, investment_id: uuid.UUID) -> Investment:
    return _transition(db, user_id, investment_id, InvestmentStatus.PENDING, InvestmentStatus.CANCELLED, "cancel")


def _iso(value: Optional[datetime]) -> str:
    return ensure_utc(value).isoformat() if value else ""


def export_investments(db: Session, user_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Flat rows, one per investment, keyed by EXPORT_COLUMNS"""
    rows = []
    for investment in InvestmentRepository(db).all_for_user(user_id, status=status):
        rows.append(
            {
                "id": str(investment.id),
                "plan": investment.plan_name,
                "tier": investment.plan_tier,
                "amount": str(to_amount(investment.amount)),
                "currency": investment.currency,
                "percentage": str(investment.percentage),
                "monthly_return": str(to_amount(investment.monthly_return)),
                "status": investment.status,
                "start_date": _iso(investment.start_date),
                "end_date": _iso(investment.end_date),
                "created_at": _iso(investment.created_at),
            }
        )
    return rows
