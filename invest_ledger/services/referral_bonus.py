"""First-investment referral bonuses and referral reporting"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import ValidationError
from invest_ledger.domain.models import (
    EarningType,
    ReferralBonusAward,
    ReferralStatus,
    TransactionStatus,
    TransactionType,
)
from invest_ledger.domain.referral import bonus_amount, bonus_percentage, referral_bonus_key
from invest_ledger.infrastructure.database.models import Earning, Referral
from invest_ledger.infrastructure.database.repositories import (
    EarningRepository,
    InvestmentRepository,
    ReferralRepository,
    TransactionRepository,
    WalletRepository,
)
from invest_ledger.infrastructure.database.session import run_atomic
from invest_ledger.infrastructure.observability.metrics import referral_bonus_counter
from invest_ledger.services.wallets import credit_balance
from invest_ledger.utils.date_utils import add_months, utc_now
from invest_ledger.utils.money import to_amount

logger = logging.getLogger(__name__)

MAX_REFERRAL_LEVEL = 10


@dataclass
class ReferralSummary:
    user_id: str
    total_referrals: int
    active_referrals: int
    total_earnings: Decimal
    tier: Optional[str]
    bonus_percentage: Decimal


def referrer_tier(db: Session, user_id: str) -> Optional[str]:
    """Tier of the user's highest-amount active investment, if any"""
    investment = InvestmentRepository(db).highest_active_for_user(user_id)
    return investment.plan_tier if investment else None


def award_referral_bonus(
    db: Session,
    referred_user_id: str,
    investment_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Optional[ReferralBonusAward]:
    """
    Credit the referrer of ``referred_user_id`` for that user's first investment.

    Returns None when no bonus applies: the investment is not the user's
    first, the user has no referrer, a bonus was already paid for them, or
    the referrer's tier earns nothing. The bonus earning, the referrer's
    wallet credit, the referral transaction and the referral totals are
    written together or not at all.
    """
    awarded_at = now or utc_now()
    key = referral_bonus_key(referred_user_id)

    def operation() -> Optional[ReferralBonusAward]:
        first = InvestmentRepository(db).first_for_user(referred_user_id)
        if first is None or first.id != investment_id:
            return None

        referral = ReferralRepository(db).get_by_referred(referred_user_id, lock=True)
        if referral is None:
            return None

        earnings = EarningRepository(db)
        if earnings.referral_bonus_exists(referred_user_id):
            return None

        tier = referrer_tier(db, referral.referrer_id)
        percentage = bonus_percentage(tier)
        if percentage <= 0:
            return None
        amount = bonus_amount(first.amount, percentage)
        if amount <= 0:
            return None

        wallets = WalletRepository(db)
        wallet = wallets.get_or_create(referral.referrer_id, lock=True)

        # The unique key makes a concurrent second award a no-op
        inserted = earnings.insert_if_absent(
            {
                "user_id": referral.referrer_id,
                "type": EarningType.REFERRAL_BONUS.value,
                "amount": amount,
                "earning_date": awarded_at.date(),
                "withdrawable_at": add_months(awarded_at, settings.referral_bonus_maturity_months),
                "referred_user_id": referred_user_id,
                "referral_tier": tier,
                "referral_percentage": percentage,
                "idempotency_key": key,
                "created_at": awarded_at,
            }
        )
        if not inserted:
            return None

        credit_balance(wallets.balance_for(wallet, settings.default_currency), amount)

        reference = f"ref_bonus_{uuid.uuid4()}"
        transaction = TransactionRepository(db).create(
            user_id=referral.referrer_id,
            type=TransactionType.REFERRAL.value,
            amount=amount,
            currency=settings.default_currency,
            reference=reference,
            status=TransactionStatus.CONFIRMED.value,
            tx_hash=f"referral_bonus_{reference}",
            confirmations=1,
        )

        referral.total_earnings = to_amount(referral.total_earnings + amount)
        referral.last_earning_at = awarded_at
        referral.status = ReferralStatus.ACTIVE.value
        db.flush()

        earning = earnings.get_by_key(key)
        return ReferralBonusAward(
            earning_id=earning.id,
            transaction_id=transaction.id,
            referrer_id=referral.referrer_id,
            referred_user_id=referred_user_id,
            tier=tier,
            percentage=percentage,
            amount=amount,
        )

    award = run_atomic(db, operation, name="award referral bonus")
    if award is None:
        referral_bonus_counter.labels(outcome="skipped").inc()
        return None

    referral_bonus_counter.labels(outcome="awarded").inc()
    logger.info(
        "Referral bonus awarded",
        extra={
            "referrer_id": award.referrer_id,
            "referred_user_id": referred_user_id,
            "tier": award.tier,
            "percentage": str(award.percentage),
            "amount": str(award.amount),
        },
    )
    return award


def award_referral_bonus_safely(
    db: Session,
    referred_user_id: str,
    investment_id: uuid.UUID,
) -> Optional[ReferralBonusAward]:
    """Best-effort award: a failure is logged and never reaches the investment flow"""
    try:
        return award_referral_bonus(db, referred_user_id, investment_id)
    except Exception as e:
        referral_bonus_counter.labels(outcome="error").inc()
        logger.error(
            f"Referral bonus failed: {e}",
            extra={"referred_user_id": referred_user_id, "investment_id": str(investment_id)},
        )
        return None


def register_referral(
    db: Session,
    referrer_id: str,
    referred_id: str,
    referral_code: str,
    level: int = 1,
) -> Referral:
    """Link a newly registered user to the referrer whose code they used"""
    if referrer_id == referred_id:
        raise ValidationError("Users cannot refer themselves")
    if not 1 <= level <= MAX_REFERRAL_LEVEL:
        raise ValidationError(f"Referral level must be between 1 and {MAX_REFERRAL_LEVEL}")

    def operation() -> Referral:
        repo = ReferralRepository(db)
        if repo.get_by_referred(referred_id) is not None:
            raise ValidationError("User already has a referrer")
        return repo.create(referrer_id, referred_id, referral_code, level)

    referral = run_atomic(db, operation, name="register referral")
    logger.info("Referral registered", extra={"referrer_id": referrer_id, "referred_id": referred_id})
    return referral


def referral_summary(db: Session, user_id: str) -> ReferralSummary:
    repo = ReferralRepository(db)
    _, total = repo.list_by_referrer(user_id, page=1, limit=1)
    _, active = repo.list_by_referrer(user_id, status=ReferralStatus.ACTIVE.value, page=1, limit=1)
    tier = referrer_tier(db, user_id)
    return ReferralSummary(
        user_id=user_id,
        total_referrals=total,
        active_referrals=active,
        total_earnings=repo.earnings_total(user_id),
        tier=tier,
        bonus_percentage=bonus_percentage(tier),
    )


def list_referred_users(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Referral], int]:
    return ReferralRepository(db).list_by_referrer(user_id, status=status, page=page, limit=limit)


def list_referral_earnings(db: Session, user_id: str, page: int = 1, limit: int = 10) -> Tuple[List[Earning], int]:
    return EarningRepository(db).list_for_user(
        user_id,
        earning_type=EarningType.REFERRAL_BONUS.value,
        page=page,
        page_size=limit,
    )
