"""Earnings listing, totals and income breakdowns"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import ValidationError
from invest_ledger.domain.models import DailyIncome, EarningType, EarningsSummary
from invest_ledger.infrastructure.database.models import Earning
from invest_ledger.infrastructure.database.repositories import EarningRepository
from invest_ledger.services.accrual import backfill_user
from invest_ledger.utils.date_utils import generate_date_range, utc_now, utc_today
from invest_ledger.utils.money import ZERO

SORT_FIELDS = ("date", "amount", "withdrawableDate")
DEFAULT_BREAKDOWN_DAYS = 30


def list_earnings(
    db: Session,
    user_id: str,
    earning_type: Optional[str] = None,
    is_withdrawn: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "date",
    sort_order: str = "desc",
) -> Tuple[List[Earning], int]:
    if earning_type and earning_type not in {t.value for t in EarningType}:
        raise ValidationError(f"Unknown earning type: {earning_type}")
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")
    return EarningRepository(db).list_for_user(
        user_id,
        earning_type=earning_type,
        is_withdrawn=is_withdrawn,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )


def earnings_summary(db: Session, user_id: str, now: Optional[datetime] = None) -> EarningsSummary:
    repo = EarningRepository(db)
    total = withdrawn = investment = referral = ZERO

    for earning_type, is_withdrawn, amount in repo.totals_by_type_and_status(user_id):
        total += amount
        if is_withdrawn:
            withdrawn += amount
        if earning_type == EarningType.INVESTMENT_EARNING.value:
            investment += amount
        elif earning_type == EarningType.REFERRAL_BONUS.value:
            referral += amount

    available = total - withdrawn
    withdrawable = repo.eligible_total(user_id, now or utc_now())
    return EarningsSummary(
        total_earnings=total,
        total_withdrawn=withdrawn,
        total_available=available,
        investment_earnings=investment,
        referral_bonuses=referral,
        withdrawable_amount=withdrawable,
        # Unwithdrawn but not yet reservable: immature or held by an open withdrawal
        pending_amount=available - withdrawable,
    )


def _income_by_day(db: Session, user_id: str, start_day: date, end_day: date) -> Dict[date, DailyIncome]:
    incomes = {day: DailyIncome(day, ZERO, ZERO) for day in generate_date_range(start_day, end_day)}
    for day, earning_type, amount in EarningRepository(db).totals_by_day(user_id, start_day, end_day):
        income = incomes.get(day)
        if income is None:
            continue
        if earning_type == EarningType.INVESTMENT_EARNING.value:
            income.investment_earnings += amount
        elif earning_type == EarningType.REFERRAL_BONUS.value:
            income.referral_bonuses += amount
    return incomes


def today_income(db: Session, user_id: str, today: Optional[date] = None) -> DailyIncome:
    """Accrue today for the user if the sweep has not yet, then total it"""
    day = today or utc_today()
    backfill_user(db, user_id, day, day)
    return _income_by_day(db, user_id, day, day)[day]


def daily_breakdown(
    db: Session,
    user_id: str,
    start_day: Optional[date] = None,
    end_day: Optional[date] = None,
) -> List[DailyIncome]:
    """
    Per-day income over [start_day, end_day], oldest first.

    Missing accruals in the range are filled in first, so the breakdown does
    not depend on whether the daily sweep already ran. Defaults to the last
    30 days; the range is capped at ``daily_breakdown_max_days``.
    """
    end_day = end_day or utc_today()
    start_day = start_day or end_day - timedelta(days=DEFAULT_BREAKDOWN_DAYS - 1)
    if start_day > end_day:
        raise ValidationError("Start date must be on or before end date")
    if (end_day - start_day).days + 1 > settings.daily_breakdown_max_days:
        raise ValidationError(f"Date range cannot exceed {settings.daily_breakdown_max_days} days")

    backfill_user(db, user_id, start_day, end_day)
    incomes = _income_by_day(db, user_id, start_day, end_day)
    return [incomes[day] for day in sorted(incomes)]


def total_of(incomes: List[DailyIncome]) -> Decimal:
    return sum((income.total for income in incomes), ZERO)
