"""Daily accrual arithmetic for investment earnings"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

from invest_ledger.utils.date_utils import ensure_utc, start_of_day
from invest_ledger.utils.money import Number, to_amount


def daily_accrual_amount(principal: Number, percentage: Number, period_days: int = 30) -> Decimal:
    """
    Per-day share of a plan's periodic return.

    The flat period return (principal * percentage / 100) is spread evenly
    over the period, so 30 daily rows add up to one period's return.

    Example:
        200 USDT on Gold (10%) → 200 * 10 / 100 / 30 = 0.66666667
    """
    if period_days <= 0:
        raise ValueError("period_days must be positive")
    principal = to_amount(principal)
    rate = Decimal(str(percentage))
    return to_amount(principal * rate / Decimal(100) / Decimal(period_days))


def investment_overlaps_day(start: datetime, end: datetime, day: date) -> bool:
    """True when [start, end) intersects the UTC calendar day"""
    day_start = start_of_day(day)
    day_end = day_start + timedelta(days=1)
    return ensure_utc(start) < day_end and ensure_utc(end) > day_start


def withdrawable_at(day: date, maturity_days: int = 30) -> datetime:
    """Maturity moment of an earning accrued for ``day``"""
    return start_of_day(day) + timedelta(days=maturity_days)


def accrual_key(investment_id: uuid.UUID, day: date) -> str:
    """Idempotency key: one investment earning per investment per day"""
    return f"accrual:{investment_id}:{day.isoformat()}"
