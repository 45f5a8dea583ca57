"""Integration tests for earnings summaries and income breakdowns"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from invest_ledger.domain.exceptions import ValidationError
from invest_ledger.domain.models import EarningType
from invest_ledger.services import earnings


def test_summary_splits_by_type_and_maturity(db: Session, seed_earning):
    seed_earning("investor_1", "5", matured_days_ago=2)
    seed_earning("investor_1", "3", matured_days_ago=-5)  # Matures in five days
    seed_earning("investor_1", "2", matured_days_ago=1, earning_type=EarningType.REFERRAL_BONUS)
    seed_earning("someone_else", "100", matured_days_ago=2)

    summary = earnings.earnings_summary(db, "investor_1")

    assert summary.total_earnings == Decimal("10")
    assert summary.total_withdrawn == Decimal("0")
    assert summary.total_available == Decimal("10")
    assert summary.investment_earnings == Decimal("8")
    assert summary.referral_bonuses == Decimal("2")
    assert summary.withdrawable_amount == Decimal("7")
    assert summary.pending_amount == Decimal("3")


def test_today_income_backfills_today(db: Session, seed_investment):
    seed_investment("investor_1", amount="300", percentage="10", started_days_ago=2)

    income = earnings.today_income(db, "investor_1")

    assert income.investment_earnings == Decimal("1")
    assert income.referral_bonuses == Decimal("0")
    assert income.total == Decimal("1")


def test_daily_breakdown_covers_every_day(db: Session, seed_investment, today):
    seed_investment("investor_1", amount="300", percentage="10", started_days_ago=2)

    days = earnings.daily_breakdown(db, "investor_1", today - timedelta(days=4), today)

    assert [d.day for d in days] == [today - timedelta(days=n) for n in range(4, -1, -1)]
    assert [d.investment_earnings for d in days] == [
        Decimal("0"),
        Decimal("0"),
        Decimal("1"),
        Decimal("1"),
        Decimal("1"),
    ]
    assert earnings.total_of(days) == Decimal("3")


def test_daily_breakdown_defaults_to_thirty_days(db: Session, today):
    days = earnings.daily_breakdown(db, "investor_1")
    assert len(days) == 30
    assert days[-1].day == today


def test_daily_breakdown_range_checks(db: Session, today):
    with pytest.raises(ValidationError):
        earnings.daily_breakdown(db, "investor_1", today, today - timedelta(days=1))
    with pytest.raises(ValidationError):
        earnings.daily_breakdown(db, "investor_1", today - timedelta(days=400), today)


def test_list_earnings_filters_and_paginates(db: Session, seed_earning):
    for n in range(5):
        seed_earning("investor_1", str(n + 1), matured_days_ago=n)
    seed_earning("investor_1", "9", earning_type=EarningType.REFERRAL_BONUS)

    rows, total = earnings.list_earnings(
        db,
        "investor_1",
        earning_type=EarningType.INVESTMENT_EARNING.value,
        page=1,
        page_size=2,
        sort_by="amount",
        sort_order="asc",
    )

    assert total == 5
    assert [r.amount for r in rows] == [Decimal("1"), Decimal("2")]


def test_list_earnings_rejects_unknown_sort(db: Session):
    with pytest.raises(ValidationError):
        earnings.list_earnings(db, "investor_1", sort_by="colour")
