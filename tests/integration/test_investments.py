"""Integration tests for investments and first-investment referral bonuses"""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from invest_ledger.domain.exceptions import (
    AmountOutOfRangeError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundError,
    PlanNotFoundError,
    ValidationError,
)
from invest_ledger.domain.models import EarningType, InvestmentStatus, ReferralStatus, TransactionType
from invest_ledger.infrastructure.database.models import Earning, Investment, Referral, Transaction
from invest_ledger.services import investments, referral_bonus
from invest_ledger.services.wallets import get_wallet_view


def balance_of(db: Session, user_id: str) -> Decimal:
    view = get_wallet_view(db, user_id)
    return next(b.balance for b in view.balances if b.currency == "USDT")


class TestCreateInvestment:
    def test_debits_wallet_and_records_investment(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "1000")

        receipt = investments.create_investment(db, "investor_1", "gold", "200")

        assert receipt.plan == "Gold Plan"
        assert receipt.monthly_return == Decimal("20")
        assert receipt.wallet_balance == Decimal("800")
        assert receipt.reference.startswith("inv_")
        assert (receipt.end_date - receipt.start_date).days == 30
        assert balance_of(db, "investor_1") == Decimal("800")

        investment = db.get(Investment, receipt.investment_id)
        assert investment.status == InvestmentStatus.ACTIVE.value
        assert investment.plan_tier == "Gold"
        transaction = db.get(Transaction, receipt.transaction_id)
        assert transaction.type == TransactionType.INVESTMENT.value

    def test_plan_name_spelling_is_forgiving(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "100")

        receipt = investments.create_investment(db, "investor_1", "Bronze Plan", "30")

        assert receipt.plan == "Bronze Plan"

    def test_insufficient_balance_leaves_nothing_behind(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "150")

        with pytest.raises(InsufficientBalanceError):
            investments.create_investment(db, "investor_1", "gold", "200")

        assert db.query(Investment).count() == 0
        assert balance_of(db, "investor_1") == Decimal("150")

    def test_amount_outside_plan_range(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "1000")

        with pytest.raises(AmountOutOfRangeError):
            investments.create_investment(db, "investor_1", "bronze", "80")

    def test_unknown_plan(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "1000")

        with pytest.raises(PlanNotFoundError):
            investments.create_investment(db, "investor_1", "titanium", "80")

    def test_only_usdt(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "1000", currency="BTC")

        with pytest.raises(ValidationError):
            investments.create_investment(db, "investor_1", "gold", "200", currency="BTC")


class TestLifecycle:
    def test_pause_then_resume(self, db: Session, seed_investment):
        investment = seed_investment("investor_1")

        paused = investments.pause_investment(db, "investor_1", investment.id)
        assert paused.status == InvestmentStatus.PAUSED.value

        resumed = investments.resume_investment(db, "investor_1", investment.id)
        assert resumed.status == InvestmentStatus.ACTIVE.value

    def test_resume_requires_paused(self, db: Session, seed_investment):
        investment = seed_investment("investor_1")

        with pytest.raises(InvalidStateTransitionError):
            investments.resume_investment(db, "investor_1", investment.id)

    def test_cancel_only_from_pending(self, db: Session, seed_investment):
        active = seed_investment("investor_1")
        pending = seed_investment("investor_1", status=InvestmentStatus.PENDING)

        with pytest.raises(InvalidStateTransitionError):
            investments.cancel_investment(db, "investor_1", active.id)
        assert investments.cancel_investment(db, "investor_1", pending.id).status == InvestmentStatus.CANCELLED.value

    def test_other_users_investment_is_not_found(self, db: Session, seed_investment):
        investment = seed_investment("investor_1")

        with pytest.raises(NotFoundError):
            investments.get_investment(db, "investor_2", investment.id)
        with pytest.raises(NotFoundError):
            investments.pause_investment(db, "investor_2", investment.id)

    def test_export_rows(self, db: Session, seed_investment):
        seed_investment("investor_1", amount="300", tier="Gold")

        rows = investments.export_investments(db, "investor_1")

        assert len(rows) == 1
        assert set(rows[0]) == set(investments.EXPORT_COLUMNS)
        assert rows[0]["amount"] == "300.00000000"
        assert rows[0]["tier"] == "Gold"


class TestReferralBonus:
    @pytest.fixture
    def referred(self, db: Session, fund_wallet):
        """investor_1 was referred by ref_1 and has money to invest"""
        referral_bonus.register_referral(db, "ref_1", "investor_1", "REF1CODE")
        fund_wallet("investor_1", "1000")
        fund_wallet("ref_1", "400")

    def test_platinum_referrer_earns_five_percent(self, db: Session, seed_investment, referred):
        seed_investment("ref_1", amount="600", percentage="15", tier="Platinum")

        investments.create_investment(db, "investor_1", "gold", "200")

        bonus = db.query(Earning).filter(Earning.type == EarningType.REFERRAL_BONUS.value).one()
        assert bonus.user_id == "ref_1"
        assert bonus.amount == Decimal("10")
        assert bonus.referred_user_id == "investor_1"
        assert bonus.referral_tier == "Platinum"
        assert bonus.investment_id is None
        assert bonus.is_withdrawn is False
        assert balance_of(db, "ref_1") == Decimal("410")

        referral = db.query(Referral).filter(Referral.referred_id == "investor_1").one()
        assert referral.total_earnings == Decimal("10")
        assert referral.status == ReferralStatus.ACTIVE.value

        bonus_tx = db.query(Transaction).filter(Transaction.type == TransactionType.REFERRAL.value).one()
        assert bonus_tx.reference.startswith("ref_bonus_")
        assert bonus_tx.tx_hash == f"referral_bonus_{bonus_tx.reference}"

    def test_gold_referrer_earns_three_percent(self, db: Session, seed_investment, referred):
        seed_investment("ref_1", amount="200", tier="Gold")

        investments.create_investment(db, "investor_1", "gold", "200")

        assert balance_of(db, "ref_1") == Decimal("406")

    def test_referrer_without_active_investment_earns_nothing(self, db: Session, referred):
        investments.create_investment(db, "investor_1", "gold", "200")

        assert db.query(Earning).count() == 0
        assert balance_of(db, "ref_1") == Decimal("400")

    def test_only_the_first_investment_pays(self, db: Session, seed_investment, referred):
        seed_investment("ref_1", amount="600", percentage="15", tier="Platinum")

        investments.create_investment(db, "investor_1", "gold", "200")
        investments.create_investment(db, "investor_1", "gold", "300")

        assert db.query(Earning).filter(Earning.type == EarningType.REFERRAL_BONUS.value).count() == 1
        assert balance_of(db, "ref_1") == Decimal("410")

    def test_bonus_failure_keeps_the_investment(self, db: Session, seed_investment, referred, monkeypatch):
        seed_investment("ref_1", amount="600", percentage="15", tier="Platinum")

        def broken(*args, **kwargs):
            raise RuntimeError("bonus ledger unavailable")

        monkeypatch.setattr(referral_bonus, "award_referral_bonus", broken)

        receipt = investments.create_investment(db, "investor_1", "gold", "200")

        assert db.get(Investment, receipt.investment_id) is not None
        assert balance_of(db, "investor_1") == Decimal("800")
        assert balance_of(db, "ref_1") == Decimal("400")

    def test_summary_reports_earnings(self, db: Session, seed_investment, referred):
        seed_investment("ref_1", amount="600", percentage="15", tier="Platinum")
        investments.create_investment(db, "investor_1", "gold", "200")

        summary = referral_bonus.referral_summary(db, "ref_1")

        assert summary.total_referrals == 1
        assert summary.active_referrals == 1
        assert summary.total_earnings == Decimal("10")
        assert summary.tier == "Platinum"
        assert summary.bonus_percentage == Decimal("5")

        rows, total = referral_bonus.list_referral_earnings(db, "ref_1")
        assert total == 1
        assert rows[0].amount == Decimal("10")


class TestRegisterReferral:
    def test_self_referral_is_rejected(self, db: Session):
        with pytest.raises(ValidationError):
            referral_bonus.register_referral(db, "investor_1", "investor_1", "CODE")

    def test_a_user_has_one_referrer(self, db: Session):
        referral_bonus.register_referral(db, "ref_1", "investor_1", "CODE1")

        with pytest.raises(ValidationError):
            referral_bonus.register_referral(db, "ref_2", "investor_1", "CODE2")

    def test_level_bounds(self, db: Session):
        with pytest.raises(ValidationError):
            referral_bonus.register_referral(db, "ref_1", "investor_1", "CODE", level=11)
