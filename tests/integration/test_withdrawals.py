"""Integration tests for earnings and wallet withdrawals"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker

from invest_ledger.domain.exceptions import (
    InsufficientBalanceError,
    InsufficientEarningsError,
    InvalidStateTransitionError,
    LedgerError,
    NoWithdrawableEarningsError,
    ValidationError,
    WalletNotFoundError,
)
from invest_ledger.domain.models import TransactionStatus
from invest_ledger.infrastructure.database.models import Earning, Transaction
from invest_ledger.services import withdrawals
from invest_ledger.services.wallets import get_wallet_view

ADDRESS = "TXYZabcdefghijklmnop1234567890"


def balance_of(db: Session, user_id: str, currency: str = "USDT") -> Decimal:
    view = get_wallet_view(db, user_id)
    return next(b.balance for b in view.balances if b.currency == currency)


class TestEarningsWithdrawal:
    def test_reserves_oldest_first_and_splits_last_row(self, db: Session, seed_earning):
        older = seed_earning("investor_1", "5", matured_days_ago=3)
        newer = seed_earning("investor_1", "8", matured_days_ago=2)
        older_id, newer_id = older.id, newer.id

        receipt = withdrawals.request_earnings_withdrawal(db, "investor_1", "10", ADDRESS)

        assert receipt.status == TransactionStatus.PENDING
        assert receipt.reference.startswith("earn_with_")
        assert receipt.reserved_earning_ids == [older_id, newer_id]

        assert db.get(Earning, older_id).amount == Decimal("5")
        assert db.get(Earning, newer_id).amount == Decimal("5")
        remainder = db.query(Earning).filter(Earning.split_from_id == newer_id).one()
        assert remainder.amount == Decimal("3")
        assert remainder.withdrawal_transaction_id is None
        assert withdrawals.withdrawable_amount(db, "investor_1") == Decimal("3")

    def test_reserved_rows_stay_unwithdrawn_until_confirmed(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)
        receipt = withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS)

        reserved = db.query(Earning).filter(Earning.withdrawal_transaction_id == receipt.transaction_id).all()
        assert [row.is_withdrawn for row in reserved] == [False]

        outcome = withdrawals.confirm_withdrawal(db, receipt.transaction_id, tx_hash="0xabc")

        assert outcome.status == TransactionStatus.CONFIRMED
        assert outcome.earnings_affected == 1
        db.expire_all()
        assert all(row.is_withdrawn for row in db.query(Earning).all())
        assert db.get(Transaction, receipt.transaction_id).tx_hash == "0xabc"

    def test_confirming_twice_is_rejected(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)
        receipt = withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS)
        withdrawals.confirm_withdrawal(db, receipt.transaction_id)

        with pytest.raises(InvalidStateTransitionError):
            withdrawals.confirm_withdrawal(db, receipt.transaction_id)

    def test_failure_releases_reserved_earnings(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)
        seed_earning("investor_1", "8", matured_days_ago=2)
        receipt = withdrawals.request_earnings_withdrawal(db, "investor_1", "10", ADDRESS)

        outcome = withdrawals.fail_withdrawal(db, receipt.transaction_id, reason="payout rejected")

        assert outcome.status == TransactionStatus.FAILED
        assert withdrawals.withdrawable_amount(db, "investor_1") == Decimal("13")
        assert db.get(Transaction, receipt.transaction_id).failure_reason == "payout rejected"
        db.expire_all()
        assert db.query(Earning).filter(Earning.withdrawal_transaction_id == receipt.transaction_id).count() == 0
        assert not any(row.is_withdrawn for row in db.query(Earning).all())

    def test_processing_keeps_earnings_reserved(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)
        receipt = withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS)

        outcome = withdrawals.mark_processing(db, receipt.transaction_id)

        assert outcome.status == TransactionStatus.PROCESSING
        assert withdrawals.withdrawable_amount(db, "investor_1") == Decimal("0")
        with pytest.raises(InvalidStateTransitionError):
            withdrawals.mark_processing(db, receipt.transaction_id)

    def test_immature_earnings_cannot_be_withdrawn(self, db: Session, seed_earning):
        seed_earning("investor_1", "50", matured_days_ago=-10)

        with pytest.raises(NoWithdrawableEarningsError):
            withdrawals.request_earnings_withdrawal(db, "investor_1", "10", ADDRESS)

    def test_request_above_matured_total_is_rejected(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)

        with pytest.raises(InsufficientEarningsError) as exc:
            withdrawals.request_earnings_withdrawal(db, "investor_1", "6", ADDRESS)

        assert exc.value.details["available"] == "5.00000000"
        assert db.query(Transaction).count() == 0

    def test_second_request_finds_nothing_left(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)
        withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS)

        with pytest.raises(NoWithdrawableEarningsError):
            withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS)

    def test_malformed_address_is_rejected(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)

        with pytest.raises(ValidationError):
            withdrawals.request_earnings_withdrawal(db, "investor_1", "5", "short")
        with pytest.raises(ValidationError):
            withdrawals.request_earnings_withdrawal(db, "investor_1", "5", "TXYZ abcdefghijklmnop")

    def test_only_usdt_earnings_can_be_withdrawn(self, db: Session, seed_earning):
        seed_earning("investor_1", "5", matured_days_ago=3)

        with pytest.raises(ValidationError):
            withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS, currency="BTC")

    def test_concurrent_requests_cannot_reserve_the_same_rows(
        self, db: Session, seed_earning, session_factory: sessionmaker
    ):
        seed_earning("investor_1", "5", matured_days_ago=3)
        seed_earning("investor_1", "5", matured_days_ago=2)
        barrier = threading.Barrier(2)
        results = []

        def withdraw():
            session = session_factory()
            try:
                barrier.wait()
                withdrawals.request_earnings_withdrawal(session, "investor_1", "7", ADDRESS)
                results.append("ok")
            except LedgerError as e:
                results.append(e.code.value)
            finally:
                session.close()

        threads = [threading.Thread(target=withdraw) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(results) == ["INSUFFICIENT_EARNINGS", "ok"]
        db.expire_all()
        rows = db.query(Earning).filter(Earning.user_id == "investor_1").all()
        assert sum(row.amount for row in rows if row.withdrawal_transaction_id is not None) == Decimal("7")
        assert sum(row.amount for row in rows) == Decimal("10")
        assert db.query(Transaction).count() == 1


class TestWalletWithdrawal:
    def test_debits_balance_up_front(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "100")

        receipt = withdrawals.request_wallet_withdrawal(db, "investor_1", "40", "USDT", ADDRESS)

        assert receipt.reference.startswith("wd_")
        assert balance_of(db, "investor_1") == Decimal("60")

    def test_failure_gives_the_money_back(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "100")
        receipt = withdrawals.request_wallet_withdrawal(db, "investor_1", "40", "USDT", ADDRESS)

        withdrawals.fail_withdrawal(db, receipt.transaction_id)

        assert balance_of(db, "investor_1") == Decimal("100")

    def test_unknown_wallet(self, db: Session):
        with pytest.raises(WalletNotFoundError):
            withdrawals.request_wallet_withdrawal(db, "nobody", "1", "USDT", ADDRESS)

    def test_insufficient_balance(self, db: Session, fund_wallet):
        fund_wallet("investor_1", "10")

        with pytest.raises(InsufficientBalanceError):
            withdrawals.request_wallet_withdrawal(db, "investor_1", "40", "USDT", ADDRESS)

        assert balance_of(db, "investor_1") == Decimal("10")


def test_list_withdrawals_filters_by_status(db: Session, seed_earning, fund_wallet):
    seed_earning("investor_1", "5", matured_days_ago=3)
    fund_wallet("investor_2", "50")
    earnings_receipt = withdrawals.request_earnings_withdrawal(db, "investor_1", "5", ADDRESS)
    withdrawals.request_wallet_withdrawal(db, "investor_2", "20", "USDT", ADDRESS)
    withdrawals.confirm_withdrawal(db, earnings_receipt.transaction_id)

    pending, total = withdrawals.list_withdrawals(db, status=TransactionStatus.PENDING.value)

    assert total == 1
    assert pending[0].user_id == "investor_2"
