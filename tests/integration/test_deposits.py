"""Integration tests for deposit addresses and deposit crediting"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from invest_ledger.domain.exceptions import ValidationError
from invest_ledger.domain.models import TransactionStatus
from invest_ledger.infrastructure.database.models import ChainDeposit, Transaction
from invest_ledger.services import wallets

SENDER = "TSenderAddress000000000000000001"
SEEN_AT = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def usdt_view(db: Session, user_id: str) -> wallets.BalanceView:
    return next(b for b in wallets.get_wallet_view(db, user_id).balances if b.currency == "USDT")


class FixedAddresses:
    def new_address(self, user_id: str, currency: str) -> str:
        return f"{currency}-{user_id}"


def test_new_wallet_reports_zero_balances(db: Session):
    view = wallets.get_wallet_view(db, "investor_1")

    assert [b.currency for b in view.balances] == ["BTC", "ETH", "USDT"]
    assert all(b.balance == Decimal("0") for b in view.balances)


def test_addresses_are_issued_once(db: Session):
    first = wallets.get_or_generate_addresses(db, "investor_1")
    second = wallets.get_or_generate_addresses(db, "investor_1")

    assert set(first) == {"BTC", "ETH", "USDT"}
    assert first == second
    assert first["USDT"].startswith("usdt_")


def test_deposit_request_waits_for_payment(db: Session):
    request = wallets.request_deposit(db, "investor_1", "50", "usdt", provider=FixedAddresses())

    assert request.status == TransactionStatus.WAITING_PAYMENT
    assert request.reference.startswith("dep_")
    assert request.address == "USDT-investor_1"
    assert usdt_view(db, "investor_1").balance == Decimal("0")


def test_deposit_request_with_hash_is_pending(db: Session):
    request = wallets.request_deposit(db, "investor_1", "50", "USDT", tx_hash="0xfeed")
    assert request.status == TransactionStatus.PENDING


def test_deposit_request_validation(db: Session):
    with pytest.raises(ValidationError):
        wallets.request_deposit(db, "investor_1", "0", "USDT")
    with pytest.raises(ValidationError):
        wallets.request_deposit(db, "investor_1", "5", "DOGE")


def test_chain_deposit_is_credited_once(db: Session):
    address = wallets.get_or_generate_addresses(db, "investor_1")["USDT"]

    first = wallets.credit_chain_deposit(db, "hash-1", "25", SENDER, address, SEEN_AT)
    again = wallets.credit_chain_deposit(db, "hash-1", "25", SENDER, address, SEEN_AT)

    assert first.credited is True
    assert first.user_id == "investor_1"
    assert again.credited is False
    assert again.duplicate is True
    assert again.transaction_id == first.transaction_id

    view = usdt_view(db, "investor_1")
    assert view.balance == Decimal("25")
    assert view.total_deposited == Decimal("25")
    assert db.query(ChainDeposit).count() == 1


def test_chain_deposit_confirms_waiting_request(db: Session):
    request = wallets.request_deposit(db, "investor_1", "50", "USDT")

    credit = wallets.credit_chain_deposit(db, "hash-2", "50", SENDER, request.address, SEEN_AT)

    assert credit.transaction_id == request.transaction_id
    transaction = db.get(Transaction, request.transaction_id)
    assert transaction.status == TransactionStatus.CONFIRMED.value
    assert transaction.tx_hash == "hash-2"
    assert db.query(Transaction).count() == 1


def test_chain_deposit_without_request_creates_confirmed_deposit(db: Session):
    address = wallets.get_or_generate_addresses(db, "investor_1")["USDT"]
    wallets.request_deposit(db, "investor_1", "70", "USDT")  # Different amount, stays waiting

    credit = wallets.credit_chain_deposit(db, "hash-3", "50", SENDER, address, SEEN_AT)

    transaction = db.get(Transaction, credit.transaction_id)
    assert transaction.status == TransactionStatus.CONFIRMED.value
    assert db.query(Transaction).filter(Transaction.status == TransactionStatus.WAITING_PAYMENT.value).count() == 1


def test_transfer_to_unknown_address_is_recorded_not_credited(db: Session):
    unmatched = wallets.credit_chain_deposit(db, "hash-4", "10", SENDER, "TUnknownAddress", SEEN_AT)
    again = wallets.credit_chain_deposit(db, "hash-4", "10", SENDER, "TUnknownAddress", SEEN_AT)

    assert unmatched.credited is False
    assert unmatched.duplicate is False
    assert unmatched.user_id is None
    assert again.duplicate is True
    assert db.query(Transaction).count() == 0


def test_manual_deposit(db: Session):
    credit = wallets.credit_manual_deposit(db, "investor_1", "12.5", "eth")

    assert credit.credited is True
    assert credit.tx_hash.startswith("manual_")
    eth = next(b for b in wallets.get_wallet_view(db, "investor_1").balances if b.currency == "ETH")
    assert eth.balance == Decimal("12.5")
