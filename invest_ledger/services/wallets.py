"""Wallet balances, deposit addresses and deposit crediting"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import InsufficientBalanceError, ValidationError
from invest_ledger.domain.models import DepositCredit, TransactionStatus, TransactionType
from invest_ledger.infrastructure.database.models import Transaction, Wallet, WalletBalance
from invest_ledger.infrastructure.database.repositories import (
    ChainDepositRepository,
    TransactionRepository,
    WalletRepository,
)
from invest_ledger.infrastructure.database.session import run_atomic
from invest_ledger.infrastructure.observability.metrics import deposit_counter
from invest_ledger.utils.money import Number, to_amount

logger = logging.getLogger(__name__)


class AddressProvider(Protocol):
    """Issues deposit addresses; address derivation lives outside the ledger"""

    def new_address(self, user_id: str, currency: str) -> str:
        ...


class PlaceholderAddressProvider:
    """Stand-in addresses until a custody provider is wired in"""

    def new_address(self, user_id: str, currency: str) -> str:
        return f"{currency.lower()}_{uuid.uuid4().hex[:12]}"


@dataclass
class BalanceView:
    currency: str
    balance: Decimal
    total_deposited: Decimal
    total_withdrawn: Decimal


@dataclass
class WalletView:
    user_id: str
    balances: List[BalanceView] = field(default_factory=list)
    addresses: Dict[str, str] = field(default_factory=dict)


@dataclass
class DepositRequest:
    transaction_id: uuid.UUID
    reference: str
    amount: Decimal
    currency: str
    address: str
    status: TransactionStatus


def check_currency(currency: str) -> str:
    code = currency.strip().upper()
    if code not in settings.supported_currencies:
        raise ValidationError(f"Unsupported currency: {currency}")
    return code


def check_positive(amount: Number) -> Decimal:
    value = to_amount(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


def credit_balance(balance: WalletBalance, amount: Decimal, count_as_deposit: bool = False) -> None:
    balance.balance = to_amount(balance.balance + amount)
    if count_as_deposit:
        balance.total_deposited = to_amount(balance.total_deposited + amount)


def debit_balance(balance: WalletBalance, amount: Decimal, count_as_withdrawal: bool = False) -> None:
    """Debit or raise InsufficientBalanceError; the balance never goes negative"""
    available = to_amount(balance.balance)
    if available < amount:
        raise InsufficientBalanceError(balance.currency, available, amount)
    balance.balance = to_amount(available - amount)
    if count_as_withdrawal:
        balance.total_withdrawn = to_amount(balance.total_withdrawn + amount)


def get_or_create_wallet(db: Session, user_id: str) -> Wallet:
    return run_atomic(db, lambda: WalletRepository(db).get_or_create(user_id), name="create wallet")


def get_wallet_view(db: Session, user_id: str) -> WalletView:
    """Balances for every supported currency, zero where nothing was ever credited"""
    wallet = get_or_create_wallet(db, user_id)
    by_currency = {b.currency: b for b in wallet.balances}

    view = WalletView(user_id=user_id)
    for currency in settings.supported_currencies:
        row = by_currency.get(currency)
        if row is None:
            view.balances.append(BalanceView(currency, to_amount(0), to_amount(0), to_amount(0)))
        else:
            view.balances.append(
                BalanceView(
                    currency,
                    to_amount(row.balance),
                    to_amount(row.total_deposited),
                    to_amount(row.total_withdrawn),
                )
            )
    view.addresses = {a.currency: a.address for a in wallet.addresses}
    return view


def get_or_generate_addresses(
    db: Session,
    user_id: str,
    provider: Optional[AddressProvider] = None,
) -> Dict[str, str]:
    """Deposit address per supported currency, issuing the missing ones"""
    provider = provider or PlaceholderAddressProvider()

    def operation() -> Dict[str, str]:
        repo = WalletRepository(db)
        wallet = repo.get_or_create(user_id, lock=True)
        addresses = {}
        for currency in settings.supported_currencies:
            existing = repo.address_for(wallet, currency)
            if existing is None:
                existing = repo.add_address(wallet, currency, provider.new_address(user_id, currency))
            addresses[currency] = existing.address
        return addresses

    return run_atomic(db, operation, name="generate deposit addresses")


def request_deposit(
    db: Session,
    user_id: str,
    amount: Number,
    currency: str,
    tx_hash: Optional[str] = None,
    provider: Optional[AddressProvider] = None,
) -> DepositRequest:
    """
    Record a deposit the user intends to make.

    Without a hash the transaction waits for payment; with one it is pending
    confirmation. Nothing is credited until the chain tracker reports the
    transfer.
    """
    value = check_positive(amount)
    code = check_currency(currency)
    addresses = get_or_generate_addresses(db, user_id, provider)
    status = TransactionStatus.PENDING if tx_hash else TransactionStatus.WAITING_PAYMENT

    def operation() -> DepositRequest:
        transaction = TransactionRepository(db).create(
            user_id=user_id,
            type=TransactionType.DEPOSIT.value,
            amount=value,
            currency=code,
            address=addresses[code],
            reference=f"dep_{uuid.uuid4()}",
            status=status.value,
            tx_hash=tx_hash,
        )
        return DepositRequest(
            transaction_id=transaction.id,
            reference=transaction.reference,
            amount=value,
            currency=code,
            address=addresses[code],
            status=status,
        )

    return run_atomic(db, operation, name="request deposit")


def _confirm_or_create_deposit(
    db: Session,
    user_id: str,
    currency: str,
    amount: Decimal,
    tx_hash: str,
    address: Optional[str],
) -> Transaction:
    transactions = TransactionRepository(db)
    transaction = transactions.find_waiting_deposit(user_id, currency, amount)
    if transaction is not None:
        transaction.status = TransactionStatus.CONFIRMED.value
        transaction.tx_hash = tx_hash
        transaction.confirmations = max(transaction.confirmations or 0, 1)
        db.flush()
        return transaction

    return transactions.create(
        user_id=user_id,
        type=TransactionType.DEPOSIT.value,
        amount=amount,
        currency=currency,
        address=address,
        reference=f"dep_{uuid.uuid4()}",
        status=TransactionStatus.CONFIRMED.value,
        tx_hash=tx_hash,
        confirmations=1,
    )


def credit_chain_deposit(
    db: Session,
    tx_hash: str,
    amount: Number,
    from_address: str,
    to_address: str,
    timestamp: datetime,
    network: str = "tron",
    currency: str = "USDT",
) -> DepositCredit:
    """
    Credit an incoming on-chain transfer at most once per hash.

    The wallet owning ``to_address`` is credited; a matching waiting deposit
    request is confirmed, otherwise a confirmed deposit is created. Transfers
    to unknown addresses are recorded so they are not reconsidered, but
    credit nothing.
    """
    value = check_positive(amount)
    if not tx_hash:
        raise ValidationError("Transaction hash is required")

    def operation() -> DepositCredit:
        deposits = ChainDepositRepository(db)
        existing = deposits.get_by_hash(tx_hash)
        if existing is not None:
            return DepositCredit(
                tx_hash=tx_hash,
                credited=False,
                duplicate=True,
                user_id=existing.user_id,
                transaction_id=existing.transaction_id,
                amount=to_amount(existing.amount),
            )

        wallets = WalletRepository(db)
        owner = wallets.find_by_address(to_address)
        if owner is None:
            deposits.create(
                tx_hash=tx_hash,
                network=network,
                currency=currency.upper(),
                amount=value,
                from_address=from_address,
                to_address=to_address,
                timestamp=timestamp,
            )
            return DepositCredit(tx_hash=tx_hash, credited=False, amount=value)

        user_id = owner.wallet.user_id
        code = owner.currency
        wallet = wallets.get_by_user(user_id, lock=True)
        transaction = _confirm_or_create_deposit(db, user_id, code, value, tx_hash, to_address)
        credit_balance(wallets.balance_for(wallet, code), value, count_as_deposit=True)
        deposits.create(
            tx_hash=tx_hash,
            network=network,
            currency=code,
            amount=value,
            from_address=from_address,
            to_address=to_address,
            timestamp=timestamp,
            user_id=user_id,
            transaction_id=transaction.id,
        )
        return DepositCredit(
            tx_hash=tx_hash,
            credited=True,
            user_id=user_id,
            transaction_id=transaction.id,
            amount=value,
        )

    # A concurrent credit of the same hash loses on the unique index and is
    # retried, at which point it sees the row and reports a duplicate.
    result = run_atomic(db, operation, name="credit chain deposit")

    if result.duplicate:
        deposit_counter.labels(outcome="duplicate").inc()
    elif result.credited:
        deposit_counter.labels(outcome="credited").inc()
        logger.info(
            "Chain deposit credited",
            extra={"user_id": result.user_id, "tx_hash": tx_hash, "amount": str(value), "network": network},
        )
    else:
        deposit_counter.labels(outcome="unmatched").inc()
        logger.warning(
            "Chain deposit to unknown address",
            extra={"tx_hash": tx_hash, "to_address": to_address, "network": network},
        )
    return result


def credit_manual_deposit(db: Session, user_id: str, amount: Number, currency: str) -> DepositCredit:
    """Operator credit for a deposit confirmed outside the chain tracker"""
    value = check_positive(amount)
    code = check_currency(currency)
    reference = f"manual_{uuid.uuid4()}"

    def operation() -> DepositCredit:
        wallets = WalletRepository(db)
        wallet = wallets.get_or_create(user_id, lock=True)
        transaction = TransactionRepository(db).create(
            user_id=user_id,
            type=TransactionType.DEPOSIT.value,
            amount=value,
            currency=code,
            reference=reference,
            status=TransactionStatus.CONFIRMED.value,
            tx_hash=reference,
            confirmations=1,
        )
        credit_balance(wallets.balance_for(wallet, code), value, count_as_deposit=True)
        return DepositCredit(
            tx_hash=reference,
            credited=True,
            user_id=user_id,
            transaction_id=transaction.id,
            amount=value,
        )

    result = run_atomic(db, operation, name="manual deposit")
    deposit_counter.labels(outcome="credited").inc()
    logger.info("Manual deposit credited", extra={"user_id": user_id, "amount": str(value), "currency": code})
    return result
