"""Earnings and wallet withdrawals: reservation, finalization and listing"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import (
    InvalidStateTransitionError,
    LedgerError,
    NotFoundError,
    ValidationError,
    WalletNotFoundError,
)
from invest_ledger.domain.models import (
    OPEN_WITHDRAWAL_STATUSES,
    EarningCandidate,
    TransactionStatus,
    TransactionType,
    WithdrawalReceipt,
    WithdrawalSource,
)
from invest_ledger.domain.withdrawal import plan_reservation, validate_withdrawal_address
from invest_ledger.infrastructure.database.models import Earning, Transaction
from invest_ledger.infrastructure.database.repositories import (
    EarningRepository,
    TransactionRepository,
    WalletRepository,
)
from invest_ledger.infrastructure.database.session import run_atomic
from invest_ledger.infrastructure.observability.logging import log_withdrawal_request
from invest_ledger.infrastructure.observability.metrics import (
    withdrawal_finalization_counter,
    withdrawal_request_counter,
)
from invest_ledger.services.wallets import check_currency, check_positive, credit_balance, debit_balance
from invest_ledger.utils.date_utils import utc_now
from invest_ledger.utils.money import Number, to_amount

logger = logging.getLogger(__name__)


@dataclass
class WithdrawalOutcome:
    """Result of an operator action on a withdrawal"""

    transaction_id: uuid.UUID
    reference: str
    status: TransactionStatus
    amount: Decimal
    earnings_affected: int = 0


def withdrawable_amount(db: Session, user_id: str, now: Optional[datetime] = None) -> Decimal:
    """Sum of matured, unwithdrawn earnings not held by an open withdrawal"""
    return EarningRepository(db).eligible_total(user_id, now or utc_now())


def _split_off_remainder(db: Session, row: Earning, reserved: Decimal, remainder: Decimal) -> Earning:
    """Shrink ``row`` to the reserved part and put the rest in a new, free row"""
    split = Earning(
        user_id=row.user_id,
        investment_id=row.investment_id,
        type=row.type,
        amount=remainder,
        earning_date=row.earning_date,
        withdrawable_at=row.withdrawable_at,
        is_withdrawn=False,
        referred_user_id=row.referred_user_id,
        referral_tier=row.referral_tier,
        referral_percentage=row.referral_percentage,
        split_from_id=row.id,
        created_at=row.created_at,
    )
    db.add(split)
    row.amount = reserved
    return split


def request_earnings_withdrawal(
    db: Session,
    user_id: str,
    amount: Number,
    address: str,
    currency: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WithdrawalReceipt:
    """
    Reserve matured earnings for a withdrawal of exactly ``amount``.

    Runs as one atomic unit under the user's wallet lock: eligible rows are
    selected FOR UPDATE oldest maturity first, the last needed row is split
    when it is larger than what is left to cover, and every reserved row is
    linked to a new pending withdrawal. Rows are only marked withdrawn when an
    operator confirms the withdrawal.

    Raises:
        ValidationError: bad amount, currency or address
        NoWithdrawableEarningsError: nothing has matured
        InsufficientEarningsError: matured earnings fall short of ``amount``
    """
    code = check_currency(currency or settings.default_currency)
    if code != settings.default_currency:
        raise ValidationError(f"Earnings can only be withdrawn in {settings.default_currency}")
    destination = validate_withdrawal_address(address)
    requested = to_amount(amount)
    as_of = now or utc_now()

    def operation() -> Tuple[WithdrawalReceipt, bool]:
        # Wallet row is the per-user lock
        WalletRepository(db).get_or_create(user_id, lock=True)

        rows = EarningRepository(db).eligible_for_withdrawal(user_id, as_of, lock=True)
        plan = plan_reservation([EarningCandidate(row.id, row.amount) for row in rows], requested)

        transaction = TransactionRepository(db).create(
            user_id=user_id,
            type=TransactionType.WITHDRAWAL.value,
            source=WithdrawalSource.EARNINGS.value,
            amount=requested,
            currency=code,
            address=destination,
            reference=f"earn_with_{uuid.uuid4()}",
            status=TransactionStatus.PENDING.value,
        )

        by_id = {row.id: row for row in rows}
        split = False
        for reservation in plan.reservations:
            row = by_id[reservation.earning_id]
            if reservation.is_split:
                _split_off_remainder(db, row, reservation.reserved_amount, reservation.remainder)
                split = True
            row.withdrawal_transaction_id = transaction.id
        db.flush()

        receipt = WithdrawalReceipt(
            transaction_id=transaction.id,
            reference=transaction.reference,
            amount=requested,
            currency=code,
            status=TransactionStatus.PENDING,
            reserved_earning_ids=[r.earning_id for r in plan.reservations],
        )
        return receipt, split

    try:
        receipt, split = run_atomic(db, operation, name="earnings withdrawal")
    except LedgerError as e:
        withdrawal_request_counter.labels(source=WithdrawalSource.EARNINGS.value, outcome=e.code.value).inc()
        raise

    withdrawal_request_counter.labels(source=WithdrawalSource.EARNINGS.value, outcome="reserved").inc()
    log_withdrawal_request(user_id, receipt.reference, str(requested), len(receipt.reserved_earning_ids), split)
    return receipt


def request_wallet_withdrawal(
    db: Session,
    user_id: str,
    amount: Number,
    currency: str,
    address: str,
) -> WithdrawalReceipt:
    """Debit the wallet balance up front and queue a withdrawal for the operator"""
    value = check_positive(amount)
    code = check_currency(currency)
    destination = validate_withdrawal_address(address)

    def operation() -> WithdrawalReceipt:
        wallets = WalletRepository(db)
        wallet = wallets.get_by_user(user_id, lock=True)
        if wallet is None:
            raise WalletNotFoundError(user_id)
        debit_balance(wallets.balance_for(wallet, code), value, count_as_withdrawal=True)

        transaction = TransactionRepository(db).create(
            user_id=user_id,
            type=TransactionType.WITHDRAWAL.value,
            source=WithdrawalSource.WALLET.value,
            amount=value,
            currency=code,
            address=destination,
            reference=f"wd_{uuid.uuid4()}",
            status=TransactionStatus.PENDING.value,
        )
        return WithdrawalReceipt(
            transaction_id=transaction.id,
            reference=transaction.reference,
            amount=value,
            currency=code,
            status=TransactionStatus.PENDING,
            message="Withdrawal request created successfully",
        )

    try:
        receipt = run_atomic(db, operation, name="wallet withdrawal")
    except LedgerError as e:
        withdrawal_request_counter.labels(source=WithdrawalSource.WALLET.value, outcome=e.code.value).inc()
        raise

    withdrawal_request_counter.labels(source=WithdrawalSource.WALLET.value, outcome="reserved").inc()
    logger.info(
        "Wallet withdrawal requested",
        extra={"user_id": user_id, "reference": receipt.reference, "amount": str(value), "currency": code},
    )
    return receipt


def _finalize(
    db: Session,
    transaction_id: uuid.UUID,
    action: str,
    apply: Callable[[Transaction, List[Earning]], TransactionStatus],
) -> WithdrawalOutcome:
    """
    Shared frame for operator actions: lock the owner's wallet, then the
    transaction, check it is an open withdrawal, then apply the change.
    """

    def operation() -> WithdrawalOutcome:
        transactions = TransactionRepository(db)
        transaction = transactions.get(transaction_id)
        if transaction is None or transaction.type != TransactionType.WITHDRAWAL.value:
            raise NotFoundError("Withdrawal", transaction_id)

        WalletRepository(db).get_or_create(transaction.user_id, lock=True)
        transaction = transactions.get(transaction_id, lock=True)
        if transaction.status not in [s.value for s in OPEN_WITHDRAWAL_STATUSES]:
            raise InvalidStateTransitionError("withdrawal", transaction.status, action)

        reserved = []
        if transaction.source != WithdrawalSource.WALLET.value:
            reserved = EarningRepository(db).reserved_by_transaction(transaction.id)

        status = apply(transaction, reserved)
        transaction.status = status.value
        db.flush()
        return WithdrawalOutcome(
            transaction_id=transaction.id,
            reference=transaction.reference,
            status=status,
            amount=to_amount(transaction.amount),
            earnings_affected=len(reserved),
        )

    outcome = run_atomic(db, operation, name=f"{action} withdrawal")
    withdrawal_finalization_counter.labels(action=outcome.status.value).inc()
    logger.info(
        f"Withdrawal {outcome.status.value}",
        extra={
            "transaction_id": str(outcome.transaction_id),
            "reference": outcome.reference,
            "earnings_affected": outcome.earnings_affected,
        },
    )
    return outcome


def confirm_withdrawal(db: Session, transaction_id: uuid.UUID, tx_hash: Optional[str] = None) -> WithdrawalOutcome:
    """Payout went out: reserved earnings become withdrawn"""

    def apply(transaction: Transaction, reserved: List[Earning]) -> TransactionStatus:
        for row in reserved:
            row.is_withdrawn = True
        if tx_hash:
            transaction.tx_hash = tx_hash
        transaction.confirmations = max(transaction.confirmations or 0, 1)
        return TransactionStatus.CONFIRMED

    return _finalize(db, transaction_id, "confirm", apply)


def fail_withdrawal(db: Session, transaction_id: uuid.UUID, reason: Optional[str] = None) -> WithdrawalOutcome:
    """
    Payout did not happen. Reserved earnings are unlinked so they count as
    withdrawable again; a wallet-backed withdrawal gives the debited amount
    back.
    """

    def apply(transaction: Transaction, reserved: List[Earning]) -> TransactionStatus:
        if transaction.source == WithdrawalSource.WALLET.value:
            wallets = WalletRepository(db)
            balance = wallets.balance_for(wallets.get_by_user(transaction.user_id), transaction.currency)
            amount = to_amount(transaction.amount)
            credit_balance(balance, amount)
            balance.total_withdrawn = to_amount(balance.total_withdrawn - amount)
        for row in reserved:
            row.withdrawal_transaction_id = None
        transaction.failure_reason = reason
        return TransactionStatus.FAILED

    return _finalize(db, transaction_id, "fail", apply)


def mark_processing(db: Session, transaction_id: uuid.UUID) -> WithdrawalOutcome:
    def apply(transaction: Transaction, reserved: List[Earning]) -> TransactionStatus:
        if transaction.status == TransactionStatus.PROCESSING.value:
            raise InvalidStateTransitionError("withdrawal", transaction.status, "process")
        return TransactionStatus.PROCESSING

    return _finalize(db, transaction_id, "process", apply)


def list_withdrawals(
    db: Session,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Transaction], int]:
    return TransactionRepository(db).list(
        user_id=user_id,
        transaction_type=TransactionType.WITHDRAWAL.value,
        status=status,
        page=page,
        limit=limit,
    )
