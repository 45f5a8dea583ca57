"""Data access layer for ledger entities"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from invest_ledger.domain.models import (
    ACCRUING_STATUSES,
    OPEN_WITHDRAWAL_STATUSES,
    EarningType,
    InvestmentStatus,
    TransactionStatus,
    TransactionType,
)
from invest_ledger.infrastructure.database.models import (
    ChainDeposit,
    DepositAddress,
    Earning,
    Investment,
    Plan,
    Referral,
    Transaction,
    Wallet,
    WalletBalance,
)
from invest_ledger.utils.date_utils import start_of_day
from invest_ledger.utils.money import ZERO, to_amount


def paginate(query: Query, page: int, limit: int) -> Tuple[List[Any], int]:
    """Apply 1-based page/limit and return (items, total)"""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total


def _sum_or_zero(value: Optional[Decimal]) -> Decimal:
    return to_amount(value) if value is not None else ZERO


class WalletRepository:
    """Repository for wallets, per-currency balances and deposit addresses"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: str, lock: bool = False) -> Optional[Wallet]:
        query = self.db.query(Wallet).filter(Wallet.user_id == user_id)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_or_create(self, user_id: str, lock: bool = False) -> Wallet:
        """
        Fetch the user's wallet, creating it on first access.

        A concurrent creator loses on the unique user_id index; the resulting
        IntegrityError is retried by the surrounding atomic unit.
        """
        wallet = self.get_by_user(user_id, lock=lock)
        if wallet is None:
            wallet = Wallet(user_id=user_id)
            self.db.add(wallet)
            self.db.flush()
        return wallet

    def balance_for(self, wallet: Wallet, currency: str) -> WalletBalance:
        """Currency row of a wallet, created at zero when missing"""
        currency = currency.upper()
        for balance in wallet.balances:
            if balance.currency == currency:
                return balance
        balance = WalletBalance(
            currency=currency,
            balance=ZERO,
            total_deposited=ZERO,
            total_withdrawn=ZERO,
        )
        wallet.balances.append(balance)
        self.db.flush()
        return balance

    def address_for(self, wallet: Wallet, currency: str) -> Optional[DepositAddress]:
        currency = currency.upper()
        for address in wallet.addresses:
            if address.currency == currency:
                return address
        return None

    def add_address(self, wallet: Wallet, currency: str, address: str) -> DepositAddress:
        deposit_address = DepositAddress(currency=currency.upper(), address=address)
        wallet.addresses.append(deposit_address)
        self.db.flush()
        return deposit_address

    def find_by_address(self, address: str) -> Optional[DepositAddress]:
        return self.db.query(DepositAddress).filter(DepositAddress.address == address).first()


class EarningRepository:
    """Repository for investment earnings and referral bonuses"""

    def __init__(self, db: Session):
        self.db = db

    def insert_if_absent(self, values: Dict[str, Any]) -> bool:
        """
        Insert an earning unless one with the same idempotency_key exists.

        Uses the database's ON CONFLICT DO NOTHING so overlapping callers
        cannot both insert, and an existing row is never modified.

        Returns:
            True when a row was inserted
        """
        row = dict(values)
        row.setdefault("id", uuid.uuid4())
        row.setdefault("is_withdrawn", False)
        row.setdefault("version", 1)

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            return self._insert_with_savepoint(row)

        stmt = insert(Earning).values(**row).on_conflict_do_nothing(index_elements=["idempotency_key"])
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def _insert_with_savepoint(self, row: Dict[str, Any]) -> bool:
        savepoint = self.db.begin_nested()
        try:
            self.db.execute(Earning.__table__.insert().values(**row))
            savepoint.commit()
            return True
        except IntegrityError:
            savepoint.rollback()
            return False

    def get(self, earning_id: uuid.UUID) -> Optional[Earning]:
        return self.db.query(Earning).filter(Earning.id == earning_id).first()

    def get_by_key(self, idempotency_key: str) -> Optional[Earning]:
        return self.db.query(Earning).filter(Earning.idempotency_key == idempotency_key).first()

    def _eligible_query(self, user_id: str, now: datetime) -> Query:
        """
        Rows a withdrawal may reserve:
        not withdrawn, matured strictly before ``now``, and not held by an
        open (pending/processing) withdrawal.
        """
        open_statuses = [s.value for s in OPEN_WITHDRAWAL_STATUSES]
        return (
            self.db.query(Earning)
            .outerjoin(Transaction, Earning.withdrawal_transaction_id == Transaction.id)
            .filter(
                Earning.user_id == user_id,
                Earning.is_withdrawn.is_(False),
                Earning.withdrawable_at < now,
                or_(
                    Earning.withdrawal_transaction_id.is_(None),
                    Transaction.status.notin_(open_statuses),
                ),
            )
        )

    def eligible_for_withdrawal(self, user_id: str, now: datetime, lock: bool = False) -> List[Earning]:
        """Eligible rows, oldest maturity first"""
        query = self._eligible_query(user_id, now).order_by(
            Earning.withdrawable_at.asc(),
            Earning.created_at.asc(),
            Earning.id.asc(),
        )
        if lock:
            query = query.with_for_update(of=Earning).populate_existing()
        return query.all()

    def eligible_total(self, user_id: str, now: datetime) -> Decimal:
        total = self._eligible_query(user_id, now).with_entities(func.sum(Earning.amount)).scalar()
        return _sum_or_zero(total)

    def reserved_by_transaction(self, transaction_id: uuid.UUID, unwithdrawn_only: bool = True) -> List[Earning]:
        query = self.db.query(Earning).filter(Earning.withdrawal_transaction_id == transaction_id)
        if unwithdrawn_only:
            query = query.filter(Earning.is_withdrawn.is_(False))
        return query.order_by(Earning.withdrawable_at.asc(), Earning.id.asc()).all()

    def referral_bonus_exists(self, referred_user_id: str) -> bool:
        return (
            self.db.query(Earning.id)
            .filter(
                Earning.type == EarningType.REFERRAL_BONUS.value,
                Earning.referred_user_id == referred_user_id,
            )
            .first()
            is not None
        )

    def list_for_user(
        self,
        user_id: str,
        earning_type: Optional[str] = None,
        is_withdrawn: Optional[bool] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Earning], int]:
        query = self.db.query(Earning).filter(Earning.user_id == user_id)
        if earning_type:
            query = query.filter(Earning.type == earning_type)
        if is_withdrawn is not None:
            query = query.filter(Earning.is_withdrawn.is_(is_withdrawn))

        sort_columns = {
            "date": Earning.earning_date,
            "amount": Earning.amount,
            "withdrawableDate": Earning.withdrawable_at,
        }
        column = sort_columns.get(sort_by, Earning.earning_date)
        direction = column.asc() if sort_order == "asc" else column.desc()
        query = query.order_by(direction, Earning.created_at.desc())
        return paginate(query, page, page_size)

    def totals_by_type_and_status(self, user_id: str) -> List[Tuple[str, bool, Decimal]]:
        rows = (
            self.db.query(Earning.type, Earning.is_withdrawn, func.sum(Earning.amount))
            .filter(Earning.user_id == user_id)
            .group_by(Earning.type, Earning.is_withdrawn)
            .all()
        )
        return [(t, bool(w), _sum_or_zero(total)) for t, w, total in rows]

    def totals_by_day(self, user_id: str, start_day: date, end_day: date) -> List[Tuple[date, str, Decimal]]:
        rows = (
            self.db.query(Earning.earning_date, Earning.type, func.sum(Earning.amount))
            .filter(
                Earning.user_id == user_id,
                Earning.earning_date >= start_day,
                Earning.earning_date <= end_day,
            )
            .group_by(Earning.earning_date, Earning.type)
            .all()
        )
        return [(day, t, _sum_or_zero(total)) for day, t, total in rows]


class InvestmentRepository:
    """Repository for investments"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, investment_id: uuid.UUID, user_id: Optional[str] = None, lock: bool = False) -> Optional[Investment]:
        query = self.db.query(Investment).filter(Investment.id == investment_id)
        if user_id is not None:
            query = query.filter(Investment.user_id == user_id)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list_for_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Investment], int]:
        query = self.db.query(Investment).filter(Investment.user_id == user_id)
        if status:
            query = query.filter(Investment.status == status)
        query = query.order_by(Investment.created_at.desc())
        return paginate(query, page, limit)

    def all_for_user(self, user_id: str, status: Optional[str] = None) -> List[Investment]:
        query = self.db.query(Investment).filter(Investment.user_id == user_id)
        if status:
            query = query.filter(Investment.status == status)
        return query.order_by(Investment.created_at.desc()).all()

    def accruing_between(self, start_day: date, end_day: date, user_id: Optional[str] = None) -> List[Investment]:
        """Accruing investments whose [start, end) touches any day in the range"""
        range_start = start_of_day(start_day)
        range_end = start_of_day(end_day) + timedelta(days=1)
        query = self.db.query(Investment).filter(
            Investment.status.in_([s.value for s in ACCRUING_STATUSES]),
            Investment.start_date.isnot(None),
            Investment.end_date.isnot(None),
            Investment.start_date < range_end,
            Investment.end_date > range_start,
        )
        if user_id is not None:
            query = query.filter(Investment.user_id == user_id)
        return query.order_by(Investment.created_at.asc(), Investment.id.asc()).all()

    def highest_active_for_user(self, user_id: str) -> Optional[Investment]:
        return (
            self.db.query(Investment)
            .filter(Investment.user_id == user_id, Investment.status == InvestmentStatus.ACTIVE.value)
            .order_by(Investment.amount.desc(), Investment.created_at.asc())
            .first()
        )

    def first_for_user(self, user_id: str) -> Optional[Investment]:
        return (
            self.db.query(Investment)
            .filter(Investment.user_id == user_id)
            .order_by(Investment.created_at.asc(), Investment.id.asc())
            .first()
        )

    def expired_active(self, now: datetime) -> List[Investment]:
        return (
            self.db.query(Investment)
            .filter(
                Investment.status == InvestmentStatus.ACTIVE.value,
                Investment.end_date.isnot(None),
                Investment.end_date <= now,
            )
            .all()
        )


class TransactionRepository:
    """Repository for ledger transactions"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> Transaction:
        transaction = Transaction(**fields)
        self.db.add(transaction)
        self.db.flush()  # Get ID without committing
        return transaction

    def get(self, transaction_id: uuid.UUID, lock: bool = False) -> Optional[Transaction]:
        query = self.db.query(Transaction).filter(Transaction.id == transaction_id)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_for_user(self, user_id: str, transaction_id: uuid.UUID) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
            .first()
        )

    def list(
        self,
        user_id: Optional[str] = None,
        transaction_type: Optional[str] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Transaction], int]:
        query = self.db.query(Transaction)
        if user_id is not None:
            query = query.filter(Transaction.user_id == user_id)
        if transaction_type:
            query = query.filter(Transaction.type == transaction_type)
        if status:
            query = query.filter(Transaction.status == status)
        if start:
            query = query.filter(Transaction.created_at >= start)
        if end:
            query = query.filter(Transaction.created_at <= end)
        query = query.order_by(Transaction.created_at.desc())
        return paginate(query, page, limit)

    def find_waiting_deposit(self, user_id: str, currency: str, amount: Decimal) -> Optional[Transaction]:
        """Most recent unpaid deposit request matching an incoming transfer"""
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.DEPOSIT.value,
                Transaction.status == TransactionStatus.WAITING_PAYMENT.value,
                Transaction.currency == currency,
                Transaction.amount == amount,
            )
            .order_by(Transaction.created_at.desc())
            .with_for_update()
            .first()
        )


class ReferralRepository:
    """Repository for referral relationships"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_referred(self, referred_id: str, lock: bool = False) -> Optional[Referral]:
        query = self.db.query(Referral).filter(Referral.referred_id == referred_id)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def create(self, referrer_id: str, referred_id: str, referral_code: str, level: int = 1) -> Referral:
        referral = Referral(
            referrer_id=referrer_id,
            referred_id=referred_id,
            referral_code=referral_code,
            level=level,
            total_earnings=ZERO,
        )
        self.db.add(referral)
        self.db.flush()
        return referral

    def list_by_referrer(
        self,
        referrer_id: str,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Referral], int]:
        query = self.db.query(Referral).filter(Referral.referrer_id == referrer_id)
        if status:
            query = query.filter(Referral.status == status)
        query = query.order_by(Referral.created_at.desc())
        return paginate(query, page, limit)

    def earnings_total(self, referrer_id: str) -> Decimal:
        total = (
            self.db.query(func.sum(Referral.total_earnings))
            .filter(Referral.referrer_id == referrer_id)
            .scalar()
        )
        return _sum_or_zero(total)


class PlanRepository:
    """Repository for configurable plans"""

    def __init__(self, db: Session):
        self.db = db

    def list(self, active_only: bool = True) -> List[Plan]:
        query = self.db.query(Plan)
        if active_only:
            query = query.filter(Plan.is_active.is_(True))
        return query.order_by(Plan.min_amount.asc()).all()

    def get(self, plan_id: uuid.UUID) -> Optional[Plan]:
        return self.db.query(Plan).filter(Plan.id == plan_id).first()

    def get_by_name(self, name: str) -> Optional[Plan]:
        return self.db.query(Plan).filter(Plan.name == name).first()

    def add(self, plan: Plan) -> Plan:
        self.db.add(plan)
        self.db.flush()
        return plan


class ChainDepositRepository:
    """Repository for on-chain transfers seen by the chain tracker"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_hash(self, tx_hash: str) -> Optional[ChainDeposit]:
        return self.db.query(ChainDeposit).filter(ChainDeposit.tx_hash == tx_hash).first()

    def create(self, **fields: Any) -> ChainDeposit:
        deposit = ChainDeposit(**fields)
        self.db.add(deposit)
        self.db.flush()
        return deposit

    def known_hashes(self, hashes: Sequence[str]) -> set:
        if not hashes:
            return set()
        rows = self.db.query(ChainDeposit.tx_hash).filter(ChainDeposit.tx_hash.in_(list(hashes))).all()
        return {row[0] for row in rows}
