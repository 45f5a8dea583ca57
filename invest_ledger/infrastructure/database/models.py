"""SQLAlchemy ORM models for the investment ledger"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from invest_ledger.utils.date_utils import utc_now

Base = declarative_base()

# 8 decimal places covers USDT and ETH display precision
Amount = Numeric(20, 8)


class Plan(Base):
    """Configurable investment plan tier"""

    __tablename__ = "plan"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False, unique=True)
    tier = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=True)
    min_amount = Column(Amount, nullable=False)
    max_amount = Column(Amount, nullable=False, default=0)  # 0 = unlimited
    percentage = Column(Numeric(6, 3), nullable=False)
    duration_days = Column(Integer, nullable=False, default=30)
    features = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class Investment(Base):
    """
    Committed principal on a plan.

    Plan name/tier/percentage are copied at creation, so later plan edits
    never change an existing investment.
    """

    __tablename__ = "investment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    plan_key = Column(Text, nullable=False)
    plan_name = Column(Text, nullable=False)
    plan_tier = Column(Text, nullable=False)
    percentage = Column(Numeric(6, 3), nullable=False)
    amount = Column(Amount, nullable=False)
    currency = Column(Text, nullable=False, default="USDT")
    status = Column(Text, nullable=False, default="pending")
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    monthly_return = Column(Amount, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    earnings = relationship("Earning", back_populates="investment")

    __table_args__ = (Index("ix_investment_user_status", "user_id", "status"),)


class Transaction(Base):
    """Balance-changing event: deposit, withdrawal, investment debit, credits"""

    __tablename__ = "ledger_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    type = Column(Text, nullable=False)
    source = Column(Text, nullable=True)  # Withdrawals only: earnings | wallet
    amount = Column(Amount, nullable=False)
    currency = Column(Text, nullable=False)
    address = Column(Text, nullable=True)
    reference = Column(Text, nullable=False, unique=True)
    status = Column(Text, nullable=False, default="pending")
    tx_hash = Column(Text, nullable=True, index=True)
    confirmations = Column(Integer, nullable=False, default=0)
    failure_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    reserved_earnings = relationship("Earning", back_populates="withdrawal_transaction")

    __table_args__ = (Index("ix_ledger_transaction_user_status", "user_id", "status"),)
    __mapper_args__ = {"version_id_col": version}


class Earning(Base):
    """
    Investment accrual or referral bonus owed to a user.

    ``idempotency_key`` is set on rows created by accrual and by referral
    bonus awards; the unique index on it is what makes both of those
    insert-once. Rows split off during a withdrawal reservation carry no key
    and point back at their origin through ``split_from_id``.
    """

    __tablename__ = "earning"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    investment_id = Column(UUID(as_uuid=True), ForeignKey("investment.id"), nullable=True, index=True)
    type = Column(Text, nullable=False)
    amount = Column(Amount, nullable=False)
    earning_date = Column(Date, nullable=False)
    withdrawable_at = Column(DateTime(timezone=True), nullable=False)
    is_withdrawn = Column(Boolean, nullable=False, default=False)
    withdrawal_transaction_id = Column(
        UUID(as_uuid=True), ForeignKey("ledger_transaction.id"), nullable=True, index=True
    )
    referred_user_id = Column(Text, nullable=True, index=True)
    referral_tier = Column(Text, nullable=True)
    referral_percentage = Column(Numeric(6, 3), nullable=True)
    idempotency_key = Column(Text, nullable=True, unique=True)
    split_from_id = Column(UUID(as_uuid=True), ForeignKey("earning.id"), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    investment = relationship("Investment", back_populates="earnings")
    withdrawal_transaction = relationship("Transaction", back_populates="reserved_earnings")

    __table_args__ = (
        Index("ix_earning_user_withdrawable", "user_id", "is_withdrawn", "withdrawable_at"),
        Index("ix_earning_user_date", "user_id", "earning_date"),
    )
    __mapper_args__ = {"version_id_col": version}


class Wallet(Base):
    """
    Per-user balance holder, created lazily on first access.

    The wallet row doubles as the per-user lock: every balance-mutating or
    earning-reserving unit selects it FOR UPDATE first.
    """

    __tablename__ = "wallet"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    balances = relationship("WalletBalance", back_populates="wallet", cascade="all, delete-orphan")
    addresses = relationship("DepositAddress", back_populates="wallet", cascade="all, delete-orphan")


class WalletBalance(Base):
    """One currency's balance and lifetime totals within a wallet"""

    __tablename__ = "wallet_balance"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wallet_id = Column(UUID(as_uuid=True), ForeignKey("wallet.id", ondelete="CASCADE"), nullable=False)
    currency = Column(Text, nullable=False)
    balance = Column(Amount, nullable=False, default=0)
    total_deposited = Column(Amount, nullable=False, default=0)
    total_withdrawn = Column(Amount, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    wallet = relationship("Wallet", back_populates="balances")

    __table_args__ = (UniqueConstraint("wallet_id", "currency", name="uq_wallet_balance_currency"),)
    __mapper_args__ = {"version_id_col": version}


class DepositAddress(Base):
    """Deposit address assigned to a wallet for one currency"""

    __tablename__ = "deposit_address"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wallet_id = Column(UUID(as_uuid=True), ForeignKey("wallet.id", ondelete="CASCADE"), nullable=False)
    currency = Column(Text, nullable=False)
    address = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    wallet = relationship("Wallet", back_populates="addresses")

    __table_args__ = (UniqueConstraint("wallet_id", "currency", name="uq_deposit_address_currency"),)


class Referral(Base):
    """Referrer → referred link; each user has at most one referrer"""

    __tablename__ = "referral"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    referrer_id = Column(Text, nullable=False, index=True)
    referred_id = Column(Text, nullable=False, unique=True)
    referral_code = Column(Text, nullable=False)
    level = Column(Integer, nullable=False, default=1)
    status = Column(Text, nullable=False, default="pending")
    total_earnings = Column(Amount, nullable=False, default=0)
    currency = Column(Text, nullable=False, default="USDT")
    last_earning_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ChainDeposit(Base):
    """Incoming on-chain transfer reported by the chain-tracking collaborator"""

    __tablename__ = "chain_deposit"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tx_hash = Column(Text, nullable=False, unique=True)
    network = Column(Text, nullable=False)
    currency = Column(Text, nullable=False, default="USDT")
    amount = Column(Amount, nullable=False)
    from_address = Column(Text, nullable=False)
    to_address = Column(Text, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    user_id = Column(Text, nullable=True)  # Null when no wallet owns to_address
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("ledger_transaction.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
