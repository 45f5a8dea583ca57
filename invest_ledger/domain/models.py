"""Domain models - pure Python dataclasses and enums representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class InvestmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EarningType(str, Enum):
    INVESTMENT_EARNING = "investment_earning"
    REFERRAL_BONUS = "referral_bonus"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INVESTMENT = "investment"
    PROFIT = "profit"
    REFERRAL = "referral"


class TransactionStatus(str, Enum):
    WAITING_PAYMENT = "waiting_payment"
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WithdrawalSource(str, Enum):
    EARNINGS = "earnings"  # Backed by reserved Earning rows
    WALLET = "wallet"  # Debited from the wallet balance up front


class ReferralStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class Role(str, Enum):
    INVESTOR = "investor"
    ADMIN = "admin"


# A withdrawal holds its earnings while in one of these states
OPEN_WITHDRAWAL_STATUSES = (TransactionStatus.PENDING, TransactionStatus.PROCESSING)

# Accrual only materializes earnings for investments in these states
ACCRUING_STATUSES = (InvestmentStatus.ACTIVE, InvestmentStatus.PENDING)


@dataclass(frozen=True)
class PlanConfig:
    """Investment plan tier with amount range and periodic return"""

    key: str  # Tier slug, e.g. "gold"
    name: str  # Display name, e.g. "Gold Plan"
    tier: str  # e.g. "Gold"
    min_amount: Decimal
    max_amount: Optional[Decimal]  # None = unlimited
    percentage: Decimal  # Flat return per period, 0-100
    duration_days: int = 30
    is_active: bool = True
    features: tuple = ()


@dataclass
class Principal:
    """Authenticated caller supplied by the auth collaborator"""

    user_id: str
    role: Role = Role.INVESTOR

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class EarningCandidate:
    """Eligible earning row as seen by the reservation planner"""

    earning_id: uuid.UUID
    amount: Decimal


@dataclass
class Reservation:
    """Portion of one earning row claimed by a withdrawal"""

    earning_id: uuid.UUID
    reserved_amount: Decimal
    remainder: Decimal = Decimal("0")  # Split off into a new unreserved row when > 0

    @property
    def is_split(self) -> bool:
        return self.remainder > 0


@dataclass
class ReservationPlan:
    requested: Decimal
    available: Decimal
    reservations: List[Reservation]

    @property
    def reserved_total(self) -> Decimal:
        return sum((r.reserved_amount for r in self.reservations), Decimal("0"))


@dataclass
class AccrualReport:
    """Outcome of an accrual sweep or backfill"""

    start_day: date
    end_day: date
    investments_seen: int = 0
    created: int = 0
    skipped: int = 0  # Row for (investment, day) already existed
    failures: int = 0
    failed_investment_ids: List[uuid.UUID] = field(default_factory=list)


@dataclass
class WithdrawalReceipt:
    transaction_id: uuid.UUID
    reference: str
    amount: Decimal
    currency: str
    status: TransactionStatus
    reserved_earning_ids: List[uuid.UUID] = field(default_factory=list)
    message: str = "Withdrawal request created successfully. It will be processed by admin manually."


@dataclass
class InvestmentReceipt:
    investment_id: uuid.UUID
    transaction_id: uuid.UUID
    reference: str
    plan: str
    amount: Decimal
    monthly_return: Decimal
    start_date: datetime
    end_date: datetime
    wallet_balance: Decimal


@dataclass
class ReferralBonusAward:
    earning_id: uuid.UUID
    transaction_id: uuid.UUID
    referrer_id: str
    referred_user_id: str
    tier: str
    percentage: Decimal
    amount: Decimal


@dataclass
class DepositCredit:
    """Result of crediting an on-chain or manual deposit"""

    tx_hash: str
    credited: bool
    duplicate: bool = False
    user_id: Optional[str] = None
    transaction_id: Optional[uuid.UUID] = None
    amount: Decimal = Decimal("0")


@dataclass
class EarningsSummary:
    total_earnings: Decimal
    total_withdrawn: Decimal
    total_available: Decimal
    investment_earnings: Decimal
    referral_bonuses: Decimal
    withdrawable_amount: Decimal
    pending_amount: Decimal


@dataclass
class DailyIncome:
    day: date
    investment_earnings: Decimal
    referral_bonuses: Decimal

    @property
    def total(self) -> Decimal:
        return self.investment_earnings + self.referral_bonuses
