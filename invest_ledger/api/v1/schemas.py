"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from invest_ledger.domain.models import DailyIncome, PlanConfig
from invest_ledger.infrastructure.database.models import Earning, Investment, Plan, Referral, Transaction
from invest_ledger.utils.date_utils import ensure_utc

T = TypeVar("T")


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value else None


class Page(BaseModel, Generic[T]):
    """Paginated list envelope"""

    items: List[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, items: List[T], total: int, page: int, limit: int) -> "Page[T]":
        return cls(items=items, total=total, page=page, limit=limit, pages=(total + limit - 1) // limit)


# Wallet


class BalanceSchema(BaseModel):
    currency: str
    balance: Decimal
    total_deposited: Decimal
    total_withdrawn: Decimal


class WalletResponse(BaseModel):
    """Response for GET /v1/wallet"""

    user_id: str
    balances: List[BalanceSchema]
    addresses: Dict[str, str]


class AddressesResponse(BaseModel):
    user_id: str
    addresses: Dict[str, str]


class DepositRequestBody(BaseModel):
    """Request body for POST /v1/wallet/deposits"""

    amount: Decimal
    currency: str = "USDT"
    tx_hash: Optional[str] = None


class DepositRequestResponse(BaseModel):
    transaction_id: str
    reference: str
    amount: Decimal
    currency: str
    address: str
    status: str


class WalletWithdrawalBody(BaseModel):
    """Request body for POST /v1/wallet/withdrawals"""

    amount: Decimal
    currency: str = "USDT"
    address: str = Field(..., min_length=1, description="Destination address")


class WithdrawalResponse(BaseModel):
    transaction_id: str
    reference: str
    amount: Decimal
    currency: str
    status: str
    reserved_earning_ids: List[str] = []
    message: str


# Earnings


class EarningsWithdrawBody(BaseModel):
    """Request body for POST /v1/earnings/withdraw"""

    amount: Decimal
    wallet_address: str = Field(..., min_length=1, description="Destination address")
    currency: str = "USDT"


class EarningSchema(BaseModel):
    id: str
    type: str
    amount: Decimal
    earning_date: date
    withdrawable_at: datetime
    is_withdrawn: bool
    investment_id: Optional[str] = None
    withdrawal_transaction_id: Optional[str] = None
    referred_user_id: Optional[str] = None
    referral_tier: Optional[str] = None
    referral_percentage: Optional[Decimal] = None

    @classmethod
    def from_row(cls, row: Earning) -> "EarningSchema":
        return cls(
            id=str(row.id),
            type=row.type,
            amount=row.amount,
            earning_date=row.earning_date,
            withdrawable_at=_utc(row.withdrawable_at),
            is_withdrawn=row.is_withdrawn,
            investment_id=str(row.investment_id) if row.investment_id else None,
            withdrawal_transaction_id=str(row.withdrawal_transaction_id) if row.withdrawal_transaction_id else None,
            referred_user_id=row.referred_user_id,
            referral_tier=row.referral_tier,
            referral_percentage=row.referral_percentage,
        )


class EarningsSummaryResponse(BaseModel):
    total_earnings: Decimal
    total_withdrawn: Decimal
    total_available: Decimal
    investment_earnings: Decimal
    referral_bonuses: Decimal
    withdrawable_amount: Decimal
    pending_amount: Decimal


class DailyIncomeSchema(BaseModel):
    day: date
    investment_earnings: Decimal
    referral_bonuses: Decimal
    total: Decimal

    @classmethod
    def from_income(cls, income: DailyIncome) -> "DailyIncomeSchema":
        return cls(
            day=income.day,
            investment_earnings=income.investment_earnings,
            referral_bonuses=income.referral_bonuses,
            total=income.total,
        )


class DailyBreakdownResponse(BaseModel):
    start_day: date
    end_day: date
    total: Decimal
    days: List[DailyIncomeSchema]


# Investments


class InvestmentCreateBody(BaseModel):
    """Request body for POST /v1/investments"""

    plan: str = Field(..., min_length=1, description="Plan tier or name, e.g. 'gold' or 'Gold Plan'")
    amount: Decimal
    currency: str = "USDT"


class InvestmentReceiptResponse(BaseModel):
    investment_id: str
    transaction_id: str
    reference: str
    plan: str
    amount: Decimal
    monthly_return: Decimal
    start_date: datetime
    end_date: datetime
    wallet_balance: Decimal


class InvestmentSchema(BaseModel):
    id: str
    plan: str
    tier: str
    percentage: Decimal
    amount: Decimal
    currency: str
    status: str
    monthly_return: Decimal
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Investment) -> "InvestmentSchema":
        return cls(
            id=str(row.id),
            plan=row.plan_name,
            tier=row.plan_tier,
            percentage=row.percentage,
            amount=row.amount,
            currency=row.currency,
            status=row.status,
            monthly_return=row.monthly_return,
            start_date=_utc(row.start_date),
            end_date=_utc(row.end_date),
            created_at=_utc(row.created_at),
        )


# Plans


class PlanSchema(BaseModel):
    key: str
    name: str
    tier: str
    min_amount: Decimal
    max_amount: Optional[Decimal] = None
    percentage: Decimal
    duration_days: int
    features: List[str] = []

    @classmethod
    def from_config(cls, plan: PlanConfig) -> "PlanSchema":
        return cls(
            key=plan.key,
            name=plan.name,
            tier=plan.tier,
            min_amount=plan.min_amount,
            max_amount=plan.max_amount,
            percentage=plan.percentage,
            duration_days=plan.duration_days,
            features=list(plan.features),
        )


class PlanRecordSchema(PlanSchema):
    id: str
    description: Optional[str] = None
    is_active: bool

    @classmethod
    def from_row(cls, row: Plan) -> "PlanRecordSchema":
        return cls(
            id=str(row.id),
            key=row.key,
            name=row.name,
            tier=row.tier,
            description=row.description,
            min_amount=row.min_amount,
            max_amount=row.max_amount or None,
            percentage=row.percentage,
            duration_days=row.duration_days,
            features=list(row.features or []),
            is_active=row.is_active,
        )


class PlanCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    tier: str = Field(..., min_length=1)
    min_amount: Decimal
    max_amount: Optional[Decimal] = None  # None = unlimited
    percentage: Decimal
    duration_days: int = 30
    description: Optional[str] = None
    features: List[str] = []


class PlanUpdateBody(BaseModel):
    name: Optional[str] = None
    tier: Optional[str] = None
    description: Optional[str] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    duration_days: Optional[int] = None
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None


# Transactions


class TransactionSchema(BaseModel):
    id: str
    type: str
    source: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    reference: str
    address: Optional[str] = None
    tx_hash: Optional[str] = None
    confirmations: int
    failure_reason: Optional[str] = None
    user_id: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Transaction) -> "TransactionSchema":
        return cls(
            id=str(row.id),
            type=row.type,
            source=row.source,
            amount=row.amount,
            currency=row.currency,
            status=row.status,
            reference=row.reference,
            address=row.address,
            tx_hash=row.tx_hash,
            confirmations=row.confirmations,
            failure_reason=row.failure_reason,
            user_id=row.user_id,
            created_at=_utc(row.created_at),
        )


# Referrals


class ReferralSummaryResponse(BaseModel):
    user_id: str
    total_referrals: int
    active_referrals: int
    total_earnings: Decimal
    tier: Optional[str] = None
    bonus_percentage: Decimal


class ReferralSchema(BaseModel):
    id: str
    referred_id: str
    referral_code: str
    level: int
    status: str
    total_earnings: Decimal
    last_earning_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Referral) -> "ReferralSchema":
        return cls(
            id=str(row.id),
            referred_id=row.referred_id,
            referral_code=row.referral_code,
            level=row.level,
            status=row.status,
            total_earnings=row.total_earnings,
            last_earning_at=_utc(row.last_earning_at),
        )


class ReferralCreateBody(BaseModel):
    """Request body for POST /v1/admin/referrals"""

    referrer_id: str = Field(..., min_length=1)
    referred_id: str = Field(..., min_length=1)
    referral_code: str = Field(..., min_length=1)
    level: int = 1


# Operator actions


class ConfirmWithdrawalBody(BaseModel):
    tx_hash: Optional[str] = None


class FailWithdrawalBody(BaseModel):
    reason: Optional[str] = None


class WithdrawalOutcomeResponse(BaseModel):
    transaction_id: str
    reference: str
    status: str
    amount: Decimal
    earnings_affected: int


class ManualDepositBody(BaseModel):
    user_id: str = Field(..., min_length=1)
    amount: Decimal
    currency: str = "USDT"


class DepositCreditResponse(BaseModel):
    tx_hash: str
    credited: bool
    duplicate: bool
    user_id: Optional[str] = None
    transaction_id: Optional[str] = None
    amount: Decimal


class AccrualRunBody(BaseModel):
    """Sweep one day for everyone, or backfill a range for one user"""

    day: Optional[date] = None
    user_id: Optional[str] = None
    start_day: Optional[date] = None
    end_day: Optional[date] = None


class AccrualRunResponse(BaseModel):
    start_day: date
    end_day: date
    investments_seen: int
    created: int
    skipped: int
    failures: int
    completed: int = 0


# Chain collaborator


class ChainDepositEvent(BaseModel):
    """Request body for POST /v1/webhooks/chain-deposits"""

    tx_hash: str = Field(..., min_length=1)
    amount: Decimal
    from_address: str
    to_address: str = Field(..., min_length=1)
    timestamp: datetime
    network: str = "tron"
    currency: str = "USDT"
