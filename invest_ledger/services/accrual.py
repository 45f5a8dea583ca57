"""Daily materialization of investment earnings"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.accrual import (
    accrual_key,
    daily_accrual_amount,
    investment_overlaps_day,
    withdrawable_at,
)
from invest_ledger.domain.exceptions import ValidationError
from invest_ledger.domain.models import AccrualReport, EarningType, InvestmentStatus
from invest_ledger.infrastructure.database.models import Investment
from invest_ledger.infrastructure.database.repositories import EarningRepository, InvestmentRepository
from invest_ledger.infrastructure.database.session import run_atomic
from invest_ledger.infrastructure.observability.logging import log_accrual_run
from invest_ledger.infrastructure.observability.metrics import record_accrual
from invest_ledger.utils.date_utils import generate_date_range, utc_now, utc_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccrualTarget:
    """Snapshot of the investment fields accrual needs, safe to use across commits"""

    investment_id: uuid.UUID
    user_id: str
    amount: Decimal
    percentage: Decimal
    start_date: datetime
    end_date: datetime

    @classmethod
    def from_row(cls, row: Investment) -> "AccrualTarget":
        return cls(row.id, row.user_id, row.amount, row.percentage, row.start_date, row.end_date)


def _upsert_days(db: Session, target: AccrualTarget, days: List[date]) -> Tuple[int, int]:
    earnings = EarningRepository(db)
    daily_amount = daily_accrual_amount(target.amount, target.percentage, settings.accrual_period_days)
    created = skipped = 0

    for day in days:
        if not investment_overlaps_day(target.start_date, target.end_date, day):
            continue
        inserted = earnings.insert_if_absent(
            {
                "user_id": target.user_id,
                "investment_id": target.investment_id,
                "type": EarningType.INVESTMENT_EARNING.value,
                "amount": daily_amount,
                "earning_date": day,
                "withdrawable_at": withdrawable_at(day, settings.maturity_days),
                "idempotency_key": accrual_key(target.investment_id, day),
                "created_at": utc_now(),
            }
        )
        if inserted:
            created += 1
        else:
            skipped += 1
    return created, skipped


def _accrue(db: Session, targets: List[AccrualTarget], days: List[date], report: AccrualReport) -> None:
    """One atomic unit per investment; a failing investment is logged and skipped"""
    for target in targets:
        try:
            created, skipped = run_atomic(
                db,
                lambda: _upsert_days(db, target, days),
                name="accrue investment",
            )
        except Exception as e:
            report.failures += 1
            report.failed_investment_ids.append(target.investment_id)
            logger.error(
                f"Accrual failed for investment {target.investment_id}: {e}",
                extra={"investment_id": str(target.investment_id), "user_id": target.user_id},
            )
            continue
        report.created += created
        report.skipped += skipped


def _finish(kind: str, report: AccrualReport) -> AccrualReport:
    record_accrual(report.created, report.skipped, report.failures)
    log_accrual_run(
        kind,
        report.start_day.isoformat(),
        report.end_day.isoformat(),
        report.created,
        report.skipped,
        report.failures,
    )
    return report


def run_daily_sweep(db: Session, day: Optional[date] = None) -> AccrualReport:
    """
    Materialize one day's earnings for every accruing investment.

    Safe to re-run: a day already accrued for an investment is skipped and its
    existing row is left untouched.
    """
    day = day or utc_today()
    if day > utc_today():
        raise ValidationError("Cannot accrue earnings for a future day")

    targets = [AccrualTarget.from_row(row) for row in InvestmentRepository(db).accruing_between(day, day)]
    report = AccrualReport(start_day=day, end_day=day, investments_seen=len(targets))
    _accrue(db, targets, [day], report)
    return _finish("sweep", report)


def backfill_user(db: Session, user_id: str, start_day: date, end_day: date) -> AccrualReport:
    """Accrue every day in [start_day, end_day] for one user's investments; days after today are ignored"""
    if start_day > end_day:
        raise ValidationError("Start date must be on or before end date")

    end_day = min(end_day, utc_today())
    report = AccrualReport(start_day=start_day, end_day=end_day)
    if start_day > end_day:
        return report

    rows = InvestmentRepository(db).accruing_between(start_day, end_day, user_id=user_id)
    targets = [AccrualTarget.from_row(row) for row in rows]
    report.investments_seen = len(targets)
    _accrue(db, targets, generate_date_range(start_day, end_day), report)
    return _finish("backfill", report)


def complete_matured_investments(db: Session, now: Optional[datetime] = None) -> int:
    """Mark active investments past their end date as completed"""
    now = now or utc_now()

    def operation() -> int:
        expired = InvestmentRepository(db).expired_active(now)
        for investment in expired:
            investment.status = InvestmentStatus.COMPLETED.value
        db.flush()
        return len(expired)

    completed = run_atomic(db, operation, name="complete matured investments")
    if completed:
        logger.info("Matured investments completed", extra={"completed": completed})
    return completed
