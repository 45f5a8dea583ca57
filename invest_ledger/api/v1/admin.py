"""Operator endpoints: withdrawal processing, manual deposits, plans, accrual, referrals"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from invest_ledger.api.dependencies import require_admin
from invest_ledger.api.v1.schemas import (
    AccrualRunBody,
    AccrualRunResponse,
    ConfirmWithdrawalBody,
    DepositCreditResponse,
    FailWithdrawalBody,
    ManualDepositBody,
    Page,
    PlanCreateBody,
    PlanRecordSchema,
    PlanUpdateBody,
    ReferralCreateBody,
    ReferralSchema,
    TransactionSchema,
    WithdrawalOutcomeResponse,
)
from invest_ledger.domain.exceptions import ValidationError
from invest_ledger.domain.models import Principal
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services import accrual, plans, referral_bonus, wallets, withdrawals
from invest_ledger.services.withdrawals import WithdrawalOutcome

router = APIRouter(prefix="/admin")


def _outcome(outcome: WithdrawalOutcome) -> WithdrawalOutcomeResponse:
    return WithdrawalOutcomeResponse(
        transaction_id=str(outcome.transaction_id),
        reference=outcome.reference,
        status=outcome.status.value,
        amount=outcome.amount,
        earnings_affected=outcome.earnings_affected,
    )


@router.get("/withdrawals", response_model=Page[TransactionSchema])
def list_withdrawals(
    status: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows, total = withdrawals.list_withdrawals(db, status=status, user_id=user_id, page=page, limit=limit)
    return Page[TransactionSchema].build([TransactionSchema.from_row(r) for r in rows], total, page, limit)


@router.post("/withdrawals/{transaction_id}/processing", response_model=WithdrawalOutcomeResponse)
def mark_processing(
    transaction_id: uuid.UUID,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _outcome(withdrawals.mark_processing(db, transaction_id))


@router.post("/withdrawals/{transaction_id}/confirm", response_model=WithdrawalOutcomeResponse)
def confirm_withdrawal(
    transaction_id: uuid.UUID,
    body: Optional[ConfirmWithdrawalBody] = None,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Payout sent: reserved earnings are marked withdrawn"""
    tx_hash = body.tx_hash if body else None
    return _outcome(withdrawals.confirm_withdrawal(db, transaction_id, tx_hash=tx_hash))


@router.post("/withdrawals/{transaction_id}/fail", response_model=WithdrawalOutcomeResponse)
def fail_withdrawal(
    transaction_id: uuid.UUID,
    body: Optional[FailWithdrawalBody] = None,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Payout abandoned: reserved earnings become withdrawable again"""
    reason = body.reason if body else None
    return _outcome(withdrawals.fail_withdrawal(db, transaction_id, reason=reason))


@router.post("/deposits/manual", response_model=DepositCreditResponse, status_code=201)
def manual_deposit(
    body: ManualDepositBody,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    credit = wallets.credit_manual_deposit(db, body.user_id, body.amount, body.currency)
    return DepositCreditResponse(
        tx_hash=credit.tx_hash,
        credited=credit.credited,
        duplicate=credit.duplicate,
        user_id=credit.user_id,
        transaction_id=str(credit.transaction_id) if credit.transaction_id else None,
        amount=credit.amount,
    )


@router.post("/plans", response_model=PlanRecordSchema, status_code=201)
def create_plan(
    body: PlanCreateBody,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    plan = plans.create_plan(db, **body.model_dump())
    return PlanRecordSchema.from_row(plan)


@router.patch("/plans/{plan_id}", response_model=PlanRecordSchema)
def update_plan(
    plan_id: uuid.UUID,
    body: PlanUpdateBody,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    plan = plans.update_plan(db, plan_id, **body.model_dump(exclude_unset=True))
    return PlanRecordSchema.from_row(plan)


@router.delete("/plans/{plan_id}", response_model=PlanRecordSchema)
def delete_plan(
    plan_id: uuid.UUID,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Deactivates the plan; investments already made on it are unaffected"""
    return PlanRecordSchema.from_row(plans.deactivate_plan(db, plan_id))


@router.post("/accrual/run", response_model=AccrualRunResponse)
def run_accrual(
    body: AccrualRunBody,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Trigger accrual by hand.

    With ``user_id`` the given range is backfilled for that user; otherwise
    ``day`` (default today) is swept for everyone and ended investments are
    completed.
    """
    if body.user_id:
        if not (body.start_day and body.end_day):
            raise ValidationError("start_day and end_day are required for a user backfill")
        report = accrual.backfill_user(db, body.user_id, body.start_day, body.end_day)
        completed = 0
    else:
        report = accrual.run_daily_sweep(db, body.day)
        completed = accrual.complete_matured_investments(db)

    return AccrualRunResponse(
        start_day=report.start_day,
        end_day=report.end_day,
        investments_seen=report.investments_seen,
        created=report.created,
        skipped=report.skipped,
        failures=report.failures,
        completed=completed,
    )


@router.post("/referrals", response_model=ReferralSchema, status_code=201)
def create_referral(
    body: ReferralCreateBody,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Record a referral made at registration with the referrer's code"""
    referral = referral_bonus.register_referral(
        db,
        body.referrer_id,
        body.referred_id,
        body.referral_code,
        level=body.level,
    )
    return ReferralSchema.from_row(referral)
