"""Earnings endpoints: listing, totals, income breakdowns and withdrawal requests"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from invest_ledger.api.dependencies import get_principal
from invest_ledger.api.v1.schemas import (
    DailyBreakdownResponse,
    DailyIncomeSchema,
    EarningSchema,
    EarningsSummaryResponse,
    EarningsWithdrawBody,
    Page,
    WithdrawalResponse,
)
from invest_ledger.domain.models import Principal
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services import earnings, withdrawals

router = APIRouter()


@router.get("/earnings", response_model=Page[EarningSchema])
def list_earnings(
    type: Optional[str] = Query(None, description="investment_earning | referral_bonus"),
    is_withdrawn: Optional[bool] = Query(None),
    sort_by: str = Query("date", description="date | amount | withdrawableDate"),
    sort_order: str = Query("desc", description="asc | desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rows, total = earnings.list_earnings(
        db,
        principal.user_id,
        earning_type=type,
        is_withdrawn=is_withdrawn,
        page=page,
        page_size=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[EarningSchema].build([EarningSchema.from_row(r) for r in rows], total, page, limit)


@router.get("/earnings/summary", response_model=EarningsSummaryResponse)
def get_summary(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    summary = earnings.earnings_summary(db, principal.user_id)
    return EarningsSummaryResponse(
        total_earnings=summary.total_earnings,
        total_withdrawn=summary.total_withdrawn,
        total_available=summary.total_available,
        investment_earnings=summary.investment_earnings,
        referral_bonuses=summary.referral_bonuses,
        withdrawable_amount=summary.withdrawable_amount,
        pending_amount=summary.pending_amount,
    )


@router.get("/earnings/today", response_model=DailyIncomeSchema)
def get_today(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return DailyIncomeSchema.from_income(earnings.today_income(db, principal.user_id))


@router.get("/earnings/daily", response_model=DailyBreakdownResponse)
def get_daily(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Per-day income, last 30 days unless a range is given"""
    incomes = earnings.daily_breakdown(db, principal.user_id, start_date, end_date)
    return DailyBreakdownResponse(
        start_day=incomes[0].day,
        end_day=incomes[-1].day,
        total=earnings.total_of(incomes),
        days=[DailyIncomeSchema.from_income(i) for i in incomes],
    )


@router.post("/earnings/withdraw", response_model=WithdrawalResponse, status_code=201)
def withdraw_earnings(
    body: EarningsWithdrawBody,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """
    Reserve matured earnings for a payout.

    Only earnings older than the maturity window count; the request is queued
    for an operator to pay out and confirm.
    """
    receipt = withdrawals.request_earnings_withdrawal(
        db,
        principal.user_id,
        body.amount,
        body.wallet_address,
        currency=body.currency,
    )
    return WithdrawalResponse(
        transaction_id=str(receipt.transaction_id),
        reference=receipt.reference,
        amount=receipt.amount,
        currency=receipt.currency,
        status=receipt.status.value,
        reserved_earning_ids=[str(i) for i in receipt.reserved_earning_ids],
        message=receipt.message,
    )
