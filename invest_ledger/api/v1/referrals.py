"""Referral endpoints for the referrer"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from invest_ledger.api.dependencies import get_principal
from invest_ledger.api.v1.schemas import EarningSchema, Page, ReferralSchema, ReferralSummaryResponse
from invest_ledger.domain.models import Principal
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services import referral_bonus

router = APIRouter()


@router.get("/referrals/summary", response_model=ReferralSummaryResponse)
def get_referral_summary(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    summary = referral_bonus.referral_summary(db, principal.user_id)
    return ReferralSummaryResponse(
        user_id=summary.user_id,
        total_referrals=summary.total_referrals,
        active_referrals=summary.active_referrals,
        total_earnings=summary.total_earnings,
        tier=summary.tier,
        bonus_percentage=summary.bonus_percentage,
    )


@router.get("/referrals", response_model=Page[ReferralSchema])
def list_referrals(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rows, total = referral_bonus.list_referred_users(db, principal.user_id, status=status, page=page, limit=limit)
    return Page[ReferralSchema].build([ReferralSchema.from_row(r) for r in rows], total, page, limit)


@router.get("/referrals/earnings", response_model=Page[EarningSchema])
def list_referral_earnings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Bonuses earned from referred users' first investments"""
    rows, total = referral_bonus.list_referral_earnings(db, principal.user_id, page=page, limit=limit)
    return Page[EarningSchema].build([EarningSchema.from_row(r) for r in rows], total, page, limit)
