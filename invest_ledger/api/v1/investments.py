"""Investment endpoints"""

import csv
import io
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.responses import Response

from invest_ledger.api.dependencies import get_principal
from invest_ledger.api.v1.schemas import (
    InvestmentCreateBody,
    InvestmentReceiptResponse,
    InvestmentSchema,
    Page,
)
from invest_ledger.domain.models import Principal
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services import investments

router = APIRouter()


@router.post("/investments", response_model=InvestmentReceiptResponse, status_code=201)
def create_investment(
    body: InvestmentCreateBody,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """
    Invest wallet funds in a plan.

    Flow:
    1. Resolve the plan and check the amount against its range
    2. Debit the wallet and open the investment in one unit
    3. Pay the referrer's first-investment bonus, if any (best effort)
    """
    receipt = investments.create_investment(db, principal.user_id, body.plan, body.amount, body.currency)
    return InvestmentReceiptResponse(
        investment_id=str(receipt.investment_id),
        transaction_id=str(receipt.transaction_id),
        reference=receipt.reference,
        plan=receipt.plan,
        amount=receipt.amount,
        monthly_return=receipt.monthly_return,
        start_date=receipt.start_date,
        end_date=receipt.end_date,
        wallet_balance=receipt.wallet_balance,
    )


@router.get("/investments", response_model=Page[InvestmentSchema])
def list_investments(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rows, total = investments.list_investments(db, principal.user_id, status=status, page=page, limit=limit)
    return Page[InvestmentSchema].build([InvestmentSchema.from_row(r) for r in rows], total, page, limit)


@router.get("/investments/export")
def export_investments(
    status: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """CSV download of the caller's investments"""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=investments.EXPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(investments.export_investments(db, principal.user_id, status=status))
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="investments.csv"'},
    )


@router.get("/investments/{investment_id}", response_model=InvestmentSchema)
def get_investment(
    investment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return InvestmentSchema.from_row(investments.get_investment(db, principal.user_id, investment_id))


@router.post("/investments/{investment_id}/pause", response_model=InvestmentSchema)
def pause_investment(
    investment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return InvestmentSchema.from_row(investments.pause_investment(db, principal.user_id, investment_id))


@router.post("/investments/{investment_id}/resume", response_model=InvestmentSchema)
def resume_investment(
    investment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return InvestmentSchema.from_row(investments.resume_investment(db, principal.user_id, investment_id))


@router.post("/investments/{investment_id}/cancel", response_model=InvestmentSchema)
def cancel_investment(
    investment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return InvestmentSchema.from_row(investments.cancel_investment(db, principal.user_id, investment_id))
