"""Transaction history endpoints"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from invest_ledger.api.dependencies import get_principal
from invest_ledger.api.v1.schemas import Page, TransactionSchema
from invest_ledger.domain.models import Principal
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services import transactions

router = APIRouter()


@router.get("/transactions", response_model=Page[TransactionSchema])
def list_transactions(
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rows, total = transactions.list_transactions(
        db,
        principal.user_id,
        transaction_type=type,
        status=status,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )
    return Page[TransactionSchema].build([TransactionSchema.from_row(r) for r in rows], total, page, limit)


@router.get("/transactions/{transaction_id}", response_model=TransactionSchema)
def get_transaction(
    transaction_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return TransactionSchema.from_row(transactions.get_transaction(db, principal.user_id, transaction_id))
