"""GET /v1/plans - Active investment plans"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from invest_ledger.api.v1.schemas import PlanSchema
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services.plans import list_active_plans

router = APIRouter()


@router.get("/plans", response_model=List[PlanSchema])
def get_plans(db: Session = Depends(get_db)):
    """Active plans ordered by minimum amount"""
    return [PlanSchema.from_config(plan) for plan in list_active_plans(db)]
