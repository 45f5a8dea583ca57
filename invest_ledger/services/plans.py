"""Persisted plan tiers and the catalog built from them"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from invest_ledger.domain.exceptions import NotFoundError, ValidationError
from invest_ledger.domain.models import PlanConfig
from invest_ledger.domain.plans import DEFAULT_PLANS, PlanCatalog, normalize_plan_key
from invest_ledger.infrastructure.database.models import Plan
from invest_ledger.infrastructure.database.repositories import PlanRepository
from invest_ledger.infrastructure.database.session import run_atomic
from invest_ledger.utils.money import ZERO, to_amount

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name",
    "tier",
    "description",
    "min_amount",
    "max_amount",
    "percentage",
    "duration_days",
    "features",
    "is_active",
)


def plan_config_from_row(row: Plan) -> PlanConfig:
    max_amount = to_amount(row.max_amount) if row.max_amount else None
    return PlanConfig(
        key=row.key,
        name=row.name,
        tier=row.tier,
        min_amount=to_amount(row.min_amount),
        max_amount=max_amount,
        percentage=Decimal(str(row.percentage)),
        duration_days=row.duration_days,
        is_active=row.is_active,
        features=tuple(row.features or ()),
    )


def load_catalog(db: Session) -> PlanCatalog:
    """Catalog over the plan table, or the built-in tiers while it is empty"""
    rows = PlanRepository(db).list(active_only=False)
    if not rows:
        return PlanCatalog.default()
    return PlanCatalog(plan_config_from_row(row) for row in rows)


def list_active_plans(db: Session) -> List[PlanConfig]:
    return load_catalog(db).plans()


def seed_default_plans(db: Session) -> int:
    """Insert the built-in tiers that are missing by name; returns how many were added"""

    def operation() -> int:
        repo = PlanRepository(db)
        added = 0
        for config in DEFAULT_PLANS:
            if repo.get_by_name(config.name) is not None:
                continue
            repo.add(
                Plan(
                    key=config.key,
                    name=config.name,
                    tier=config.tier,
                    min_amount=config.min_amount,
                    max_amount=config.max_amount or ZERO,
                    percentage=config.percentage,
                    duration_days=config.duration_days,
                    features=list(config.features),
                    is_active=True,
                )
            )
            added += 1
        return added

    added = run_atomic(db, operation, name="seed plans")
    if added:
        logger.info("Seeded default plans", extra={"added": added})
    return added


def _validate_plan_fields(fields: Dict[str, Any]) -> None:
    minimum = fields.get("min_amount")
    maximum = fields.get("max_amount")
    percentage = fields.get("percentage")

    if minimum is not None and to_amount(minimum) < 0:
        raise ValidationError("Minimum amount cannot be negative")
    if maximum is not None and to_amount(maximum) < 0:
        raise ValidationError("Maximum amount cannot be negative")
    if minimum is not None and maximum and to_amount(maximum) < to_amount(minimum):
        raise ValidationError("Maximum amount must be greater than minimum amount")
    if percentage is not None and not (0 <= Decimal(str(percentage)) <= 100):
        raise ValidationError("Percentage must be between 0 and 100")
    if fields.get("duration_days") is not None and fields["duration_days"] < 1:
        raise ValidationError("Duration must be at least one day")


def create_plan(
    db: Session,
    name: str,
    tier: str,
    min_amount: Decimal,
    percentage: Decimal,
    max_amount: Optional[Decimal] = None,
    duration_days: int = 30,
    description: Optional[str] = None,
    features: Optional[List[str]] = None,
) -> Plan:
    fields = {
        "min_amount": min_amount,
        "max_amount": max_amount,
        "percentage": percentage,
        "duration_days": duration_days,
    }
    _validate_plan_fields(fields)

    def operation() -> Plan:
        repo = PlanRepository(db)
        if repo.get_by_name(name) is not None:
            raise ValidationError(f"Plan '{name}' already exists")
        return repo.add(
            Plan(
                key=normalize_plan_key(tier),
                name=name,
                tier=tier,
                description=description,
                min_amount=to_amount(min_amount),
                max_amount=to_amount(max_amount) if max_amount else ZERO,
                percentage=Decimal(str(percentage)),
                duration_days=duration_days,
                features=list(features or []),
                is_active=True,
            )
        )

    plan = run_atomic(db, operation, name="create plan")
    logger.info("Plan created", extra={"plan_id": str(plan.id), "tier": tier})
    return plan


def update_plan(db: Session, plan_id: uuid.UUID, **changes: Any) -> Plan:
    """Apply a partial update; unknown fields are rejected"""
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown plan fields: {', '.join(sorted(unknown))}")

    def operation() -> Plan:
        plan = PlanRepository(db).get(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)

        merged = {
            "min_amount": changes.get("min_amount", plan.min_amount),
            "max_amount": changes.get("max_amount", plan.max_amount),
            "percentage": changes.get("percentage", plan.percentage),
            "duration_days": changes.get("duration_days", plan.duration_days),
        }
        _validate_plan_fields(merged)

        for field_name, value in changes.items():
            if field_name == "max_amount" and value is None:
                value = ZERO
            if field_name == "tier":
                plan.key = normalize_plan_key(value)
            setattr(plan, field_name, value)
        db.flush()
        return plan

    return run_atomic(db, operation, name="update plan")


def deactivate_plan(db: Session, plan_id: uuid.UUID) -> Plan:
    """Soft delete: the plan stops accepting investments, existing ones keep their snapshot"""

    def operation() -> Plan:
        plan = PlanRepository(db).get(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        plan.is_active = False
        db.flush()
        return plan

    plan = run_atomic(db, operation, name="deactivate plan")
    logger.info("Plan deactivated", extra={"plan_id": str(plan_id)})
    return plan
