"""Investment plan catalog

Plans map a tier to an amount range, a flat periodic return percentage and a
duration. Ranges are contiguous by convention only; the catalog checks range
membership per plan and nothing else.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from invest_ledger.domain.exceptions import AmountOutOfRangeError, PlanNotFoundError
from invest_ledger.domain.models import PlanConfig
from invest_ledger.utils.money import Number, to_amount

DEFAULT_PLANS: List[PlanConfig] = [
    PlanConfig(
        key="bronze",
        name="Bronze Plan",
        tier="Bronze",
        min_amount=Decimal("20"),
        max_amount=Decimal("50"),
        percentage=Decimal("5"),
        features=("Stable monthly ROI",),
    ),
    PlanConfig(
        key="silver",
        name="Silver Plan",
        tier="Silver",
        min_amount=Decimal("51"),
        max_amount=Decimal("100"),
        percentage=Decimal("8"),
        features=("Higher cap", "Stable monthly ROI"),
    ),
    PlanConfig(
        key="gold",
        name="Gold Plan",
        tier="Gold",
        min_amount=Decimal("101"),
        max_amount=Decimal("500"),
        percentage=Decimal("10"),
        features=("Premium support", "Stable monthly ROI"),
    ),
    PlanConfig(
        key="platinum",
        name="Platinum Plan",
        tier="Platinum",
        min_amount=Decimal("501"),
        max_amount=Decimal("5000"),
        percentage=Decimal("15"),
        features=("Priority processing", "Higher ROI"),
    ),
    PlanConfig(
        key="diamond",
        name="Diamond Plan",
        tier="Diamond",
        min_amount=Decimal("5001"),
        max_amount=None,
        percentage=Decimal("20"),
        features=("Top-tier ROI", "VIP support"),
    ),
]


def normalize_plan_key(plan_key: str) -> str:
    """'Gold Plan', 'GOLD' and 'gold' all resolve to 'gold'"""
    key = plan_key.strip().lower()
    if key.endswith(" plan"):
        key = key[: -len(" plan")]
    return key


class PlanCatalog:
    """Lookup and validation over a set of plan tiers"""

    def __init__(self, plans: Iterable[PlanConfig]):
        self._plans: Dict[str, PlanConfig] = {p.key: p for p in plans}

    @classmethod
    def default(cls) -> "PlanCatalog":
        return cls(DEFAULT_PLANS)

    def plans(self, include_inactive: bool = False) -> List[PlanConfig]:
        found = [p for p in self._plans.values() if include_inactive or p.is_active]
        return sorted(found, key=lambda p: p.min_amount)

    def resolve(self, plan_key: str) -> PlanConfig:
        """Return the active plan for a key or raise PlanNotFoundError"""
        plan = self._plans.get(normalize_plan_key(plan_key))
        if plan is None or not plan.is_active:
            raise PlanNotFoundError(plan_key)
        return plan

    def validate_amount(self, plan_key: str, amount: Number) -> bool:
        try:
            plan = self.resolve(plan_key)
        except PlanNotFoundError:
            return False
        return _within_range(plan, to_amount(amount))

    def check_amount(self, plan_key: str, amount: Number) -> PlanConfig:
        """Resolve the plan and raise if the amount falls outside its range"""
        plan = self.resolve(plan_key)
        value = to_amount(amount)
        if not _within_range(plan, value):
            raise AmountOutOfRangeError(plan.key, value, plan.min_amount, plan.max_amount)
        return plan

    def periodic_return(self, amount: Number, plan_key: str) -> Decimal:
        """Flat return for one period: amount * percentage / 100"""
        plan = self.resolve(plan_key)
        return to_amount(to_amount(amount) * plan.percentage / Decimal(100))

    def plan_for_amount(self, amount: Number) -> Optional[PlanConfig]:
        value = to_amount(amount)
        for plan in self.plans():
            if _within_range(plan, value):
                return plan
        return None


def _within_range(plan: PlanConfig, amount: Decimal) -> bool:
    if amount < plan.min_amount:
        return False
    # 0 and None both mean "no upper bound"
    return not plan.max_amount or amount <= plan.max_amount
