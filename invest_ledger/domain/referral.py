"""Referral bonus pricing"""

from decimal import Decimal
from typing import Optional

from invest_ledger.utils.money import Number, to_amount

HIGH_TIERS = {"PLATINUM", "DIAMOND"}
STANDARD_TIERS = {"BRONZE", "SILVER", "GOLD"}


def bonus_percentage(tier: Optional[str]) -> Decimal:
    """
    Bonus rate by the referrer's tier.

    - Platinum, Diamond: 5%
    - Bronze, Silver, Gold: 3%
    - No tier or unknown tier: 0 (no bonus)
    """
    if not tier:
        return Decimal("0")
    tier_upper = tier.strip().upper()
    if tier_upper in HIGH_TIERS:
        return Decimal("5")
    if tier_upper in STANDARD_TIERS:
        return Decimal("3")
    return Decimal("0")


def bonus_amount(investment_amount: Number, percentage: Number) -> Decimal:
    return to_amount(to_amount(investment_amount) * Decimal(str(percentage)) / Decimal(100))


def referral_bonus_key(referred_user_id: str) -> str:
    """Idempotency key: one referral bonus per referred user, ever"""
    return f"referral_bonus:{referred_user_id}"
