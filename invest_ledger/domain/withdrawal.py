"""Reservation planning for earnings withdrawals"""

import re
from decimal import Decimal
from typing import List, Sequence

from invest_ledger.domain.exceptions import (
    InsufficientEarningsError,
    NoWithdrawableEarningsError,
    ValidationError,
)
from invest_ledger.domain.models import EarningCandidate, Reservation, ReservationPlan
from invest_ledger.utils.money import Number, to_amount

MIN_ADDRESS_LENGTH = 10
_WHITESPACE = re.compile(r"\s")


def plan_reservation(candidates: Sequence[EarningCandidate], requested: Number) -> ReservationPlan:
    """
    Choose which earning rows back a withdrawal of ``requested``.

    Candidates must already be filtered to eligible rows and ordered
    oldest-maturity first. Rows are consumed greedily:
    - a row no larger than what is still needed is reserved whole
    - the first row larger than what is still needed is split; the reserved
      part equals the outstanding amount and the remainder stays free

    The reserved total always equals ``requested`` exactly, and for a split
    row reserved + remainder equals the row's original amount.

    Raises:
        ValidationError: requested amount is not positive
        NoWithdrawableEarningsError: nothing is eligible
        InsufficientEarningsError: eligible total is below the request
    """
    requested = to_amount(requested)
    if requested <= 0:
        raise ValidationError("Withdrawal amount must be greater than 0")

    available = sum((to_amount(c.amount) for c in candidates), Decimal("0"))
    if available <= 0:
        raise NoWithdrawableEarningsError(requested)
    if available < requested:
        raise InsufficientEarningsError(available, requested)

    remaining = requested
    reservations: List[Reservation] = []
    for candidate in candidates:
        if remaining <= 0:
            break
        amount = to_amount(candidate.amount)
        if amount <= 0:
            continue
        if amount <= remaining:
            reservations.append(Reservation(earning_id=candidate.earning_id, reserved_amount=amount))
            remaining -= amount
        else:
            reservations.append(
                Reservation(
                    earning_id=candidate.earning_id,
                    reserved_amount=remaining,
                    remainder=amount - remaining,
                )
            )
            remaining = Decimal("0")

    return ReservationPlan(requested=requested, available=available, reservations=reservations)


def validate_withdrawal_address(address: str) -> str:
    """Reject obviously malformed destination addresses"""
    cleaned = (address or "").strip()
    if len(cleaned) < MIN_ADDRESS_LENGTH:
        raise ValidationError(f"Wallet address must be at least {MIN_ADDRESS_LENGTH} characters")
    if _WHITESPACE.search(cleaned):
        raise ValidationError("Wallet address must not contain whitespace")
    return cleaned
