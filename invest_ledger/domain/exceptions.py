"""Domain-specific exceptions

Every ledger failure is one of a closed set of kinds (``ErrorCode``). Each
exception class pins its kind and carries the values a caller needs to act on
it as attributes, so handlers branch on the type or ``code`` and never on the
message text.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from invest_ledger.utils.money import format_amount


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PLAN = "INVALID_PLAN"
    AMOUNT_OUT_OF_RANGE = "AMOUNT_OUT_OF_RANGE"
    NO_WITHDRAWABLE_EARNINGS = "NO_WITHDRAWABLE_EARNINGS"
    INSUFFICIENT_EARNINGS = "INSUFFICIENT_EARNINGS"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    WALLET_NOT_FOUND = "WALLET_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    CHAIN_API_ERROR = "CHAIN_API_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LedgerError(DomainException):
    """A ledger operation was refused; ``code`` says why"""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def details(self) -> Dict[str, Any]:
        return {}


# Validation errors: reported synchronously, never retried


class ValidationError(LedgerError):
    """Request is malformed (bad address, non-positive amount, bad range)"""

    code = ErrorCode.VALIDATION_ERROR


class PlanNotFoundError(ValidationError):
    """Plan key does not resolve to an active plan"""

    code = ErrorCode.INVALID_PLAN

    def __init__(self, plan_key: str):
        super().__init__("Investment plan is invalid or inactive")
        self.plan_key = plan_key

    @property
    def details(self) -> Dict[str, Any]:
        return {"plan": self.plan_key}


class AmountOutOfRangeError(ValidationError):
    code = ErrorCode.AMOUNT_OUT_OF_RANGE

    def __init__(self, plan_key: str, amount: Decimal, minimum: Decimal, maximum: Optional[Decimal]):
        upper = str(maximum) if maximum is not None else "unlimited"
        super().__init__(f"Amount must be between {minimum} and {upper}")
        self.plan_key = plan_key
        self.amount = amount
        self.minimum = minimum
        self.maximum = maximum

    @property
    def details(self) -> Dict[str, Any]:
        return {
            "plan": self.plan_key,
            "amount": str(self.amount),
            "minimum": str(self.minimum),
            "maximum": str(self.maximum) if self.maximum is not None else None,
        }


# Resource-state errors: carry the limiting and the requested value


class NoWithdrawableEarningsError(LedgerError):
    code = ErrorCode.NO_WITHDRAWABLE_EARNINGS

    def __init__(self, requested: Decimal):
        super().__init__(
            "No earnings available for withdrawal. Earnings can only be withdrawn "
            "after complete 30 days from the earning date."
        )
        self.available = Decimal("0")
        self.requested = requested

    @property
    def details(self) -> Dict[str, Any]:
        return {"available": str(self.available), "requested": str(self.requested)}


class InsufficientEarningsError(LedgerError):
    code = ErrorCode.INSUFFICIENT_EARNINGS

    def __init__(self, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient withdrawable earnings. Available: {format_amount(available)}, "
            f"Requested: {format_amount(requested)}."
        )
        self.available = available
        self.requested = requested

    @property
    def details(self) -> Dict[str, Any]:
        return {"available": str(self.available), "requested": str(self.requested)}


class InsufficientBalanceError(LedgerError):
    code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, currency: str, available: Decimal, required: Decimal):
        super().__init__(
            f"Insufficient {currency} balance. Available: {format_amount(available)}, "
            f"Required: {format_amount(required)}"
        )
        self.currency = currency
        self.available = available
        self.required = required

    @property
    def details(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "available": str(self.available),
            "required": str(self.required),
        }


class WalletNotFoundError(LedgerError):
    code = ErrorCode.WALLET_NOT_FOUND

    def __init__(self, user_id: str):
        super().__init__("Wallet not found")
        self.user_id = user_id


class NotFoundError(LedgerError):
    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.identifier = identifier


class InvalidStateTransitionError(LedgerError):
    code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(self, entity: str, current_status: str, action: str):
        super().__init__(f"Cannot {action} {entity} in {current_status} state")
        self.entity = entity
        self.current_status = current_status
        self.action = action

    @property
    def details(self) -> Dict[str, Any]:
        return {"status": self.current_status, "action": self.action}


# Concurrency conflicts: recoverable, the atomic unit may be retried


class ConcurrencyConflictError(LedgerError):
    code = ErrorCode.CONCURRENCY_CONFLICT

    def __init__(self, operation: str, attempts: int):
        super().__init__(f"Concurrent update conflict during {operation}; retry the request")
        self.operation = operation
        self.attempts = attempts


# External-dependency errors


class ChainAPIError(LedgerError):
    """Chain scanning API returned an error or is unavailable"""

    code = ErrorCode.CHAIN_API_ERROR
