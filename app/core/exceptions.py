"""Error taxonomy for ledger, loan and withdrawal operations.

Every refused financial action raises a ``LedgerError`` subclass carrying a
stable ``code`` and the boundary values (max eligible amount, current balance,
shortfall) needed to explain the refusal without re-querying.
"""
from decimal import Decimal
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all domain errors."""
    status_code = 400
    default_code = "LedgerError"

    def __init__(self, message: str, code: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "message": self.message}
        for key, value in self.details.items():
            payload[key] = _plain(value)
        return payload


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


class ValidationError(LedgerError):
    """Bad month/year/amount/duration: fixable by the caller."""
    status_code = 400
    default_code = "ValidationError"


class InvalidPeriodError(ValidationError):
    default_code = "InvalidPeriod"


class NotFoundError(LedgerError):
    """Member, loan, application or request missing."""
    status_code = 404
    default_code = "NotFound"


class StateConflictError(LedgerError):
    """Decision on a non-pending item, inactive loan, or concurrent double insert."""
    status_code = 409
    default_code = "StateConflict"


class ConcurrentModificationError(StateConflictError):
    default_code = "ConcurrentModification"


class PolicyViolationError(LedgerError):
    """Eligibility failure or insufficient balance."""
    status_code = 422
    default_code = "PolicyViolation"


class InsufficientBalanceError(PolicyViolationError):
    default_code = "InsufficientBalance"

    def __init__(self, current_balance: Decimal, requested_amount: Decimal, message: Optional[str] = None):
        shortfall = requested_amount - current_balance
        super().__init__(
            message or (
                f"Insufficient special savings balance: current balance {current_balance:,.2f}, "
                f"requested {requested_amount:,.2f}, shortfall {shortfall:,.2f}"
            ),
            currentBalance=current_balance,
            requestedAmount=requested_amount,
            shortfall=shortfall,
        )


class InfrastructureError(LedgerError):
    """Storage unavailable or timed out. The transaction was not applied."""
    status_code = 503
    default_code = "StorageUnavailable"
