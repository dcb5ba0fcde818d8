"""
Portfolio error taxonomy.

Every rejected operation raises one of these before touching any state,
so callers can re-prompt the user without worrying about partial updates.
"""

from typing import Optional


class PortfolioError(Exception):
    """Base class for recoverable portfolio errors."""

    code = "portfolio_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class InvalidAmount(PortfolioError):
    """Non-positive or non-finite size/amount."""

    code = "invalid_amount"

    def __init__(self, message: str, value: Optional[float] = None):
        super().__init__(message)
        self.value = value


class InvalidSize(InvalidAmount):
    """Position size is not a positive finite number of grams."""

    code = "invalid_size"


class InvalidSide(PortfolioError):
    code = "invalid_side"

    def __init__(self, side):
        super().__init__(f"Unknown side: {side!r} (expected Buy or Sell)")
        self.side = side


class InsufficientBalance(PortfolioError):
    code = "insufficient_balance"

    def __init__(self, requested: float, available: float):
        super().__init__(
            f"Withdrawal of ${requested:,.2f} exceeds available balance ${available:,.2f}"
        )
        self.requested = requested
        self.available = available


class NotFound(PortfolioError):
    code = "not_found"


class PositionNotFound(NotFound):
    def __init__(self, position_id: str):
        super().__init__(f"Position not found: {position_id}")
        self.position_id = position_id


class InvalidHorizon(NotFound):
    def __init__(self, horizon: str):
        super().__init__(f"Unknown chart horizon: {horizon}")
        self.horizon = horizon


class GenerationFault(PortfolioError):
    """Price generator produced a non-finite or non-positive price."""

    code = "generation_fault"


class SessionInactive(PortfolioError):
    code = "session_inactive"

    def __init__(self, operation: str):
        super().__init__(f"Session is not active: cannot {operation}")
        self.operation = operation


def require_positive(value, what: str, error_cls=InvalidAmount) -> float:
    """Coerce value to float and reject non-finite or non-positive numbers."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise error_cls(f"{what} must be a number, got {value!r}", value=None)
    # NaN fails every comparison, inf fails the upper bound
    if not (0 < number < float("inf")):
        raise error_cls(f"{what} must be a positive finite number, got {value!r}", value=number)
    return number
