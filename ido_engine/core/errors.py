"""Exception types for the sale engine.

Every failure is local and non-retryable. Each class carries a ``kind`` drawn
from a small closed taxonomy so that a client can tell "loosen the slippage
bound" apart from "the sale already ended" without matching on messages.
"""

from __future__ import annotations


KIND_INVALID_INPUT = "InvalidInput"
KIND_INVARIANT_VIOLATION = "InvariantViolation"
KIND_SLIPPAGE_EXCEEDED = "SlippageExceeded"
KIND_WINDOW_VIOLATION = "WindowViolation"
KIND_STATE_VIOLATION = "StateViolation"
KIND_ALREADY_CLAIMED = "AlreadyClaimed"


class SaleError(Exception):
    """Base class for all sale engine errors."""

    kind: str = KIND_INVALID_INPUT


class InvalidInputError(SaleError, ValueError):
    """Raised on zero amounts, empty accounts or malformed configuration."""

    kind = KIND_INVALID_INPUT


class InvalidSaleAmountError(InvalidInputError):
    """Raised when a sale is initialized with no salable supply."""


class InvalidDecimalsError(InvalidInputError):
    """Raised when a decimal configuration yields a zero or absurd base unit."""


class InvalidAlphaError(InvalidInputError):
    """Raised when the ownership ratio is outside (0, 50%]."""


class InvalidTargetRaiseError(InvalidInputError):
    """Raised when the target raise is not positive."""


class OversellError(InvalidInputError):
    """Raised when a buy asks for more tokens than remain salable."""

    def __init__(self, requested: int, remaining: int) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(f"requested {requested} tokens but only {remaining} remain salable")


class ArithmeticOverflowError(InvalidInputError):
    """Raised when an intermediate product leaves the 256-bit unsigned range."""


class InvariantViolationError(SaleError):
    """Raised when a post-state violates one or more invariants."""

    kind = KIND_INVARIANT_VIOLATION

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


class InsufficientLiquidityError(InvariantViolationError):
    """Raised when a quote would drain (or exceed) a virtual reserve."""

    def __init__(self, message: str) -> None:
        super().__init__(["insufficient_liquidity"])
        self.args = (message,)


class SlippageExceededError(SaleError):
    """Raised when the executed amount is worse than the caller's bound."""

    kind = KIND_SLIPPAGE_EXCEEDED

    def __init__(self, actual: int, limit: int) -> None:
        self.actual = actual
        self.limit = limit
        super().__init__(f"slippage exceeded: actual={actual} limit={limit}")


class WindowViolationError(SaleError):
    """Raised when an operation is attempted outside the fundraising window."""

    kind = KIND_WINDOW_VIOLATION


class StateViolationError(SaleError):
    """Raised when an operation is attempted in the wrong lifecycle state."""

    kind = KIND_STATE_VIOLATION


class AlreadyClaimedError(SaleError):
    """Raised when a participant claims a refund twice."""

    kind = KIND_ALREADY_CLAIMED

    def __init__(self, participant: str) -> None:
        self.participant = participant
        super().__init__(f"refund already claimed by {participant}")
