"""
Core sale algorithms
"""

from .errors import (
    AlreadyClaimedError,
    ArithmeticOverflowError,
    InsufficientLiquidityError,
    InvalidAlphaError,
    InvalidDecimalsError,
    InvalidInputError,
    InvalidSaleAmountError,
    InvalidTargetRaiseError,
    InvariantViolationError,
    OversellError,
    SaleError,
    SlippageExceededError,
    StateViolationError,
    WindowViolationError,
)
from .virtual_amm import (
    DecimalConfig,
    Reserves,
    SaleAllocation,
    calculate_total_supply,
    get_current_price,
    get_quote_in,
    get_quote_out,
    get_tokens_in,
    get_tokens_out,
    initialize,
    invariant_holds,
    update_reserves,
)
from .sale_types import SaleParams, SaleState, SaleStatus, initial_state
from .events import EventKind, SaleEvent, event_to_dict
from .sale import Sale

__all__ = [
    "AlreadyClaimedError",
    "ArithmeticOverflowError",
    "InsufficientLiquidityError",
    "InvalidAlphaError",
    "InvalidDecimalsError",
    "InvalidInputError",
    "InvalidSaleAmountError",
    "InvalidTargetRaiseError",
    "InvariantViolationError",
    "OversellError",
    "SaleError",
    "SlippageExceededError",
    "StateViolationError",
    "WindowViolationError",
    "DecimalConfig",
    "Reserves",
    "SaleAllocation",
    "calculate_total_supply",
    "get_current_price",
    "get_quote_in",
    "get_quote_out",
    "get_tokens_in",
    "get_tokens_out",
    "initialize",
    "invariant_holds",
    "update_reserves",
    "SaleParams",
    "SaleState",
    "SaleStatus",
    "initial_state",
    "EventKind",
    "SaleEvent",
    "event_to_dict",
    "Sale",
]
