"""Data types for the sale lifecycle.

All types are frozen dataclasses (immutable); transitions build a new state
with ``dataclasses.replace``.

Units/conventions:
- token amounts are token base units (``10 ** token_decimals`` per token),
- quote amounts are quote base units (``10 ** quote_decimals`` per unit),
- prices are quote base units per whole token,
- ``*_bps`` ratios are basis points (1/10_000),
- ``refund_rate`` is quote base units per whole token.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from enum import Enum, unique
from typing import FrozenSet, Optional

from .errors import InvalidInputError
from .fixed_point import BPS_DENOM
from .virtual_amm import DecimalConfig, Reserves, SaleAllocation, initialize


@unique
class SaleStatus(Enum):
    """Forward-only: ACTIVE -> LAUNCHED or ACTIVE -> FAILED."""

    ACTIVE = "Active"
    LAUNCHED = "Launched"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SaleStatus.ACTIVE


@dataclass(frozen=True)
class SaleParams:
    """Immutable economics of one sale, fixed at creation."""

    allocation: SaleAllocation
    decimals: DecimalConfig = DecimalConfig()
    buy_fee_bps: int = 30
    sell_fee_bps: int = 100
    lp_ratio_bps: int = 7_000
    min_raise_ratio_bps: int = 7_500

    def __post_init__(self) -> None:
        for name, v in (
            ("buy_fee_bps", self.buy_fee_bps),
            ("sell_fee_bps", self.sell_fee_bps),
            ("lp_ratio_bps", self.lp_ratio_bps),
            ("min_raise_ratio_bps", self.min_raise_ratio_bps),
        ):
            if not isinstance(v, int) or isinstance(v, bool):
                raise InvalidInputError(f"{name} must be an int")
            if not (0 <= v <= BPS_DENOM):
                raise InvalidInputError(f"{name} must be in [0, {BPS_DENOM}]: {v}")
        if self.min_raise_ratio_bps == 0:
            raise InvalidInputError("min_raise_ratio_bps must be positive")

    @property
    def salable_supply(self) -> int:
        return self.allocation.salable_supply

    @cached_property
    def initial_reserves(self) -> Reserves:
        return initialize(self.allocation.salable_supply, self.decimals)

    def min_raise_met(self, sold_amount: int) -> bool:
        """``sold >= min_raise_ratio * salable`` evaluated exactly (no rounding)."""
        return sold_amount * BPS_DENOM >= self.allocation.salable_supply * self.min_raise_ratio_bps


@dataclass(frozen=True)
class SaleState:
    """Complete mutable-by-replacement state of one sale."""

    reserves: Reserves
    start_time: int
    end_time: int

    status: SaleStatus = SaleStatus.ACTIVE
    sold_amount: int = 0
    quote_collected: int = 0

    # Fees and volume (supplementary accounting)
    protocol_fees: int = 0
    trading_volume: int = 0

    # Failure / refunds
    refund_rate: int = 0
    claimed: FrozenSet[str] = field(default_factory=frozenset)
    refunded_total: int = 0

    # Launch / liquidity hand-off
    lp_quote_amount: int = 0
    project_funding: int = 0
    final_price: int = 0
    liquidity_provisioned: bool = False
    lp_tokens_locked: int = 0

    launched_at: Optional[int] = None
    failed_at: Optional[int] = None


def initial_state(params: SaleParams, start_time: int, end_time: int) -> SaleState:
    """Fresh ACTIVE state with reserves derived from the sale allocation."""
    for name, v in (("start_time", start_time), ("end_time", end_time)):
        if not isinstance(v, int) or isinstance(v, bool) or v < 0:
            raise InvalidInputError(f"{name} must be a non-negative int: {v!r}")
    if end_time <= start_time:
        raise InvalidInputError(f"end_time ({end_time}) must be after start_time ({start_time})")
    return SaleState(
        reserves=params.initial_reserves,
        start_time=start_time,
        end_time=end_time,
    )
