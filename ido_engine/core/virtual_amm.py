"""
Virtual-reserve constant-product pricing for primary sales.

This module implements the pure pricing math behind a sale with deterministic
rounding rules. The reserves are *virtual*: they never hold escrowed funds and
exist only to shape the price curve.

Algorithm Design:
- Type: Fixed-Point Integer Arithmetic / Deterministic Rounding
- Time Complexity: O(1) per quote
- Space Complexity: O(1) auxiliary
- Invariant: after each trade, quote_reserve * token_reserve >= invariant

Rounding discipline: functions that determine an amount the participant pays
round up, functions that determine an amount the participant receives round
down. That asymmetry is what keeps the product non-decreasing across an
unbounded sequence of trades.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .errors import (
    InsufficientLiquidityError,
    InvalidAlphaError,
    InvalidDecimalsError,
    InvalidSaleAmountError,
    InvalidTargetRaiseError,
)
from .fixed_point import (
    BPS_DENOM,
    MAX_DECIMALS,
    UINT256_MAX,
    checked_add,
    checked_mul,
    isqrt_floor,
    mul_div_floor,
)


# Initial price P0 = 1/100 quote per token.
INITIAL_PRICE_NUM = 1
INITIAL_PRICE_DEN = 100
# (1 - P0) expressed over the same denominator.
INITIAL_PRICE_COMPLEMENT = INITIAL_PRICE_DEN - INITIAL_PRICE_NUM

# Ownership ratio (alpha) is expressed in basis points: 0 < alpha <= 50%.
MAX_OWNERSHIP_RATIO_BPS = 5_000
SUPPLY_MULTIPLIER = 100


@dataclass(frozen=True)
class DecimalConfig:
    """Per-sale decimal scales. Immutable for the lifetime of a sale."""

    quote_decimals: int = 6
    token_decimals: int = 18

    def __post_init__(self) -> None:
        for name, v in (
            ("quote_decimals", self.quote_decimals),
            ("token_decimals", self.token_decimals),
        ):
            if not isinstance(v, int) or isinstance(v, bool):
                raise InvalidDecimalsError(f"{name} must be an int")
            if not (0 <= v <= MAX_DECIMALS):
                raise InvalidDecimalsError(f"{name} must be in [0, {MAX_DECIMALS}]: {v}")

    @property
    def quote_unit(self) -> int:
        return 10 ** self.quote_decimals

    @property
    def token_unit(self) -> int:
        return 10 ** self.token_decimals


@dataclass(frozen=True)
class Reserves:
    """Virtual reserve pair plus the invariant fixed at initialization."""

    quote_reserve: int
    token_reserve: int
    invariant: int

    def __post_init__(self) -> None:
        for name, v in (
            ("quote_reserve", self.quote_reserve),
            ("token_reserve", self.token_reserve),
            ("invariant", self.invariant),
        ):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")

    @property
    def product(self) -> int:
        return self.quote_reserve * self.token_reserve


@dataclass(frozen=True)
class SaleAllocation:
    total_supply: int
    salable_supply: int
    reserved_supply: int

    def __post_init__(self) -> None:
        if self.salable_supply + self.reserved_supply != self.total_supply:
            raise ValueError("salable_supply + reserved_supply must equal total_supply")
        if self.salable_supply <= 0:
            raise InvalidSaleAmountError("salable_supply must be positive")


def _require_amount(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0:
        raise ValueError(f"{name} must be non-negative: {value}")


def initialize(salable_supply: int, decimals: DecimalConfig) -> Reserves:
    """
    Derive virtual reserves for a sale of ``salable_supply`` token base units.

    The curve starts at exactly P0 = 1/100 and, fully drained of
    ``salable_supply`` tokens, sells them for a finite quote amount:

        quote_reserve = salable * P0_num * quote_unit / (token_unit * (P0_den - P0_num))
        token_reserve = salable * P0_den / (P0_den - P0_num)
        invariant     = quote_reserve * token_reserve

    Raises:
        InvalidSaleAmountError: salable supply is zero or too small to price
        InvalidDecimalsError: a base unit is zero
    """
    _require_amount("salable_supply", salable_supply)
    if salable_supply == 0:
        raise InvalidSaleAmountError("salable_supply must be positive")
    if decimals.quote_unit == 0 or decimals.token_unit == 0:
        raise InvalidDecimalsError("base units must be non-zero")

    quote_reserve = mul_div_floor(
        checked_mul(salable_supply, INITIAL_PRICE_NUM),
        decimals.quote_unit,
        checked_mul(decimals.token_unit, INITIAL_PRICE_COMPLEMENT),
    )
    token_reserve = mul_div_floor(salable_supply, INITIAL_PRICE_DEN, INITIAL_PRICE_COMPLEMENT)
    if quote_reserve == 0:
        raise InvalidSaleAmountError(
            f"salable_supply {salable_supply} is too small to price at the initial ratio"
        )

    return Reserves(
        quote_reserve=quote_reserve,
        token_reserve=token_reserve,
        invariant=checked_mul(quote_reserve, token_reserve),
    )


def get_tokens_out(reserves: Reserves, quote_in: int) -> int:
    """
    Tokens received for exactly ``quote_in`` paid (floor):

        tokens_out = floor(token_reserve * quote_in / (quote_reserve + quote_in))
    """
    _require_amount("quote_in", quote_in)
    if reserves.token_reserve == 0:
        raise InsufficientLiquidityError("token reserve is empty")
    if quote_in == 0:
        return 0
    return mul_div_floor(
        reserves.token_reserve, quote_in, checked_add(reserves.quote_reserve, quote_in)
    )


def get_quote_in(reserves: Reserves, tokens_out: int) -> int:
    """
    Quote paid to receive exactly ``tokens_out`` (ceiling):

        quote_in = floor(quote_reserve * tokens_out / (token_reserve - tokens_out)) + 1

    The trailing +1 keeps truncation from letting the post-trade product fall
    below the pre-trade invariant.
    """
    _require_amount("tokens_out", tokens_out)
    if tokens_out >= reserves.token_reserve:
        raise InsufficientLiquidityError(
            f"tokens_out ({tokens_out}) >= token_reserve ({reserves.token_reserve})"
        )
    if tokens_out == 0:
        return 0
    return (
        mul_div_floor(reserves.quote_reserve, tokens_out, reserves.token_reserve - tokens_out)
        + 1
    )


def get_quote_out(reserves: Reserves, tokens_in: int) -> int:
    """
    Quote received for exactly ``tokens_in`` returned to the curve (floor):

        quote_out = floor(quote_reserve * tokens_in / (token_reserve + tokens_in))
    """
    _require_amount("tokens_in", tokens_in)
    if reserves.quote_reserve == 0:
        raise InsufficientLiquidityError("quote reserve is empty")
    if tokens_in == 0:
        return 0
    return mul_div_floor(
        reserves.quote_reserve, tokens_in, checked_add(reserves.token_reserve, tokens_in)
    )


def get_tokens_in(reserves: Reserves, quote_out: int) -> int:
    """
    Tokens that must be returned to receive exactly ``quote_out`` (ceiling):

        tokens_in = floor(token_reserve * quote_out / (quote_reserve - quote_out)) + 1
    """
    _require_amount("quote_out", quote_out)
    if quote_out >= reserves.quote_reserve:
        raise InsufficientLiquidityError(
            f"quote_out ({quote_out}) >= quote_reserve ({reserves.quote_reserve})"
        )
    if quote_out == 0:
        return 0
    return (
        mul_div_floor(reserves.token_reserve, quote_out, reserves.quote_reserve - quote_out)
        + 1
    )


def get_current_price(reserves: Reserves, decimals: DecimalConfig) -> int:
    """
    Spot price in quote base units per whole token, rounded to nearest.

        price = (quote_reserve * token_unit + token_reserve / 2) / token_reserve
    """
    if reserves.token_reserve == 0:
        raise InsufficientLiquidityError("token reserve is empty")
    scaled = checked_mul(reserves.quote_reserve, decimals.token_unit)
    return checked_add(scaled, reserves.token_reserve // 2) // reserves.token_reserve


def update_reserves(reserves: Reserves, quote_delta: int, token_delta: int) -> Reserves:
    """
    Apply a trade's raw signed deltas to the reserve pair.

    The stored invariant is carried over unchanged; callers compute the deltas
    from the quote functions above and keep fees outside the curve.
    """
    for name, v in (("quote_delta", quote_delta), ("token_delta", token_delta)):
        if not isinstance(v, int) or isinstance(v, bool):
            raise TypeError(f"{name} must be an int")

    new_quote = reserves.quote_reserve + quote_delta
    new_token = reserves.token_reserve + token_delta
    if new_quote < 0 or new_token < 0:
        raise InsufficientLiquidityError(
            f"reserves would go negative: ({new_quote}, {new_token})"
        )
    if new_quote > UINT256_MAX or new_token > UINT256_MAX:
        raise InsufficientLiquidityError("reserves would leave the uint256 range")
    return Reserves(quote_reserve=new_quote, token_reserve=new_token, invariant=reserves.invariant)


def invariant_holds(reserves: Reserves) -> bool:
    """True iff the recomputed product has not fallen below the stored invariant."""
    return reserves.product >= reserves.invariant


def calculate_total_supply(
    target_raise: int,
    ownership_ratio_bps: int,
    decimals: DecimalConfig,
) -> SaleAllocation:
    """
    Size a sale so that the curve above, fully subscribed, targets ``target_raise``.

    Closed form (in whole units):

        total_supply = 100 * target_raise * sqrt(alpha / (1 - alpha)^3)

    With alpha = a / D (a in basis points, D = 10_000) the radicand becomes
    a * D^2 / (D - a)^3, so the whole expression is evaluated as a single
    integer square root of an exact rational in token base units:

        total = isqrt((100 * R * token_unit)^2 * a * D^2 / (quote_unit^2 * (D - a)^3))

    ``target_raise`` is given in quote base units. Both unit scales are first
    divided by their gcd, which leaves the ratio unchanged and keeps every
    intermediate product inside uint256 for realistic raises.

    Raises:
        InvalidAlphaError: ownership ratio outside (0, 5000] bps
        InvalidTargetRaiseError: target raise is not positive
        ArithmeticOverflowError: an intermediate product leaves the uint256 range
    """
    if not isinstance(ownership_ratio_bps, int) or isinstance(ownership_ratio_bps, bool):
        raise InvalidAlphaError("ownership_ratio_bps must be an int")
    if not (0 < ownership_ratio_bps <= MAX_OWNERSHIP_RATIO_BPS):
        raise InvalidAlphaError(
            f"ownership_ratio_bps must be in (0, {MAX_OWNERSHIP_RATIO_BPS}]: {ownership_ratio_bps}"
        )
    if not isinstance(target_raise, int) or isinstance(target_raise, bool) or target_raise <= 0:
        raise InvalidTargetRaiseError(f"target_raise must be a positive int: {target_raise!r}")

    a = ownership_ratio_bps
    d = BPS_DENOM
    g = math.gcd(decimals.token_unit, decimals.quote_unit)
    scaled_raise = checked_mul(checked_mul(SUPPLY_MULTIPLIER, target_raise), decimals.token_unit // g)
    quote_scale = decimals.quote_unit // g
    numerator = checked_mul(checked_mul(checked_mul(scaled_raise, scaled_raise), a), d * d)
    denominator = checked_mul(quote_scale * quote_scale, (d - a) ** 3)
    total_supply = isqrt_floor(numerator // denominator)

    salable_supply = mul_div_floor(total_supply, d - a, d)
    reserved_supply = total_supply - salable_supply
    return SaleAllocation(
        total_supply=total_supply,
        salable_supply=salable_supply,
        reserved_supply=reserved_supply,
    )
