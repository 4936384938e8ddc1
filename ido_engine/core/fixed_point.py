"""
Fixed-point helpers (deterministic, integer-only).

All monetary quantities in the engine are non-negative integers scaled by a
per-asset base unit (``10 ** decimals``). This module is explicit about
rounding: every helper names its direction, and callers pick ceiling for
amounts a participant pays and floor for amounts a participant receives.

Products are bounded to the unsigned 256-bit range; leaving it is an input
validation failure, never a silent wrap.
"""

from __future__ import annotations

import math
from typing import Tuple

from .errors import ArithmeticOverflowError


UINT256_MAX = (1 << 256) - 1
BPS_DENOM = 10_000
MAX_DECIMALS = 36


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


def _require_nonneg(name: str, value: int) -> None:
    _require_int(name, value)
    if value < 0:
        raise ValueError(f"{name} must be non-negative: {value}")


def checked_mul(a: int, b: int) -> int:
    """Return ``a * b`` or raise if it does not fit in a uint256."""
    _require_nonneg("a", a)
    _require_nonneg("b", b)
    product = a * b
    if product > UINT256_MAX:
        raise ArithmeticOverflowError(f"uint256 overflow in {a} * {b}")
    return product


def checked_add(a: int, b: int) -> int:
    _require_nonneg("a", a)
    _require_nonneg("b", b)
    total = a + b
    if total > UINT256_MAX:
        raise ArithmeticOverflowError(f"uint256 overflow in {a} + {b}")
    return total


def ceil_div(numerator: int, denominator: int) -> int:
    _require_nonneg("numerator", numerator)
    _require_int("denominator", denominator)
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (numerator + denominator - 1) // denominator


def mul_div_floor(a: int, b: int, denominator: int) -> int:
    """``floor(a * b / denominator)`` with the product checked first."""
    _require_int("denominator", denominator)
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return checked_mul(a, b) // denominator


def mul_div_ceil(a: int, b: int, denominator: int) -> int:
    """``ceil(a * b / denominator)`` with the product checked first."""
    return ceil_div(checked_mul(a, b), denominator)


def mul_div_round(a: int, b: int, denominator: int) -> int:
    """``a * b / denominator`` rounded half up."""
    _require_int("denominator", denominator)
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (checked_mul(a, b) + denominator // 2) // denominator


def fee_bps(amount: int, bps: int) -> int:
    """
    Compute ``fee = ceil(amount * bps / 10_000)``.

    Fees round against the participant, matching the swap-kernel fee rule.
    """
    _require_nonneg("amount", amount)
    _require_int("bps", bps)
    if not (0 <= bps <= BPS_DENOM):
        raise ValueError(f"bps must be in [0, {BPS_DENOM}]: {bps}")
    return mul_div_ceil(amount, bps, BPS_DENOM)


def split_bps(amount: int, bps: int) -> Tuple[int, int]:
    """
    Split ``amount`` into ``(floor(amount * bps / 10_000), remainder)``.

    The two parts always sum to ``amount``; rounding dust lands in the remainder.
    """
    _require_nonneg("amount", amount)
    _require_int("bps", bps)
    if not (0 <= bps <= BPS_DENOM):
        raise ValueError(f"bps must be in [0, {BPS_DENOM}]: {bps}")
    part = mul_div_floor(amount, bps, BPS_DENOM)
    return part, amount - part


def base_unit(decimals: int) -> int:
    _require_int("decimals", decimals)
    if not (0 <= decimals <= MAX_DECIMALS):
        raise ValueError(f"decimals must be in [0, {MAX_DECIMALS}]: {decimals}")
    return 10 ** decimals


def to_base_units(whole: int, decimals: int) -> int:
    """Scale a whole-unit integer amount to base units."""
    _require_nonneg("whole", whole)
    return checked_mul(whole, base_unit(decimals))


def isqrt_floor(n: int) -> int:
    """Integer square root (floor). Float sqrt loses precision above 2**53."""
    _require_nonneg("n", n)
    return math.isqrt(n)
