"""Invariant checkers for the sale lifecycle.

Each function returns True when the invariant holds, and ``check_all()``
returns the list of violated invariant IDs (empty = all pass). The lifecycle
runs ``check_all`` on every post-state before it is committed.
"""

from __future__ import annotations

from typing import Callable

from .sale_types import SaleParams, SaleState, SaleStatus
from .virtual_amm import invariant_holds


def inv_product_non_decreasing(p: SaleParams, s: SaleState) -> bool:
    return invariant_holds(s.reserves)


def inv_invariant_fixed(p: SaleParams, s: SaleState) -> bool:
    return s.reserves.invariant == p.initial_reserves.invariant


def inv_sold_within_salable(p: SaleParams, s: SaleState) -> bool:
    return 0 <= s.sold_amount <= p.salable_supply


def inv_token_reserve_tracks_sold(p: SaleParams, s: SaleState) -> bool:
    return s.reserves.token_reserve == p.initial_reserves.token_reserve - s.sold_amount


def inv_collected_tracks_quote_reserve(p: SaleParams, s: SaleState) -> bool:
    return s.quote_collected == s.reserves.quote_reserve - p.initial_reserves.quote_reserve


def inv_collected_nonneg(p: SaleParams, s: SaleState) -> bool:
    return s.quote_collected >= 0


def inv_refund_rate_only_when_failed(p: SaleParams, s: SaleState) -> bool:
    if s.status is SaleStatus.FAILED:
        return s.refund_rate >= 0
    return s.refund_rate == 0


def inv_claims_only_when_failed(p: SaleParams, s: SaleState) -> bool:
    if s.status is SaleStatus.FAILED:
        return True
    return not s.claimed and s.refunded_total == 0


def inv_refunds_bounded(p: SaleParams, s: SaleState) -> bool:
    return s.refunded_total <= s.quote_collected


def inv_launch_split_conserves(p: SaleParams, s: SaleState) -> bool:
    if s.status is not SaleStatus.LAUNCHED:
        return s.lp_quote_amount == 0 and s.project_funding == 0
    return s.lp_quote_amount + s.project_funding == s.quote_collected


def inv_liquidity_only_after_launch(p: SaleParams, s: SaleState) -> bool:
    if s.liquidity_provisioned:
        return s.status is SaleStatus.LAUNCHED
    return s.lp_tokens_locked == 0


def inv_terminal_timestamps(p: SaleParams, s: SaleState) -> bool:
    if s.status is SaleStatus.ACTIVE:
        return s.launched_at is None and s.failed_at is None
    if s.status is SaleStatus.LAUNCHED:
        return s.launched_at is not None and s.failed_at is None
    return s.failed_at is not None and s.launched_at is None


def inv_window_ordered(p: SaleParams, s: SaleState) -> bool:
    return s.start_time < s.end_time


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[SaleParams, SaleState], bool]] = {
    "inv_product_non_decreasing": inv_product_non_decreasing,
    "inv_invariant_fixed": inv_invariant_fixed,
    "inv_sold_within_salable": inv_sold_within_salable,
    "inv_token_reserve_tracks_sold": inv_token_reserve_tracks_sold,
    "inv_collected_tracks_quote_reserve": inv_collected_tracks_quote_reserve,
    "inv_collected_nonneg": inv_collected_nonneg,
    "inv_refund_rate_only_when_failed": inv_refund_rate_only_when_failed,
    "inv_claims_only_when_failed": inv_claims_only_when_failed,
    "inv_refunds_bounded": inv_refunds_bounded,
    "inv_launch_split_conserves": inv_launch_split_conserves,
    "inv_liquidity_only_after_launch": inv_liquidity_only_after_launch,
    "inv_terminal_timestamps": inv_terminal_timestamps,
    "inv_window_ordered": inv_window_ordered,
}


def check_all(params: SaleParams, state: SaleState) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(params, state)
    ]
