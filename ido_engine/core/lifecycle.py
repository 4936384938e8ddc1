"""
Sale lifecycle transitions (functional core).

Every public function here is pure: it takes ``(params, state, ...)`` and
returns a plan holding the next ``SaleState`` plus the amounts the imperative
shell must move. Guards raise the specific ``SaleError`` subclass; the post-state
is checked against the invariant registry before a plan is returned.

Transitions:
- buy / sell: ACTIVE only, inside ``[start_time, end_time]``
- ACTIVE -> LAUNCHED: inside the buy that sells the last salable token, or in
  ``finalize`` after the deadline once the minimum raise was met
- ACTIVE -> FAILED: ``finalize`` after the deadline below the minimum raise
- claim_refund: FAILED only, once per participant
- provision_liquidity: LAUNCHED only, once
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .errors import (
    AlreadyClaimedError,
    InvalidInputError,
    InvariantViolationError,
    OversellError,
    SlippageExceededError,
    StateViolationError,
    WindowViolationError,
)
from .fixed_point import fee_bps, mul_div_floor, split_bps
from .invariants import check_all
from .sale_types import SaleParams, SaleState, SaleStatus
from .virtual_amm import (
    get_current_price,
    get_quote_in,
    get_quote_out,
    update_reserves,
)


@dataclass(frozen=True)
class LaunchPlan:
    final_price: int
    total_raised: int
    lp_quote: int
    project_funding: int
    reserved_supply: int


@dataclass(frozen=True)
class BuyPlan:
    state: SaleState
    token_amount: int
    quote_cost: int
    fee: int
    new_price: int
    launch: Optional[LaunchPlan] = None

    @property
    def total_cost(self) -> int:
        return self.quote_cost + self.fee


@dataclass(frozen=True)
class SellPlan:
    state: SaleState
    token_amount: int
    quote_gross: int
    fee: int
    new_price: int

    @property
    def quote_refund(self) -> int:
        return self.quote_gross - self.fee


@dataclass(frozen=True)
class FinalizePlan:
    state: SaleState
    launch: Optional[LaunchPlan] = None

    @property
    def failed(self) -> bool:
        return self.state.status is SaleStatus.FAILED


@dataclass(frozen=True)
class RefundPlan:
    state: SaleState
    participant: str
    token_amount: int
    quote_amount: int


@dataclass(frozen=True)
class LiquidityPlan:
    quote_amount: int
    token_amount: int


# -- guards ------------------------------------------------------------------

def _require_positive(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInputError(f"{name} must be an int")
    if value <= 0:
        raise InvalidInputError(f"{name} must be positive: {value}")


def _require_bound(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidInputError(f"{name} must be a non-negative int: {value!r}")


def _require_account(name: str, value: str) -> None:
    if not isinstance(value, str) or not value:
        raise InvalidInputError(f"{name} must be a non-empty string")


def _require_status(state: SaleState, expected: SaleStatus, action: str) -> None:
    if state.status is not expected:
        raise StateViolationError(
            f"{action} requires status {expected.value}, sale is {state.status.value}"
        )


def _require_trading_window(state: SaleState, now: int) -> None:
    _require_status(state, SaleStatus.ACTIVE, "trading")
    if now < state.start_time:
        raise WindowViolationError(f"sale opens at {state.start_time}, now={now}")
    if now > state.end_time:
        raise WindowViolationError(f"sale closed at {state.end_time}, now={now}")


def _checked(params: SaleParams, state: SaleState) -> SaleState:
    violations = check_all(params, state)
    if violations:
        raise InvariantViolationError(violations)
    return state


# -- quotes ------------------------------------------------------------------

def quote_buy(params: SaleParams, state: SaleState, token_amount: int) -> tuple[int, int]:
    """Return ``(quote_cost, fee)`` for buying exactly ``token_amount`` tokens."""
    _require_positive("token_amount", token_amount)
    remaining = params.salable_supply - state.sold_amount
    if token_amount > remaining:
        raise OversellError(token_amount, remaining)
    cost = get_quote_in(state.reserves, token_amount)
    return cost, fee_bps(cost, params.buy_fee_bps)


def quote_sell(params: SaleParams, state: SaleState, token_amount: int) -> tuple[int, int]:
    """Return ``(quote_gross, fee)`` for selling exactly ``token_amount`` tokens."""
    _require_positive("token_amount", token_amount)
    if token_amount > state.sold_amount:
        raise InvalidInputError(
            f"cannot sell {token_amount} tokens, only {state.sold_amount} are outstanding"
        )
    gross = get_quote_out(state.reserves, token_amount)
    return gross, fee_bps(gross, params.sell_fee_bps)


# -- transitions -------------------------------------------------------------

def _launch(params: SaleParams, state: SaleState, now: int) -> tuple[SaleState, LaunchPlan]:
    final_price = get_current_price(state.reserves, params.decimals)
    lp_quote, project_funding = split_bps(state.quote_collected, params.lp_ratio_bps)
    launched = replace(
        state,
        status=SaleStatus.LAUNCHED,
        launched_at=now,
        final_price=final_price,
        lp_quote_amount=lp_quote,
        project_funding=project_funding,
    )
    return launched, LaunchPlan(
        final_price=final_price,
        total_raised=state.quote_collected,
        lp_quote=lp_quote,
        project_funding=project_funding,
        reserved_supply=params.allocation.reserved_supply,
    )


def plan_buy(
    params: SaleParams,
    state: SaleState,
    token_amount: int,
    max_quote_cost: int,
    now: int,
) -> BuyPlan:
    """
    Exact-output buy. Oversized requests are rejected, never capped.

    Raises:
        StateViolationError / WindowViolationError: not tradable now
        OversellError: request exceeds the remaining salable supply
        SlippageExceededError: cost plus fee exceeds ``max_quote_cost``
    """
    _require_bound("max_quote_cost", max_quote_cost)
    _require_trading_window(state, now)
    cost, fee = quote_buy(params, state, token_amount)
    if cost + fee > max_quote_cost:
        raise SlippageExceededError(actual=cost + fee, limit=max_quote_cost)

    next_state = replace(
        state,
        reserves=update_reserves(state.reserves, cost, -token_amount),
        sold_amount=state.sold_amount + token_amount,
        quote_collected=state.quote_collected + cost,
        protocol_fees=state.protocol_fees + fee,
        trading_volume=state.trading_volume + cost,
    )
    new_price = get_current_price(next_state.reserves, params.decimals)

    launch = None
    if next_state.sold_amount == params.salable_supply:
        next_state, launch = _launch(params, next_state, now)

    return BuyPlan(
        state=_checked(params, next_state),
        token_amount=token_amount,
        quote_cost=cost,
        fee=fee,
        new_price=new_price,
        launch=launch,
    )


def plan_sell(
    params: SaleParams,
    state: SaleState,
    token_amount: int,
    min_quote_refund: int,
    now: int,
) -> SellPlan:
    """
    Exact-input sell back into the curve. Tokens return to the salable pool.

    Raises:
        StateViolationError / WindowViolationError: not tradable now
        InvalidInputError: more tokens than are outstanding
        SlippageExceededError: refund after the exit fee is below ``min_quote_refund``
    """
    _require_bound("min_quote_refund", min_quote_refund)
    _require_trading_window(state, now)
    gross, fee = quote_sell(params, state, token_amount)
    refund = gross - fee
    if refund < min_quote_refund:
        raise SlippageExceededError(actual=refund, limit=min_quote_refund)

    next_state = replace(
        state,
        reserves=update_reserves(state.reserves, -gross, token_amount),
        sold_amount=state.sold_amount - token_amount,
        quote_collected=state.quote_collected - gross,
        protocol_fees=state.protocol_fees + fee,
        trading_volume=state.trading_volume + gross,
    )
    return SellPlan(
        state=_checked(params, next_state),
        token_amount=token_amount,
        quote_gross=gross,
        fee=fee,
        new_price=get_current_price(next_state.reserves, params.decimals),
    )


def plan_finalize(params: SaleParams, state: SaleState, now: int) -> FinalizePlan:
    """
    Settle an ACTIVE sale once its window has closed.

    Below the minimum raise the sale fails and the refund rate is fixed at
    ``quote_collected * token_unit / sold_amount`` (0 when nothing was sold).
    Otherwise it launches with whatever it collected.
    """
    _require_status(state, SaleStatus.ACTIVE, "finalize")
    if now <= state.end_time:
        raise WindowViolationError(f"sale window open until {state.end_time}, now={now}")

    if params.min_raise_met(state.sold_amount):
        launched, launch = _launch(params, state, now)
        return FinalizePlan(state=_checked(params, launched), launch=launch)

    refund_rate = 0
    if state.sold_amount > 0:
        refund_rate = mul_div_floor(
            state.quote_collected, params.decimals.token_unit, state.sold_amount
        )
    failed = replace(state, status=SaleStatus.FAILED, failed_at=now, refund_rate=refund_rate)
    return FinalizePlan(state=_checked(params, failed))


def plan_claim_refund(
    params: SaleParams,
    state: SaleState,
    participant: str,
    balance: int,
) -> RefundPlan:
    """
    Pro-rata refund: ``balance * refund_rate / token_unit`` (floor).

    Raises:
        StateViolationError: sale has not failed
        AlreadyClaimedError: participant already claimed
        InvalidInputError: participant holds no tokens
    """
    _require_account("participant", participant)
    _require_status(state, SaleStatus.FAILED, "claim_refund")
    if participant in state.claimed:
        raise AlreadyClaimedError(participant)
    _require_positive("balance", balance)

    refund = mul_div_floor(balance, state.refund_rate, params.decimals.token_unit)
    next_state = replace(
        state,
        claimed=state.claimed | {participant},
        refunded_total=state.refunded_total + refund,
    )
    return RefundPlan(
        state=_checked(params, next_state),
        participant=participant,
        token_amount=balance,
        quote_amount=refund,
    )


def plan_provision_liquidity(params: SaleParams, state: SaleState) -> LiquidityPlan:
    """
    Size the liquidity hand-off: the LP quote share paired with tokens at the
    final sale price.
    """
    _require_status(state, SaleStatus.LAUNCHED, "provision_liquidity")
    if state.liquidity_provisioned:
        raise StateViolationError("liquidity already provisioned")
    if state.lp_quote_amount == 0 or state.final_price == 0:
        raise StateViolationError("no LP share to provision")
    token_amount = mul_div_floor(
        state.lp_quote_amount, params.decimals.token_unit, state.final_price
    )
    return LiquidityPlan(quote_amount=state.lp_quote_amount, token_amount=token_amount)


def commit_liquidity(params: SaleParams, state: SaleState, lp_tokens: int) -> SaleState:
    _require_bound("lp_tokens", lp_tokens)
    return _checked(
        params, replace(state, liquidity_provisioned=True, lp_tokens_locked=lp_tokens)
    )
