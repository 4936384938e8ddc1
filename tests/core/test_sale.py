"""Tests for ido_engine/core/sale.py: the imperative shell over the lifecycle.

Each test wires a sale against the in-memory ledgers and checks both the sale
state and the balances it moved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

import pytest

from ido_engine.core.errors import (
    AlreadyClaimedError,
    InvalidInputError,
    OversellError,
    SlippageExceededError,
    StateViolationError,
    WindowViolationError,
)
from ido_engine.core.events import (
    EventKind,
    LiquidityProvisioned,
    RefundClaimed,
    SaleFailed,
    SaleLaunched,
    TokensPurchased,
    TokensSold,
    event_to_dict,
)
from ido_engine.core.fixed_point import fee_bps
from ido_engine.core.invariants import check_all
from ido_engine.core.sale import Sale
from ido_engine.core.sale_types import SaleParams, SaleStatus
from ido_engine.core.virtual_amm import SaleAllocation, invariant_holds
from ido_engine.state.balances import BalanceTable
from ido_engine.state.ledger import (
    AssetLedger,
    InMemoryLiquidityVenue,
    InMemoryTreasury,
    ManualClock,
)


TOKEN = 10**18
QUOTE = 10**6
START = 1_000
DURATION = 1_000
END = START + DURATION


@dataclass
class World:
    sale: Sale
    token: AssetLedger
    quote: AssetLedger
    clock: ManualClock
    treasury: InMemoryTreasury
    venue: Optional[InMemoryLiquidityVenue]

    @property
    def params(self) -> SaleParams:
        return self.sale.params

    def fund(self, account: str, whole_quote: int) -> None:
        self.quote.credit_balance(account, whole_quote * QUOTE)


def _world(
    *,
    salable_tokens: int = 1_000_000,
    reserved_tokens: int = 250_000,
    clock_at: int = START,
    with_venue: bool = True,
    **param_overrides,
) -> World:
    table = BalanceTable()
    token = AssetLedger(table, "TKN")
    quote = AssetLedger(table, "USDC")
    clock = ManualClock(clock_at)
    treasury = InMemoryTreasury()
    venue = InMemoryLiquidityVenue() if with_venue else None
    params = SaleParams(
        allocation=SaleAllocation(
            total_supply=(salable_tokens + reserved_tokens) * TOKEN,
            salable_supply=salable_tokens * TOKEN,
            reserved_supply=reserved_tokens * TOKEN,
        ),
        **param_overrides,
    )
    sale = Sale.open(
        params,
        start_time=START,
        end_time=END,
        token=token,
        quote=quote,
        custody=treasury,
        clock=clock,
        escrow_account="escrow",
        fee_recipient="fees",
        project_account="project",
        venue=venue,
        sale_id="test-sale",
    )
    return World(sale=sale, token=token, quote=quote, clock=clock, treasury=treasury, venue=venue)


def _buy(w: World, buyer: str, whole_tokens: int) -> TokensPurchased:
    cost, fee = w.sale.quote_buy(whole_tokens * TOKEN)
    return w.sale.buy(buyer, whole_tokens * TOKEN, cost + fee)


def _launched_world() -> World:
    w = _world()
    w.fund("whale", 2_000_000)
    _buy(w, "whale", 1_000_000)
    return w


def _failed_world() -> World:
    w = _world()
    w.fund("alice", 10_000)
    w.fund("bob", 10_000)
    _buy(w, "alice", 20_000)
    _buy(w, "bob", 10_000)
    w.clock.set(END + 1)
    w.sale.finalize()
    return w


class _OfflineCustody:
    account = "treasury"

    def receive_project_funding(self, amount: int) -> None:
        raise RuntimeError("custody offline")


# ---------------------------------------------------------------------------
# open
# ---------------------------------------------------------------------------

class TestOpen:
    def test_salable_minted_to_escrow_and_frozen(self) -> None:
        w = _world()
        assert w.token.balance_of("escrow") == 1_000_000 * TOKEN
        assert w.token.balance_of("project") == 0
        assert w.token.transfer_frozen
        assert w.sale.status is SaleStatus.ACTIVE
        assert w.sale.current_price() == 10_000

    def test_initial_state_passes_invariants(self) -> None:
        w = _world()
        assert check_all(w.params, w.sale.snapshot()) == []

    def test_window_must_be_ordered(self) -> None:
        w = _world()
        with pytest.raises(InvalidInputError):
            Sale.open(
                w.params,
                start_time=10,
                end_time=10,
                token=w.token,
                quote=w.quote,
                custody=w.treasury,
                clock=w.clock,
                escrow_account="escrow-2",
                fee_recipient="fees",
                project_account="project",
            )

    def test_escrow_must_be_distinct(self) -> None:
        w = _world()
        with pytest.raises(InvalidInputError):
            Sale(
                w.params,
                w.sale.snapshot(),
                token=w.token,
                quote=w.quote,
                custody=w.treasury,
                clock=w.clock,
                escrow_account="fees",
                fee_recipient="fees",
                project_account="project",
            )


# ---------------------------------------------------------------------------
# buy
# ---------------------------------------------------------------------------

class TestBuy:
    def test_basic(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        cost, fee = w.sale.quote_buy(1_000 * TOKEN)
        assert fee == fee_bps(cost, 30)

        ev = w.sale.buy("alice", 1_000 * TOKEN, cost + fee)

        assert w.token.balance_of("alice") == 1_000 * TOKEN
        assert w.quote.balance_of("alice") == 1_000 * QUOTE - cost - fee
        assert w.quote.balance_of("escrow") == cost
        assert w.quote.balance_of("fees") == fee
        s = w.sale.snapshot()
        assert s.sold_amount == 1_000 * TOKEN
        assert s.quote_collected == cost
        assert s.protocol_fees == fee
        assert ev.quote_cost == cost and ev.fee == fee and ev.timestamp == START
        assert ev.new_price == w.sale.current_price() > 10_000
        assert w.sale.events() == [ev]

    def test_slippage_bound_leaves_sale_untouched(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        before = w.sale.snapshot()
        cost, fee = w.sale.quote_buy(1_000 * TOKEN)
        with pytest.raises(SlippageExceededError) as exc:
            w.sale.buy("alice", 1_000 * TOKEN, cost + fee - 1)
        assert exc.value.kind == "SlippageExceeded"
        assert w.sale.snapshot() is before
        assert w.quote.balance_of("alice") == 1_000 * QUOTE
        assert w.token.balance_of("alice") == 0
        assert w.sale.events() == []

    def test_insufficient_quote_balance(self) -> None:
        w = _world()
        w.fund("alice", 1)
        before = w.sale.snapshot()
        with pytest.raises(InvalidInputError):
            _buy(w, "alice", 1_000)
        assert w.sale.snapshot() is before
        assert w.quote.balance_of("alice") == QUOTE

    def test_zero_amount_rejected(self) -> None:
        w = _world()
        with pytest.raises(InvalidInputError):
            w.sale.buy("alice", 0, 10**12)

    def test_empty_buyer_rejected(self) -> None:
        w = _world()
        with pytest.raises(InvalidInputError):
            w.sale.buy("", TOKEN, 10**12)

    @pytest.mark.parametrize("account", ["escrow", "fees", "project", "treasury", "liquidity-venue"])
    def test_system_accounts_cannot_buy(self, account: str) -> None:
        w = _world()
        w.fund(account, 1_000)
        before = w.sale.snapshot()
        with pytest.raises(InvalidInputError):
            _buy(w, account, 10)
        assert w.sale.snapshot() is before
        assert w.quote.balance_of(account) == 1_000 * QUOTE

    def test_before_start(self) -> None:
        w = _world(clock_at=START - 1)
        w.fund("alice", 1_000)
        with pytest.raises(WindowViolationError):
            _buy(w, "alice", 10)

    def test_at_end_still_open(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        w.clock.set(END)
        _buy(w, "alice", 10)
        assert w.sale.snapshot().sold_amount == 10 * TOKEN

    def test_after_end(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        w.clock.set(END + 1)
        with pytest.raises(WindowViolationError):
            _buy(w, "alice", 10)


class TestOversell:
    def test_just_over_boundary_rejected(self) -> None:
        w = _world()
        w.fund("alice", 2_000_000)
        _buy(w, "alice", 400_000)
        with pytest.raises(OversellError) as exc:
            w.sale.buy("alice", 600_000 * TOKEN + 1, 10**18)
        assert exc.value.requested == 600_000 * TOKEN + 1
        assert exc.value.remaining == 600_000 * TOKEN
        assert w.sale.status is SaleStatus.ACTIVE

    def test_exact_boundary_launches(self) -> None:
        w = _world()
        w.fund("alice", 2_000_000)
        _buy(w, "alice", 400_000)
        _buy(w, "alice", 600_000)
        assert w.sale.status is SaleStatus.LAUNCHED
        assert w.token.balance_of("escrow") == 0


# ---------------------------------------------------------------------------
# sell
# ---------------------------------------------------------------------------

class TestSell:
    def test_basic(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        bought = _buy(w, "alice", 10_000)
        gross, fee = w.sale.quote_sell(4_000 * TOKEN)

        ev = w.sale.sell("alice", 4_000 * TOKEN, gross - fee)

        assert isinstance(ev, TokensSold)
        assert ev.quote_refund == gross - fee
        assert fee == fee_bps(gross, 100)
        assert w.token.balance_of("alice") == 6_000 * TOKEN
        assert w.token.balance_of("escrow") == (1_000_000 - 6_000) * TOKEN
        s = w.sale.snapshot()
        assert s.sold_amount == 6_000 * TOKEN
        assert s.quote_collected == bought.quote_cost - gross
        assert w.quote.balance_of("escrow") == s.quote_collected
        assert w.quote.balance_of("fees") == bought.fee + fee
        assert ev.new_price < bought.new_price

    def test_round_trip_loses_fees(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10_000)
        gross, fee = w.sale.quote_sell(10_000 * TOKEN)
        w.sale.sell("alice", 10_000 * TOKEN, 0)
        assert w.quote.balance_of("alice") < 1_000 * QUOTE
        assert w.sale.snapshot().sold_amount == 0
        assert invariant_holds(w.sale.snapshot().reserves)

    def test_sold_tokens_are_repurchasable(self) -> None:
        w = _world()
        w.fund("alice", 2_000_000)
        _buy(w, "alice", 1_000)
        w.sale.sell("alice", 1_000 * TOKEN, 0)
        _buy(w, "alice", 1_000_000)
        assert w.sale.status is SaleStatus.LAUNCHED

    def test_slippage(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10_000)
        gross, fee = w.sale.quote_sell(1_000 * TOKEN)
        with pytest.raises(SlippageExceededError):
            w.sale.sell("alice", 1_000 * TOKEN, gross - fee + 1)

    def test_more_than_outstanding(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10)
        with pytest.raises(InvalidInputError):
            w.sale.sell("alice", 11 * TOKEN, 0)

    def test_seller_without_tokens(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10)
        with pytest.raises(InvalidInputError):
            w.sale.sell("bob", TOKEN, 0)

    def test_escrow_cannot_sell_unsold_supply(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10)
        escrow_quote = w.quote.balance_of("escrow")
        with pytest.raises(InvalidInputError):
            w.sale.sell("escrow", 5 * TOKEN, 0)
        assert w.quote.balance_of("escrow") == escrow_quote
        assert w.sale.snapshot().sold_amount == 10 * TOKEN

    def test_after_end(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10)
        w.clock.set(END + 1)
        with pytest.raises(WindowViolationError):
            w.sale.sell("alice", TOKEN, 0)


# ---------------------------------------------------------------------------
# launch
# ---------------------------------------------------------------------------

class TestLaunch:
    def test_sell_out_launches_once(self) -> None:
        w = _launched_world()
        s = w.sale.snapshot()
        assert s.status is SaleStatus.LAUNCHED
        assert s.launched_at == START
        launches = [e for e in w.sale.events() if isinstance(e, SaleLaunched)]
        assert len(launches) == 1

        ev = launches[0]
        assert ev.total_raised == s.quote_collected
        assert ev.lp_quote == s.quote_collected * 7_000 // 10_000
        assert ev.lp_quote + ev.project_funding == s.quote_collected
        assert w.treasury.total_received == ev.project_funding
        assert w.quote.balance_of(w.treasury.account) == ev.project_funding
        assert w.quote.balance_of("escrow") == ev.lp_quote
        assert w.token.balance_of("project") == 250_000 * TOKEN
        assert not w.token.transfer_frozen

    def test_no_trading_after_launch(self) -> None:
        w = _launched_world()
        with pytest.raises(StateViolationError):
            w.sale.buy("whale", TOKEN, 10**12)
        with pytest.raises(StateViolationError):
            w.sale.sell("whale", TOKEN, 0)
        with pytest.raises(StateViolationError):
            w.sale.finalize()

    def test_holders_can_transfer_after_launch(self) -> None:
        w = _launched_world()
        w.token.transfer("whale", "friend", TOKEN)
        assert w.token.balance_of("friend") == TOKEN

    def test_transfers_frozen_while_active(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10)
        with pytest.raises(StateViolationError):
            w.token.transfer("alice", "bob", TOKEN)

    def test_custody_failure_reverts_sell_out_buy(self) -> None:
        w = _world()
        w.fund("whale", 2_000_000)
        w.sale.custody = _OfflineCustody()
        before = w.sale.snapshot()
        cost, fee = w.sale.quote_buy(1_000_000 * TOKEN)

        with pytest.raises(RuntimeError):
            w.sale.buy("whale", 1_000_000 * TOKEN, cost + fee)

        assert w.sale.snapshot() is before
        assert w.sale.events() == []
        assert w.quote.balance_of("whale") == 2_000_000 * QUOTE
        assert w.token.balance_of("whale") == 0
        assert w.token.balance_of("escrow") == 1_000_000 * TOKEN
        assert w.quote.balance_of("escrow") == 0
        assert w.quote.balance_of("fees") == 0
        assert w.quote.balance_of("treasury") == 0
        assert w.token.balance_of("project") == 0
        assert w.token.transfer_frozen

        w.sale.custody = w.treasury
        w.sale.buy("whale", 1_000_000 * TOKEN, cost + fee)
        assert w.sale.status is SaleStatus.LAUNCHED
        assert w.treasury.total_received == w.quote.balance_of("treasury") > 0


# ---------------------------------------------------------------------------
# finalize
# ---------------------------------------------------------------------------

class TestFinalize:
    def test_before_deadline(self) -> None:
        w = _world()
        with pytest.raises(WindowViolationError):
            w.sale.finalize()
        w.clock.set(END)
        with pytest.raises(WindowViolationError):
            w.sale.finalize()

    def test_min_raise_met_launches(self) -> None:
        w = _world()
        w.fund("alice", 1_000_000)
        _buy(w, "alice", 750_000)
        w.clock.set(END + 1)
        state = w.sale.finalize()
        assert state.status is SaleStatus.LAUNCHED
        assert state.launched_at == END + 1
        assert w.token.balance_of("project") == 250_000 * TOKEN

    def test_just_below_min_raise_fails(self) -> None:
        w = _world()
        w.fund("alice", 1_000_000)
        _buy(w, "alice", 749_999)
        w.clock.set(END + 1)
        state = w.sale.finalize()
        assert state.status is SaleStatus.FAILED
        assert w.token.balance_of("project") == 0
        assert w.treasury.receipts == []

    def test_failure_fixes_refund_rate(self) -> None:
        w = _failed_world()
        s = w.sale.snapshot()
        assert s.status is SaleStatus.FAILED
        assert s.failed_at == END + 1
        assert s.refund_rate == s.quote_collected * TOKEN // s.sold_amount
        assert s.refund_rate > 0
        failed = [e for e in w.sale.events() if isinstance(e, SaleFailed)]
        assert len(failed) == 1
        assert failed[0].refund_rate == s.refund_rate

    def test_nothing_sold_fails_with_zero_rate(self) -> None:
        w = _world()
        w.clock.set(END + 1)
        state = w.sale.finalize()
        assert state.status is SaleStatus.FAILED
        assert state.refund_rate == 0

    def test_finalize_is_terminal(self) -> None:
        w = _failed_world()
        with pytest.raises(StateViolationError):
            w.sale.finalize()

    def test_custody_failure_leaves_sale_active(self) -> None:
        w = _world()
        w.fund("alice", 1_000_000)
        _buy(w, "alice", 750_000)
        w.clock.set(END + 1)
        w.sale.custody = _OfflineCustody()
        before = w.sale.snapshot()

        with pytest.raises(RuntimeError):
            w.sale.finalize()

        assert w.sale.snapshot() is before
        assert len(w.sale.events()) == 1
        assert w.quote.balance_of("escrow") == before.quote_collected
        assert w.quote.balance_of("treasury") == 0
        assert w.token.balance_of("project") == 0
        assert w.token.transfer_frozen

        w.sale.custody = w.treasury
        assert w.sale.finalize().status is SaleStatus.LAUNCHED
        assert w.token.balance_of("project") == 250_000 * TOKEN


# ---------------------------------------------------------------------------
# claim_refund
# ---------------------------------------------------------------------------

class TestClaimRefund:
    def test_pro_rata(self) -> None:
        w = _failed_world()
        rate = w.sale.snapshot().refund_rate
        alice_quote = w.quote.balance_of("alice")

        ra = w.sale.claim_refund("alice")
        rb = w.sale.claim_refund("bob")

        assert isinstance(ra, RefundClaimed)
        assert ra.token_amount == 20_000 * TOKEN
        assert ra.quote_amount == 20_000 * TOKEN * rate // TOKEN
        assert abs(ra.quote_amount - 2 * rb.quote_amount) <= 2
        assert w.quote.balance_of("alice") == alice_quote + ra.quote_amount
        assert w.token.balance_of("alice") == 0
        assert w.token.balance_of("escrow") == 1_000_000 * TOKEN

        s = w.sale.snapshot()
        assert s.claimed == frozenset({"alice", "bob"})
        assert s.refunded_total == ra.quote_amount + rb.quote_amount
        assert s.refunded_total <= s.quote_collected
        assert w.quote.balance_of("escrow") == s.quote_collected - s.refunded_total

    def test_claim_once(self) -> None:
        w = _failed_world()
        w.sale.claim_refund("alice")
        with pytest.raises(AlreadyClaimedError) as exc:
            w.sale.claim_refund("alice")
        assert exc.value.kind == "AlreadyClaimed"

    def test_requires_tokens(self) -> None:
        w = _failed_world()
        with pytest.raises(InvalidInputError):
            w.sale.claim_refund("carol")

    def test_requires_failed_sale(self) -> None:
        w = _world()
        w.fund("alice", 1_000)
        _buy(w, "alice", 10)
        with pytest.raises(StateViolationError):
            w.sale.claim_refund("alice")

    @pytest.mark.parametrize("account", ["escrow", "fees", "project", "treasury", "liquidity-venue"])
    def test_system_accounts_cannot_claim(self, account: str) -> None:
        w = _failed_world()
        before = w.sale.snapshot()
        with pytest.raises(InvalidInputError):
            w.sale.claim_refund(account)
        assert w.sale.snapshot() is before
        assert w.token.balance_of("escrow") == 970_000 * TOKEN

    def test_escrow_claim_does_not_block_buyer_refund(self) -> None:
        w = _world()
        w.fund("alice", 100_000)
        _buy(w, "alice", 600_000)
        w.clock.set(END + 1)
        assert w.sale.finalize().status is SaleStatus.FAILED
        collected = w.sale.snapshot().quote_collected

        with pytest.raises(InvalidInputError):
            w.sale.claim_refund("escrow")
        ev = w.sale.claim_refund("alice")

        assert ev.token_amount == 600_000 * TOKEN
        assert 0 <= collected - ev.quote_amount <= 600_000
        assert w.quote.balance_of("escrow") == collected - ev.quote_amount
        assert w.sale.snapshot().claimed == frozenset({"alice"})

    def test_refunds_never_exceed_collected(self) -> None:
        w = _world()
        holdings = {"alice": 400_000, "bob": 200_000, "carol": 50_000, "dave": 7}
        for who, amount in holdings.items():
            w.fund(who, 100_000)
            _buy(w, who, amount)
        w.sale.sell("bob", 1_000 * TOKEN, 0)
        w.clock.set(END + 1)
        assert w.sale.finalize().status is SaleStatus.FAILED

        paid = sum(w.sale.claim_refund(who).quote_amount for who in holdings)

        s = w.sale.snapshot()
        assert s.claimed == frozenset(holdings)
        assert s.refunded_total == paid <= s.quote_collected
        assert w.quote.balance_of("escrow") == s.quote_collected - s.refunded_total
        assert w.token.balance_of("escrow") == 1_000_000 * TOKEN
        assert check_all(w.params, s) == []


# ---------------------------------------------------------------------------
# provision_liquidity
# ---------------------------------------------------------------------------

class _BrokenVenue:
    account = "broken-venue"

    def provision_liquidity(self, quote_amount: int, token_amount: int) -> int:
        raise RuntimeError("venue offline")


class TestProvisionLiquidity:
    def test_hands_off_lp_share(self) -> None:
        w = _launched_world()
        s = w.sale.snapshot()
        ev = w.sale.provision_liquidity()

        assert isinstance(ev, LiquidityProvisioned)
        assert ev.quote_amount == s.lp_quote_amount
        assert ev.token_amount == s.lp_quote_amount * TOKEN // s.final_price
        assert w.quote.balance_of(w.venue.account) == s.lp_quote_amount
        assert w.token.balance_of(w.venue.account) == ev.token_amount
        assert w.quote.balance_of("escrow") == 0
        after = w.sale.snapshot()
        assert after.liquidity_provisioned
        assert after.lp_tokens_locked == ev.lp_tokens > 0

    def test_only_once(self) -> None:
        w = _launched_world()
        w.sale.provision_liquidity()
        with pytest.raises(StateViolationError):
            w.sale.provision_liquidity()

    def test_requires_launch(self) -> None:
        w = _world()
        with pytest.raises(StateViolationError):
            w.sale.provision_liquidity()

    def test_requires_venue(self) -> None:
        w = _world(with_venue=False)
        w.fund("whale", 2_000_000)
        _buy(w, "whale", 1_000_000)
        assert w.sale.status is SaleStatus.LAUNCHED
        with pytest.raises(StateViolationError):
            w.sale.provision_liquidity()

    def test_venue_failure_rolls_back(self) -> None:
        w = _launched_world()
        w.sale.venue = _BrokenVenue()
        escrow_quote = w.quote.balance_of("escrow")
        with pytest.raises(RuntimeError):
            w.sale.provision_liquidity()
        assert w.quote.balance_of("escrow") == escrow_quote
        assert w.quote.balance_of("broken-venue") == 0
        assert w.token.balance_of("broken-venue") == 0
        assert not w.sale.snapshot().liquidity_provisioned


# ---------------------------------------------------------------------------
# events / concurrency
# ---------------------------------------------------------------------------

def test_event_log_order_and_wire_names() -> None:
    w = _launched_world()
    w.sale.provision_liquidity()
    kinds = [e.kind for e in w.sale.events()]
    assert kinds == [
        EventKind.TOKENS_PURCHASED,
        EventKind.SALE_LAUNCHED,
        EventKind.LIQUIDITY_PROVISIONED,
    ]
    d = event_to_dict(w.sale.events()[0])
    assert d["kind"] == "TokensPurchased"
    assert d["buyer"] == "whale"


def test_concurrent_buys_serialize() -> None:
    w = _world()
    buyers = [f"buyer-{i}" for i in range(8)]
    for b in buyers:
        w.fund(b, 100_000)
    errors: list[BaseException] = []

    def run(buyer: str) -> None:
        try:
            for _ in range(20):
                w.sale.buy(buyer, 100 * TOKEN, 10**12)
        except BaseException as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=run, args=(b,)) for b in buyers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    s = w.sale.snapshot()
    assert s.sold_amount == 8 * 20 * 100 * TOKEN
    assert w.quote.balance_of("escrow") == s.quote_collected
    assert check_all(w.params, s) == []
    assert len(w.sale.events()) == 160
