"""
Sale lifecycle controller (imperative shell).

``Sale`` owns one sale's state and its collaborators. Every entry point:

1. acquires the sale's lock (released on every exit path),
2. asks the functional core in ``lifecycle`` for a plan,
3. moves funds through the ledgers inside a journal,
4. commits the planned state and appends an event.

A guard failure in step 2 leaves everything untouched. If any move in step 3
fails because a collaborator raises, the journal reverses the
moves already made and the error propagates with the sale state unchanged.
System accounts (escrow, fees, project, custody, venue) cannot trade or claim.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, FrozenSet, Iterator, List, Optional

from .errors import InvalidInputError, StateViolationError
from .events import (
    LiquidityProvisioned,
    RefundClaimed,
    SaleEvent,
    SaleFailed,
    SaleLaunched,
    TokensPurchased,
    TokensSold,
)
from .interfaces import Clock, FundsCustody, LiquidityVenue, QuoteLedger, TokenLedger
from .lifecycle import (
    LaunchPlan,
    commit_liquidity,
    plan_buy,
    plan_claim_refund,
    plan_finalize,
    plan_provision_liquidity,
    plan_sell,
    quote_buy,
    quote_sell,
)
from .sale_types import SaleParams, SaleState, SaleStatus, initial_state
from .virtual_amm import get_current_price


logger = logging.getLogger(__name__)


class Sale:
    """One curve-priced sale. Thread-safe: one writer at a time."""

    def __init__(
        self,
        params: SaleParams,
        state: SaleState,
        *,
        token: TokenLedger,
        quote: QuoteLedger,
        custody: FundsCustody,
        clock: Clock,
        escrow_account: str,
        fee_recipient: str,
        project_account: str,
        venue: Optional[LiquidityVenue] = None,
        sale_id: str = "",
    ):
        for name, value in (
            ("escrow_account", escrow_account),
            ("fee_recipient", fee_recipient),
            ("project_account", project_account),
        ):
            if not isinstance(value, str) or not value:
                raise InvalidInputError(f"{name} must be a non-empty string")
        if escrow_account in (fee_recipient, project_account):
            raise InvalidInputError("escrow_account must be distinct from fee and project accounts")

        self.params = params
        self.token = token
        self.quote = quote
        self.custody = custody
        self.clock = clock
        self.venue = venue
        self.escrow_account = escrow_account
        self.fee_recipient = fee_recipient
        self.project_account = project_account
        self.sale_id = sale_id

        self._state = state
        self._events: List[SaleEvent] = []
        self._lock = threading.RLock()

    @classmethod
    def open(
        cls,
        params: SaleParams,
        *,
        start_time: int,
        end_time: int,
        token: TokenLedger,
        quote: QuoteLedger,
        custody: FundsCustody,
        clock: Clock,
        escrow_account: str,
        fee_recipient: str,
        project_account: str,
        venue: Optional[LiquidityVenue] = None,
        sale_id: str = "",
    ) -> "Sale":
        """
        Create a sale and mint its salable supply into escrow.

        The token ledger is frozen for participant transfers until launch. The
        reserved (project) allocation is only minted if the sale launches.
        """
        state = initial_state(params, start_time, end_time)
        sale = cls(
            params,
            state,
            token=token,
            quote=quote,
            custody=custody,
            clock=clock,
            escrow_account=escrow_account,
            fee_recipient=fee_recipient,
            project_account=project_account,
            venue=venue,
            sale_id=sale_id,
        )
        token.set_transfer_frozen(True)
        token.credit_balance(escrow_account, params.salable_supply)
        logger.info(
            "sale %s opened: salable=%d reserved=%d window=[%d, %d]",
            sale_id or "<anon>",
            params.salable_supply,
            params.allocation.reserved_supply,
            start_time,
            end_time,
        )
        return sale

    # -- read-only ---------------------------------------------------------

    @property
    def state(self) -> SaleState:
        with self._lock:
            return self._state

    @property
    def status(self) -> SaleStatus:
        return self.state.status

    def snapshot(self) -> SaleState:
        """Consistent point-in-time view (states are immutable)."""
        return self.state

    def events(self) -> List[SaleEvent]:
        with self._lock:
            return list(self._events)

    def current_price(self) -> int:
        return get_current_price(self.state.reserves, self.params.decimals)

    def quote_buy(self, token_amount: int) -> tuple[int, int]:
        """``(quote_cost, fee)`` against the current reserves, without trading."""
        return quote_buy(self.params, self.state, token_amount)

    def quote_sell(self, token_amount: int) -> tuple[int, int]:
        """``(quote_gross, fee)`` against the current reserves, without trading."""
        return quote_sell(self.params, self.state, token_amount)

    # -- mutations ---------------------------------------------------------

    def buy(self, buyer: str, token_amount: int, max_quote_cost: int) -> TokensPurchased:
        with self._lock:
            self._require_participant("buyer", buyer)
            now = self.clock.now()
            plan = plan_buy(self.params, self._state, token_amount, max_quote_cost, now)

            held = self.quote.balance_of(buyer)
            if held < plan.total_cost:
                raise InvalidInputError(f"insufficient quote balance: {buyer} holds {held} < {plan.total_cost}")

            with self._ledger_moves() as moves:
                moves.transfer_quote(buyer, self.escrow_account, plan.quote_cost)
                moves.transfer_quote(buyer, self.fee_recipient, plan.fee)
                moves.debit_tokens(self.escrow_account, token_amount)
                moves.credit_tokens(buyer, token_amount)
                if plan.launch is not None:
                    self._hand_off_launch(moves, plan.launch)

            self._state = plan.state
            event = TokensPurchased(
                buyer=buyer,
                token_amount=token_amount,
                quote_cost=plan.quote_cost,
                fee=plan.fee,
                new_price=plan.new_price,
                timestamp=now,
            )
            self._events.append(event)
            logger.debug(
                "sale %s buy: buyer=%s tokens=%d cost=%d fee=%d price=%d",
                self.sale_id, buyer, token_amount, plan.quote_cost, plan.fee, plan.new_price,
            )
            if plan.launch is not None:
                self._record_launch(plan.launch, now)
            return event

    def sell(self, seller: str, token_amount: int, min_quote_refund: int) -> TokensSold:
        with self._lock:
            self._require_participant("seller", seller)
            now = self.clock.now()
            plan = plan_sell(self.params, self._state, token_amount, min_quote_refund, now)

            held = self.token.balance_of(seller)
            if held < token_amount:
                raise InvalidInputError(f"insufficient token balance: {seller} holds {held} < {token_amount}")

            with self._ledger_moves() as moves:
                moves.debit_tokens(seller, token_amount)
                moves.credit_tokens(self.escrow_account, token_amount)
                moves.transfer_quote(self.escrow_account, seller, plan.quote_refund)
                moves.transfer_quote(self.escrow_account, self.fee_recipient, plan.fee)

            self._state = plan.state
            event = TokensSold(
                seller=seller,
                token_amount=token_amount,
                quote_refund=plan.quote_refund,
                fee=plan.fee,
                new_price=plan.new_price,
                timestamp=now,
            )
            self._events.append(event)
            logger.debug(
                "sale %s sell: seller=%s tokens=%d refund=%d fee=%d price=%d",
                self.sale_id, seller, token_amount, plan.quote_refund, plan.fee, plan.new_price,
            )
            return event

    def finalize(self) -> SaleState:
        """Settle the sale after its deadline (anyone may call)."""
        with self._lock:
            now = self.clock.now()
            plan = plan_finalize(self.params, self._state, now)
            if plan.launch is not None:
                with self._ledger_moves() as moves:
                    self._hand_off_launch(moves, plan.launch)
            self._state = plan.state

            if plan.launch is not None:
                self._record_launch(plan.launch, now)
            else:
                s = plan.state
                self._events.append(
                    SaleFailed(
                        sold_tokens=s.sold_amount,
                        quote_balance=s.quote_collected,
                        refund_rate=s.refund_rate,
                        timestamp=now,
                    )
                )
                logger.info(
                    "sale %s failed: sold=%d collected=%d refund_rate=%d",
                    self.sale_id, s.sold_amount, s.quote_collected, s.refund_rate,
                )
            return self._state

    def finalize_if_due(self) -> bool:
        """Finalize only if the sale is still ACTIVE and past its deadline; True if it ran."""
        with self._lock:
            s = self._state
            if s.status is not SaleStatus.ACTIVE or self.clock.now() <= s.end_time:
                return False
            self.finalize()
            return True

    def claim_refund(self, participant: str) -> RefundClaimed:
        """Return a failed sale's quote pro rata; the participant's tokens are locked in escrow."""
        with self._lock:
            self._require_participant("participant", participant)
            now = self.clock.now()
            balance = self.token.balance_of(participant)
            plan = plan_claim_refund(self.params, self._state, participant, balance)

            with self._ledger_moves() as moves:
                moves.debit_tokens(participant, plan.token_amount)
                moves.credit_tokens(self.escrow_account, plan.token_amount)
                moves.transfer_quote(self.escrow_account, participant, plan.quote_amount)

            self._state = plan.state
            event = RefundClaimed(
                participant=participant,
                token_amount=plan.token_amount,
                quote_amount=plan.quote_amount,
                timestamp=now,
            )
            self._events.append(event)
            logger.info(
                "sale %s refund: participant=%s tokens=%d quote=%d",
                self.sale_id, participant, plan.token_amount, plan.quote_amount,
            )
            return event

    def provision_liquidity(self) -> LiquidityProvisioned:
        """
        Seed the external venue with the LP share. Independent of launch:
        a sale is LAUNCHED whether or not this ever runs.
        """
        with self._lock:
            if self.venue is None:
                raise StateViolationError("no liquidity venue configured")
            now = self.clock.now()
            plan = plan_provision_liquidity(self.params, self._state)
            venue_account = self.venue.account

            with self._ledger_moves() as moves:
                moves.transfer_quote(self.escrow_account, venue_account, plan.quote_amount)
                moves.credit_tokens(venue_account, plan.token_amount)
                lp_tokens = self.venue.provision_liquidity(plan.quote_amount, plan.token_amount)
                new_state = commit_liquidity(self.params, self._state, lp_tokens)

            self._state = new_state
            event = LiquidityProvisioned(
                quote_amount=plan.quote_amount,
                token_amount=plan.token_amount,
                lp_tokens=lp_tokens,
                timestamp=now,
            )
            self._events.append(event)
            logger.info(
                "sale %s liquidity provisioned: quote=%d tokens=%d lp=%d",
                self.sale_id, plan.quote_amount, plan.token_amount, lp_tokens,
            )
            return event

    # -- helpers -----------------------------------------------------------

    def system_accounts(self) -> FrozenSet[str]:
        """Accounts the engine moves funds through; none of them may trade or claim."""
        accounts = {self.escrow_account, self.fee_recipient, self.project_account, self.custody.account}
        if self.venue is not None:
            accounts.add(self.venue.account)
        return frozenset(accounts)

    def _require_participant(self, name: str, value: str) -> None:
        _require_account(name, value)
        if value in self.system_accounts():
            raise InvalidInputError(f"{name} {value!r} is a sale system account")

    @contextmanager
    def _ledger_moves(self) -> Iterator["_LedgerJournal"]:
        journal = _LedgerJournal(self.token, self.quote)
        try:
            yield journal
        except Exception:
            logger.warning("sale %s: ledger moves failed, reverting %d step(s)", self.sale_id, len(journal))
            journal.rollback()
            raise

    def _hand_off_launch(self, moves: "_LedgerJournal", launch: LaunchPlan) -> None:
        moves.transfer_quote(self.escrow_account, self.custody.account, launch.project_funding)
        moves.credit_tokens(self.project_account, launch.reserved_supply)
        moves.unfreeze_tokens()
        # Must stay the last step of the hand-off.
        self.custody.receive_project_funding(launch.project_funding)

    def _record_launch(self, launch: LaunchPlan, now: int) -> None:
        self._events.append(
            SaleLaunched(
                final_price=launch.final_price,
                total_raised=launch.total_raised,
                lp_quote=launch.lp_quote,
                project_funding=launch.project_funding,
                timestamp=now,
            )
        )
        logger.info(
            "sale %s launched: raised=%d lp=%d project=%d final_price=%d",
            self.sale_id, launch.total_raised, launch.lp_quote, launch.project_funding, launch.final_price,
        )

    def __repr__(self) -> str:
        s = self.state
        return f"Sale(id={self.sale_id!r}, status={s.status.value}, sold={s.sold_amount})"


def _require_account(name: str, value: str) -> None:
    if not isinstance(value, str) or not value:
        raise InvalidInputError(f"{name} must be a non-empty string")


class _LedgerJournal:
    """
    Ledger moves applied for one operation, with their inverses.

    ``rollback`` replays the inverses newest first, so a failure part-way
    through a buy, a launch hand-off or a venue deposit leaves balances and the
    token freeze exactly as they were before the operation.
    """

    def __init__(self, token: TokenLedger, quote: QuoteLedger):
        self.token = token
        self.quote = quote
        self._undo: List[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._undo)

    def transfer_quote(self, src: str, dst: str, amount: int) -> None:
        if not amount:
            return
        self.quote.transfer(src, dst, amount)
        self._undo.append(lambda: self.quote.transfer(dst, src, amount))

    def credit_tokens(self, account: str, amount: int) -> None:
        if not amount:
            return
        self.token.credit_balance(account, amount)
        self._undo.append(lambda: self.token.debit_balance(account, amount))

    def debit_tokens(self, account: str, amount: int) -> None:
        if not amount:
            return
        self.token.debit_balance(account, amount)
        self._undo.append(lambda: self.token.credit_balance(account, amount))

    def unfreeze_tokens(self) -> None:
        self.token.set_transfer_frozen(False)
        self._undo.append(lambda: self.token.set_transfer_frozen(True))

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
