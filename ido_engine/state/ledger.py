"""
In-memory collaborators for the sale engine (ledgers, custody, venue, clocks).

The engine only depends on the protocols in ``ido_engine.core.interfaces``.
The ledgers here share one ``BalanceTable``; tests, the registry and the
offline demo wire sales against them.
"""

from __future__ import annotations

import math
import time
from typing import Dict, List, Tuple

from ..core.errors import InvalidInputError, StateViolationError
from .balances import Account, Amount, AssetId, BalanceTable, _require_amount


# Minimum LP lock on first deposit (Uniswap-v2 style).
MIN_LP_LOCK = 1000


class AssetLedger:
    """
    Single-asset view over a ``BalanceTable``.

    ``credit_balance``/``debit_balance`` are privileged (used by the sale
    engine) and ignore the transfer freeze. ``transfer`` is the participant
    path and is blocked while the ledger is frozen.
    """

    def __init__(self, table: BalanceTable, asset: AssetId, *, transfer_frozen: bool = False):
        if not isinstance(asset, str) or not asset:
            raise InvalidInputError("asset must be a non-empty string")
        self.table = table
        self.asset = asset
        self._transfer_frozen = bool(transfer_frozen)

    @property
    def transfer_frozen(self) -> bool:
        return self._transfer_frozen

    def set_transfer_frozen(self, frozen: bool) -> None:
        self._transfer_frozen = bool(frozen)

    def balance_of(self, account: Account) -> Amount:
        return self.table.get(account, self.asset)

    def credit_balance(self, account: Account, amount: Amount) -> None:
        _require_account(account)
        self.table.credit(account, self.asset, amount)

    def debit_balance(self, account: Account, amount: Amount) -> None:
        _require_account(account)
        self.table.debit(account, self.asset, amount)

    def transfer(self, src: Account, dst: Account, amount: Amount) -> None:
        if self._transfer_frozen:
            raise StateViolationError(f"{self.asset} transfers are frozen")
        _require_account(src)
        _require_account(dst)
        self.table.move(self.asset, src, dst, amount)

    def total_supply(self) -> Amount:
        return self.table.total_for_asset(self.asset)

    def __repr__(self) -> str:
        return f"AssetLedger(asset={self.asset!r}, frozen={self._transfer_frozen})"


class InMemoryTreasury:
    """Project-funding custody: records every hand-off it receives."""

    def __init__(self, account: Account = "treasury"):
        _require_account(account)
        self.account = account
        self.receipts: List[Amount] = []

    def receive_project_funding(self, amount: Amount) -> None:
        _require_amount(amount)
        self.receipts.append(amount)

    @property
    def total_received(self) -> Amount:
        return sum(self.receipts)


class InMemoryLiquidityVenue:
    """
    Minimal liquidity-seeding venue.

    LP minting follows a first-deposit constant-product pool:
        lp = floor(sqrt(quote_amount * token_amount)) - MIN_LP_LOCK
    """

    def __init__(self, account: Account = "liquidity-venue"):
        _require_account(account)
        self.account = account
        self.positions: Dict[int, Tuple[Amount, Amount, Amount]] = {}

    def provision_liquidity(self, quote_amount: Amount, token_amount: Amount) -> Amount:
        _require_amount(quote_amount)
        _require_amount(token_amount)
        if quote_amount <= 0 or token_amount <= 0:
            raise InvalidInputError(f"deposit amounts must be positive: ({quote_amount}, {token_amount})")
        lp = math.isqrt(quote_amount * token_amount)
        if lp <= MIN_LP_LOCK:
            raise InvalidInputError("insufficient initial liquidity: sqrt(quote*token) <= MIN_LP_LOCK")
        lp -= MIN_LP_LOCK
        self.positions[len(self.positions)] = (quote_amount, token_amount, lp)
        return lp


class SystemClock:
    """Wall-clock seconds since the epoch."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Deterministic clock for tests and offline replays."""

    def __init__(self, start: int = 0):
        if not isinstance(start, int) or isinstance(start, bool) or start < 0:
            raise ValueError(f"start must be a non-negative int: {start!r}")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if not isinstance(seconds, int) or isinstance(seconds, bool) or seconds < 0:
            raise ValueError(f"seconds must be a non-negative int: {seconds!r}")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError("clock must not move backwards")
        self._now = timestamp


def _require_account(account: Account) -> None:
    if not isinstance(account, str) or not account:
        raise InvalidInputError("account must be a non-empty string")
