"""
Shared holdings store for the in-memory ledgers.

One ``BalanceTable`` backs every ``AssetLedger`` of a deployment: the sale
token(s) and the quote asset live side by side, keyed by ``(account, asset)``.
Empty holdings are dropped, so ``holders(asset)`` only lists accounts with a
positive balance.

Every mutation is all-or-nothing and reports shortfalls as
``InvalidInputError``, the same kind the sale engine raises for an
underfunded participant.
"""

from __future__ import annotations

from typing import Dict, Tuple

from ..core.errors import InvalidInputError


Account = str  # participant, escrow, custody or venue identifier
AssetId = str  # asset symbol, e.g. "USDC"
Amount = int  # non-negative base units


class BalanceTable:
    def __init__(self):
        self._holdings: Dict[Tuple[Account, AssetId], Amount] = {}

    def get(self, account: Account, asset: AssetId) -> Amount:
        return self._holdings.get((account, asset), 0)

    def credit(self, account: Account, asset: AssetId, amount: Amount) -> None:
        _require_amount(amount)
        if amount:
            self._holdings[(account, asset)] = self.get(account, asset) + amount

    def debit(self, account: Account, asset: AssetId, amount: Amount) -> None:
        """Remove ``amount`` from ``account``; fails without effect on a shortfall."""
        _require_amount(amount)
        held = self.get(account, asset)
        if held < amount:
            raise InvalidInputError(f"insufficient {asset} balance: {account} holds {held} < {amount}")
        remaining = held - amount
        if remaining:
            self._holdings[(account, asset)] = remaining
        else:
            self._holdings.pop((account, asset), None)

    def move(self, asset: AssetId, src: Account, dst: Account, amount: Amount) -> None:
        self.debit(src, asset, amount)
        self.credit(dst, asset, amount)

    def holders(self, asset: AssetId) -> Dict[Account, Amount]:
        """Accounts holding a positive amount of ``asset``."""
        return {acct: amt for (acct, a), amt in self._holdings.items() if a == asset}

    def total_for_asset(self, asset: AssetId) -> Amount:
        return sum(self.holders(asset).values())

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._holdings)} holdings)"


def _require_amount(amount: Amount) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise InvalidInputError(f"amount must be a non-negative int: {amount!r}")
