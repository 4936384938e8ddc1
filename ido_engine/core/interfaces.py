"""
Collaborator contracts the sale engine calls into.

These are structural (``typing.Protocol``): any object with the right methods
plugs in. The engine never reaches past these methods into collaborator state.
"""

from __future__ import annotations

from typing import Protocol


Account = str
Amount = int


class TokenLedger(Protocol):
    """Holder balances of the sale token. Owned outside the engine."""

    def credit_balance(self, account: Account, amount: Amount) -> None: ...

    def debit_balance(self, account: Account, amount: Amount) -> None: ...

    def balance_of(self, account: Account) -> Amount: ...

    def set_transfer_frozen(self, frozen: bool) -> None: ...


class QuoteLedger(Protocol):
    """Balances of the quote asset."""

    def transfer(self, src: Account, dst: Account, amount: Amount) -> None: ...

    def balance_of(self, account: Account) -> Amount: ...


class FundsCustody(Protocol):
    """Receives the project-funding share once a sale launches."""

    account: Account

    def receive_project_funding(self, amount: Amount) -> None: ...


class LiquidityVenue(Protocol):
    """Optional secondary-market venue seeded with the LP share after launch."""

    account: Account

    def provision_liquidity(self, quote_amount: Amount, token_amount: Amount) -> Amount: ...


class Clock(Protocol):
    """Monotonic wall-clock seconds since the epoch."""

    def now(self) -> int: ...
