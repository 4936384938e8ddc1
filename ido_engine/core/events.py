"""Event records emitted by the sale engine.

One frozen dataclass per event kind. Amounts are base units; prices are quote
base units per whole token.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum, unique
from typing import Any, Union


@unique
class EventKind(Enum):
    TOKENS_PURCHASED = "TokensPurchased"
    TOKENS_SOLD = "TokensSold"
    SALE_LAUNCHED = "SaleLaunched"
    SALE_FAILED = "SaleFailed"
    REFUND_CLAIMED = "RefundClaimed"
    LIQUIDITY_PROVISIONED = "LiquidityProvisioned"


@dataclass(frozen=True)
class TokensPurchased:
    buyer: str
    token_amount: int
    quote_cost: int
    fee: int
    new_price: int
    timestamp: int
    kind: EventKind = EventKind.TOKENS_PURCHASED


@dataclass(frozen=True)
class TokensSold:
    seller: str
    token_amount: int
    quote_refund: int
    fee: int
    new_price: int
    timestamp: int
    kind: EventKind = EventKind.TOKENS_SOLD


@dataclass(frozen=True)
class SaleLaunched:
    final_price: int
    total_raised: int
    lp_quote: int
    project_funding: int
    timestamp: int
    kind: EventKind = EventKind.SALE_LAUNCHED


@dataclass(frozen=True)
class SaleFailed:
    sold_tokens: int
    quote_balance: int
    refund_rate: int
    timestamp: int
    kind: EventKind = EventKind.SALE_FAILED


@dataclass(frozen=True)
class RefundClaimed:
    participant: str
    token_amount: int
    quote_amount: int
    timestamp: int
    kind: EventKind = EventKind.REFUND_CLAIMED


@dataclass(frozen=True)
class LiquidityProvisioned:
    quote_amount: int
    token_amount: int
    lp_tokens: int
    timestamp: int
    kind: EventKind = EventKind.LIQUIDITY_PROVISIONED


SaleEvent = Union[
    TokensPurchased,
    TokensSold,
    SaleLaunched,
    SaleFailed,
    RefundClaimed,
    LiquidityProvisioned,
]


def event_to_dict(event: SaleEvent) -> dict[str, Any]:
    """Plain-dict form with the kind rendered as its wire name."""
    out = asdict(event)
    out["kind"] = event.kind.value
    return out
