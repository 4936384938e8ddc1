"""
Balances and in-memory collaborators for the sale engine
"""

from .balances import BalanceTable
from .ledger import AssetLedger, InMemoryLiquidityVenue, InMemoryTreasury, ManualClock, SystemClock

__all__ = [
    "BalanceTable",
    "AssetLedger",
    "InMemoryLiquidityVenue",
    "InMemoryTreasury",
    "ManualClock",
    "SystemClock",
]
