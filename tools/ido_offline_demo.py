#!/usr/bin/env python3
"""
Offline walk-through of one sale against in-memory ledgers.

Buys in equal steps until the sale sells out (or the step budget runs out),
then finalizes after the deadline and, on launch, provisions liquidity.
Prints one JSON line per event.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ido_engine.core.errors import SaleError
from ido_engine.core.events import event_to_dict
from ido_engine.core.sale_types import SaleStatus
from ido_engine.integration.config import load_sale_config
from ido_engine.integration.registry import SaleRegistry
from ido_engine.state.balances import BalanceTable
from ido_engine.state.ledger import AssetLedger, InMemoryLiquidityVenue, InMemoryTreasury, ManualClock


def main() -> int:
    ap = argparse.ArgumentParser(description="Offline curve-priced sale demo")
    ap.add_argument("--config", type=str, default="", help="YAML sale config (IDO_* env vars override)")
    ap.add_argument("--target-raise", type=int, default=50_000, help="whole quote units when no config is given")
    ap.add_argument("--steps", type=int, default=10, help="number of equal buys")
    ap.add_argument("--fill-pct", type=int, default=100, help="share of salable supply to buy (0-100)")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.steps <= 0 or not (0 <= args.fill_pct <= 100):
        print("[ido-demo] FAIL: --steps must be positive and --fill-pct in [0, 100]")
        return 2

    config_path = Path(args.config) if args.config else None
    defaults = {} if config_path else {"target_raise": args.target_raise * 10**6}
    config = load_sale_config(config_path, **defaults)
    params = config.to_params()

    table = BalanceTable()
    quote = AssetLedger(table, "USDC")
    clock = ManualClock(0)
    registry = SaleRegistry(quote=quote, clock=clock)
    handle = registry.create_sale(
        config,
        token=AssetLedger(table, "SALE"),
        custody=InMemoryTreasury(),
        project_account="project",
        venue=InMemoryLiquidityVenue(),
    )
    sale = registry.get(handle)
    print(f"[ido-demo] sale={handle} salable={params.salable_supply} reserved={params.allocation.reserved_supply}")

    buyer = "demo-buyer"
    quote.credit_balance(buyer, 10**30)
    budget = params.salable_supply * args.fill_pct // 100
    step = budget // args.steps
    try:
        for i in range(args.steps):
            amount = budget - step * (args.steps - 1) if i == args.steps - 1 else step
            if amount <= 0 or sale.status is not SaleStatus.ACTIVE:
                break
            cost, fee = sale.quote_buy(amount)
            sale.buy(buyer, amount, cost + fee)
            clock.advance(1)

        if sale.status is SaleStatus.ACTIVE:
            clock.set(sale.snapshot().end_time + 1)
            registry.finalize_due()
        if sale.status is SaleStatus.LAUNCHED:
            sale.provision_liquidity()
    except SaleError as exc:
        print(f"[ido-demo] FAIL ({exc.kind}): {exc}")
        return 1

    for event in sale.events():
        print(json.dumps(event_to_dict(event), sort_keys=True))
    stats = registry.stats()
    print(f"[ido-demo] status={sale.status.value} volume={stats.total_volume} fees={stats.total_protocol_fees}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
