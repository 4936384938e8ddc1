"""
Explicit registry of sales keyed by opaque handles, plus protocol-wide stats.

Handles are content-addressed: ``digest("sale", request)`` over the canonical
JSON of the creation request and a per-registry nonce, so two identical
requests still get distinct handles.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.errors import InvalidInputError
from ..core.interfaces import Clock, FundsCustody, LiquidityVenue, QuoteLedger, TokenLedger
from ..core.sale import Sale
from ..core.sale_types import SaleStatus
from ..state.canonical import digest
from .config import SaleConfig


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProtocolStats:
    total_sales: int
    active_sales: int
    launched_sales: int
    failed_sales: int
    total_raised: int
    total_volume: int
    total_protocol_fees: int


class SaleRegistry:
    def __init__(
        self,
        *,
        quote: QuoteLedger,
        clock: Clock,
        fee_recipient: str = "protocol-fees",
    ):
        self.quote = quote
        self.clock = clock
        self.fee_recipient = fee_recipient
        self._sales: Dict[str, Sale] = {}
        self._nonce = 0
        self._lock = threading.Lock()

    def create_sale(
        self,
        config: SaleConfig,
        *,
        token: TokenLedger,
        custody: FundsCustody,
        project_account: str,
        start_time: Optional[int] = None,
        venue: Optional[LiquidityVenue] = None,
    ) -> str:
        """Open a new sale and return its handle."""
        params = config.to_params()
        start = self.clock.now() if start_time is None else start_time
        end = start + config.duration_seconds

        with self._lock:
            request = {
                "config": config.to_dict(),
                "project_account": project_account,
                "start_time": start,
                "nonce": self._nonce,
            }
            handle = digest("sale", request)
            self._nonce += 1
            sale = Sale.open(
                params,
                start_time=start,
                end_time=end,
                token=token,
                quote=self.quote,
                custody=custody,
                clock=self.clock,
                escrow_account=f"sale:{handle}",
                fee_recipient=self.fee_recipient,
                project_account=project_account,
                venue=venue,
                sale_id=handle,
            )
            self._sales[handle] = sale
        logger.info("registered sale %s for %s", handle, project_account)
        return handle

    def get(self, handle: str) -> Sale:
        with self._lock:
            sale = self._sales.get(handle)
        if sale is None:
            raise InvalidInputError(f"unknown sale handle: {handle!r}")
        return sale

    def handles(self) -> List[str]:
        with self._lock:
            return list(self._sales)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sales)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._sales

    def finalize_due(self) -> List[str]:
        """
        Finalize every ACTIVE sale whose window has closed; returns their handles.

        The due check runs under each sale's own lock, so a sale finalized
        concurrently by another caller is skipped rather than failing the batch.
        """
        done = []
        for handle in self.handles():
            if self.get(handle).finalize_if_due():
                done.append(handle)
        if done:
            logger.info("finalized %d due sale(s)", len(done))
        return done

    def stats(self) -> ProtocolStats:
        with self._lock:
            sales = list(self._sales.values())
        snapshots = [sale.snapshot() for sale in sales]
        by_status = {status: 0 for status in SaleStatus}
        for s in snapshots:
            by_status[s.status] += 1
        return ProtocolStats(
            total_sales=len(snapshots),
            active_sales=by_status[SaleStatus.ACTIVE],
            launched_sales=by_status[SaleStatus.LAUNCHED],
            failed_sales=by_status[SaleStatus.FAILED],
            total_raised=sum(s.quote_collected for s in snapshots if s.status is SaleStatus.LAUNCHED),
            total_volume=sum(s.trading_volume for s in snapshots),
            total_protocol_fees=sum(s.protocol_fees for s in snapshots),
        )
