"""
PositionTrackingService — market + holdings + assessment for one wallet.

The market is chosen by URL, explicit reference, or recurring series (the
live cycle); with none given, the configured default series is used.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from pydantic import BaseModel

from marketpilot.errors import InvalidConfig
from marketpilot.markets.references import parse_reference
from marketpilot.markets.service import MarketService
from marketpilot.models import (
    Market,
    MarketReference,
    MarketStatus,
    OrderPlan,
    PositionAssessment,
    ResponseMetadata,
    WalletPosition,
)
from marketpilot.orders.strategy import rebalance_plan
from marketpilot.positions.tracker import assess
from marketpilot.services.base import Stopwatch, with_deadline

logger = structlog.get_logger(__name__)


class PositionReport(BaseModel):
    market: Market
    assessment: PositionAssessment
    rebalance: OrderPlan | None = None
    metadata: ResponseMetadata


class PositionTrackingService:
    def __init__(
        self,
        markets: MarketService,
        *,
        market_deadline: float,
        default_series: str = "btc-updown-15m",
    ):
        self.markets = markets
        self.market_deadline = market_deadline
        self.default_series = default_series

    async def track(
        self,
        wallet: str,
        *,
        url: str | None = None,
        reference: MarketReference | None = None,
        series: str | None = None,
        now: datetime | float | None = None,
        rebalance_budget: float | None = None,
    ) -> PositionReport:
        watch = Stopwatch()
        if not wallet:
            raise InvalidConfig("wallet is required", field="wallet")
        if sum(x is not None for x in (url, reference, series)) > 1:
            raise InvalidConfig("pass only one of url, reference or series", field="market")
        if rebalance_budget is not None and rebalance_budget <= 0:
            raise InvalidConfig("rebalance_budget must be > 0", field="rebalance_budget")
        if url is not None:
            reference = parse_reference(url)

        market, position = await with_deadline(
            self._fetch(wallet, reference, series or self.default_series, now),
            self.market_deadline,
            dependency=reference.platform.value if reference else "polymarket",
        )
        assessment = assess(position, market)

        rebalance = None
        if rebalance_budget is not None and market.is_binary and market.status != MarketStatus.RESOLVED:
            rebalance = rebalance_plan(assessment, market, rebalance_budget)

        logger.info(
            "position_tracked",
            market_id=market.id,
            wallet=wallet,
            pair_status=assessment.pair_status.value,
            lock_state=assessment.lock_state.value,
            profit_lock=round(assessment.profit_lock, 4),
            execution_time_ms=watch.elapsed_ms,
        )
        return PositionReport(
            market=market,
            assessment=assessment,
            rebalance=rebalance,
            metadata=ResponseMetadata(execution_time_ms=watch.elapsed_ms),
        )

    async def _fetch(
        self,
        wallet: str,
        reference: MarketReference | None,
        series: str,
        now: datetime | float | None,
    ) -> tuple[Market, WalletPosition]:
        if reference is not None:
            market = await self.markets.resolve_market(reference)
        else:
            market = await self.markets.resolve_current_cycle(series, now)
        position = await self.markets.fetch_position(wallet, market)
        return market, position
