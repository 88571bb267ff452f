"""
MarketService — resolve markets and holdings through the resilience layer.

Selects the platform adapter for a reference, fetches under the market
budget, normalizes, then checks market invariants. An invariant violation
is reported, never corrected: downstream sizing must not run on prices
that do not add up.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from marketpilot.config import CycleConfig
from marketpilot.errors import InvalidConfig, InvariantViolation
from marketpilot.markets.adapters import PlatformAdapter
from marketpilot.markets.cycles import CycleSeries, CycleWindow, current_cycle
from marketpilot.models import Market, MarketReference, MarketStatus, Platform, WalletPosition
from marketpilot.utils.resilience import CallConfig, Operation, Sleeper, call

logger = structlog.get_logger(__name__)

PRICE_SUM_TOLERANCE = 0.01


def check_price_sum(market: Market) -> None:
    """Raise InvariantViolation unless outcome prices sum to 1 ± 0.01.

    Resolved markets that carry terminal (0/1) prices are exempt.
    """
    if len(market.outcomes) < 2:
        return
    if market.status == MarketStatus.RESOLVED and all(
        o.price in (0.0, 1.0) for o in market.outcomes
    ):
        return
    total = market.price_sum
    if abs(total - 1.0) > PRICE_SUM_TOLERANCE + 1e-9:
        raise InvariantViolation(
            f"Outcome prices of {market.id} sum to {total:.4f}, expected 1.0 ± {PRICE_SUM_TOLERANCE}",
            invariant="price_sum",
            component="market",
            dependency=market.platform.value,
        )


class MarketService:
    """Market resolution, cycle lookup and holdings for both platforms."""

    def __init__(
        self,
        adapters: dict[Platform, PlatformAdapter],
        call_config: CallConfig | None = None,
        cycle_config: CycleConfig | None = None,
        *,
        series: dict[str, CycleSeries] | None = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._adapters = adapters
        self._call_config = call_config or CallConfig()
        self._cycle_config = cycle_config or CycleConfig()
        self._series = series or {}
        self._sleep = sleep

    def adapter(self, platform: Platform) -> PlatformAdapter:
        try:
            return self._adapters[platform]
        except KeyError:
            raise InvalidConfig(
                f"No adapter configured for platform '{platform.value}'", field="platform"
            ) from None

    def series(self, prefix: str, platform: Platform = Platform.POLYMARKET) -> CycleSeries:
        """Registered series for `prefix`, else one derived from the prefix itself."""
        return self._series.get(prefix) or CycleSeries.from_prefix(prefix, platform)

    # ── Markets ──────────────────────────────────────────────────────

    async def resolve_market(self, reference: MarketReference) -> Market:
        adapter = self.adapter(reference.platform)

        async def fetch() -> Market:
            raw = await adapter.fetch_market(reference.identifier)
            return adapter.normalize_market(raw)

        result = await call(Operation(adapter.name, fetch), self._call_config, sleep=self._sleep)
        market = result.value
        check_price_sum(market)

        logger.info(
            "market_resolved",
            platform=market.platform.value,
            market_id=market.id,
            status=market.status.value,
            prices={o.label: o.price for o in market.outcomes},
            retries=result.retries,
        )
        return market

    async def resolve_current_cycle(
        self,
        series_prefix: str,
        now: datetime | float | None = None,
        *,
        platform: Platform = Platform.POLYMARKET,
    ) -> Market:
        """The market of `series_prefix` live at `now` (default: wall clock)."""
        window = current_cycle(self.series(series_prefix, platform), self._now(now), self._cycle_config)
        return await self._resolve_window(window)

    async def resolve_next_cycle(
        self,
        series_prefix: str,
        now: datetime | float | None = None,
        *,
        platform: Platform = Platform.POLYMARKET,
    ) -> Market:
        """The market after the live one, e.g. to stage orders before it opens."""
        window = current_cycle(
            self.series(series_prefix, platform), self._now(now), self._cycle_config
        ).next()
        return await self._resolve_window(window)

    async def _resolve_window(self, window: CycleWindow) -> Market:
        logger.info(
            "cycle_lookup",
            slug=window.slug,
            start=window.start_time.isoformat(),
            end=window.end_time.isoformat(),
        )
        market = await self.resolve_market(
            MarketReference(platform=window.series.platform, identifier=window.slug)
        )

        drift = abs(market.expiry_timestamp - window.end)
        if drift > self._cycle_config.boundary_tolerance:
            raise InvariantViolation(
                f"Market {market.id} expires at {market.expiry.isoformat()}, "
                f"expected {window.end_time.isoformat()} (drift {drift}s)",
                invariant="cycle_boundary",
                component="market",
                dependency=market.platform.value,
            )
        return market

    @staticmethod
    def _now(now: datetime | float | None) -> datetime | float:
        return datetime.now(timezone.utc) if now is None else now

    # ── Holdings ─────────────────────────────────────────────────────

    async def fetch_position(self, wallet: str, market: Market) -> WalletPosition:
        if not wallet:
            raise InvalidConfig("wallet is required", field="wallet")
        adapter = self.adapter(market.platform)

        async def fetch() -> WalletPosition:
            raw = await adapter.fetch_holdings(wallet, market)
            return adapter.normalize_holdings(wallet, market, raw)

        result = await call(Operation(adapter.name, fetch), self._call_config, sleep=self._sleep)
        position = result.value
        logger.info(
            "position_fetched",
            platform=market.platform.value,
            market_id=market.id,
            outcomes_held=sorted(position.holdings),
            retries=result.retries,
        )
        return position

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.connector.close()
