"""
PolymarketConnector — Async Polymarket market data and wallet holdings.

Wraps two public Polymarket APIs:
  - Gamma API (https://gamma-api.polymarket.com): market metadata and prices
  - Data API (https://data-api.polymarket.com): positions held by a wallet

Both are read-only here. Order placement is produced as unsigned
`OrderRequest`s by the strategy engine and submitted elsewhere.

Gamma quirks the adapter has to normalize:
  - `outcomes`, `outcomePrices` and `clobTokenIds` arrive as JSON-encoded
    strings (e.g. '["Up", "Down"]'), not arrays
  - prices are probability strings ("0.505")

Usage:
    pm = PolymarketConnector(build_http_client(GAMMA_API_URL), build_http_client(DATA_API_URL))
    raw = await pm.get_market_by_slug("btc-updown-15m-1767225600")
"""

from __future__ import annotations

import httpx
import structlog

from marketpilot.connectors.base_connector import BaseConnector, build_http_client

logger = structlog.get_logger(__name__)

GAMMA_API_URL = "https://gamma-api.polymarket.com"
DATA_API_URL = "https://data-api.polymarket.com"


class PolymarketConnector(BaseConnector):
    """Polymarket Gamma (markets) + Data API (positions) client."""

    def __init__(
        self,
        gamma: httpx.AsyncClient,
        data: httpx.AsyncClient,
    ):
        super().__init__(gamma)
        self._data = data

    @classmethod
    def from_urls(
        cls,
        gamma_url: str = GAMMA_API_URL,
        data_url: str = DATA_API_URL,
        *,
        api_key: str = "",
    ) -> PolymarketConnector:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        return cls(
            build_http_client(gamma_url, headers=headers),
            build_http_client(data_url),
        )

    @property
    def name(self) -> str:
        return "polymarket"

    @property
    def description(self) -> str:
        return "Polymarket prediction markets — Gamma market data & wallet positions"

    # ── Gamma API — Markets ─────────────────────────────────────────

    async def get_market_by_slug(self, slug: str) -> dict:
        """Fetch a single market by its slug."""
        return await self._request("GET", f"/markets/slug/{slug}")

    async def get_market(self, market_id: str) -> dict:
        """Fetch a single market by its numeric Gamma id."""
        return await self._request("GET", f"/markets/{market_id}")

    async def get_events(self, *, limit: int = 1, closed: bool = False) -> list[dict]:
        params = {"limit": limit, "closed": str(closed).lower()}
        data = await self._request("GET", "/events", params=params)
        return data if isinstance(data, list) else data.get("events", [data])

    # ── Data API — Positions ────────────────────────────────────────

    async def get_positions(self, wallet: str, condition_id: str | None = None) -> list[dict]:
        """Positions held by `wallet`, optionally narrowed to one market."""
        params: dict = {"user": wallet, "sizeThreshold": 0}
        if condition_id:
            params["market"] = condition_id

        data = await self._request("GET", "/positions", client=self._data, params=params)
        return data if isinstance(data, list) else data.get("positions", [])

    # ── Lifecycle ────────────────────────────────────────────────────

    async def health_check(self) -> bool:
        """Check Polymarket API connectivity via Gamma /events."""
        try:
            events = await self.get_events(limit=1)
            return len(events) > 0
        except Exception as e:
            logger.warning("polymarket_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._http.aclose()
        await self._data.aclose()
