"""
KalshiConnector — Async Kalshi trade API v2 client.

Market data (`/markets/{ticker}`) is public. Portfolio positions require an
API key id; Kalshi additionally expects per-request RSA signatures, which
belong to the external key-custody layer and are supplied pre-computed via
`signer` when holdings are needed.

Kalshi quirks the adapter has to normalize:
  - prices are integer cents (0–100), split into yes/no bid/ask
  - positions are signed: positive = YES contracts, negative = NO contracts
"""

from __future__ import annotations

from typing import Callable

import httpx
import structlog

from marketpilot.connectors.base_connector import BaseConnector, build_http_client

logger = structlog.get_logger(__name__)

KALSHI_API_URL = "https://api.elections.kalshi.com/trade-api/v2"

# (method, full request path) -> extra auth headers, provided by the key-custody layer.
RequestSigner = Callable[[str, str], dict[str, str]]


class KalshiConnector(BaseConnector):
    """Kalshi markets and portfolio positions."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key_id: str = "",
        signer: RequestSigner | None = None,
    ):
        super().__init__(http)
        self._api_key_id = api_key_id
        self._signer = signer

    @classmethod
    def from_url(
        cls,
        base_url: str = KALSHI_API_URL,
        *,
        api_key_id: str = "",
        signer: RequestSigner | None = None,
    ) -> KalshiConnector:
        return cls(build_http_client(base_url), api_key_id=api_key_id, signer=signer)

    @property
    def name(self) -> str:
        return "kalshi"

    @property
    def description(self) -> str:
        return "Kalshi event contracts — market data & portfolio positions"

    async def get_market(self, ticker: str) -> dict:
        """Fetch a single market by ticker. Unwraps the `{"market": ...}` envelope."""
        data = await self._request("GET", f"/markets/{ticker}")
        return data.get("market", data) if isinstance(data, dict) else data

    async def get_positions(self, ticker: str) -> list[dict]:
        """Portfolio positions for `ticker` (authenticated)."""
        path = "/portfolio/positions"
        headers = {"KALSHI-ACCESS-KEY": self._api_key_id} if self._api_key_id else {}
        if self._signer is not None:
            # Kalshi signs the full path, including the /trade-api/v2 prefix
            signed_path = self._http.base_url.path.rstrip("/") + path
            headers.update(self._signer("GET", signed_path))

        data = await self._request(
            "GET", path, params={"ticker": ticker}, headers=headers
        )
        return data.get("market_positions", []) if isinstance(data, dict) else data

    async def health_check(self) -> bool:
        try:
            data = await self._request("GET", "/exchange/status")
            return bool(data.get("trading_active", True))
        except Exception as e:
            logger.warning("kalshi_health_check_failed", error=str(e))
            return False
