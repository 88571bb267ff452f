"""
Platform adapters — normalize Polymarket and Kalshi payloads into one `Market`.

Each adapter pairs a connector (raw I/O) with pure normalization:

    raw = await adapter.fetch_market("btc-updown-15m-1767225600")
    market = adapter.normalize_market(raw)

Normalization raises `MalformedResponseError` on payloads that do not have
the expected shape; it never guesses missing prices.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import structlog

from marketpilot.connectors.base_connector import BaseConnector
from marketpilot.connectors.kalshi_connector import KalshiConnector
from marketpilot.connectors.polymarket_connector import PolymarketConnector
from marketpilot.errors import MalformedResponseError
from marketpilot.models import (
    AFFIRMATIVE_LABELS,
    Holding,
    Market,
    MarketStatus,
    Outcome,
    Platform,
    WalletPosition,
)

logger = structlog.get_logger(__name__)


class PlatformAdapter(ABC):
    """Fetch + normalize contract shared by every market platform."""

    platform: Platform
    connector: BaseConnector

    @property
    def name(self) -> str:
        return self.platform.value

    @abstractmethod
    async def fetch_market(self, identifier: str) -> Any:
        ...

    @abstractmethod
    async def fetch_holdings(self, wallet: str, market: Market) -> Any:
        ...

    @abstractmethod
    def normalize_market(self, raw: Any) -> Market:
        ...

    @abstractmethod
    def normalize_holdings(self, wallet: str, market: Market, raw: Any) -> WalletPosition:
        ...

    def _malformed(self, message: str) -> MalformedResponseError:
        return MalformedResponseError(
            f"{self.name}: {message}", provider=self.name, component="market"
        )


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _affirmative_first(outcomes: list[Outcome]) -> tuple[Outcome, ...]:
    return tuple(sorted(outcomes, key=lambda o: o.label.lower() not in AFFIRMATIVE_LABELS))


# ── Polymarket ───────────────────────────────────────────────────────


def _json_list(value: Any) -> list:
    """Gamma sends list fields as JSON strings ('["Up", "Down"]'); accept both."""
    if value is None:
        return []
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else []
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return value


def _settled_prices(prices: list[float]) -> list[float] | None:
    """Snap a resolved market's prices to 1.0 for the leader, 0.0 for the rest.

    Gamma can report a resolved market at 0.9995/0.0005. Returns None when
    no single outcome leads.
    """
    top = max(prices)
    if prices.count(top) != 1:
        return None
    return [1.0 if p == top else 0.0 for p in prices]


class PolymarketAdapter(PlatformAdapter):
    """Gamma markets (probability prices) + Data API positions."""

    platform = Platform.POLYMARKET

    def __init__(self, connector: PolymarketConnector):
        self.connector = connector

    async def fetch_market(self, identifier: str) -> dict:
        if identifier.isdigit():
            return await self.connector.get_market(identifier)
        return await self.connector.get_market_by_slug(identifier)

    async def fetch_holdings(self, wallet: str, market: Market) -> list[dict]:
        return await self.connector.get_positions(wallet, condition_id=market.id)

    def normalize_market(self, raw: dict) -> Market:
        labels = _json_list(raw.get("outcomes"))
        prices = [float(p) for p in _json_list(raw.get("outcomePrices"))]
        tokens = _json_list(raw.get("clobTokenIds"))
        if not labels or len(prices) != len(labels):
            raise self._malformed(
                f"outcomes/outcomePrices mismatch ({len(labels)} labels, {len(prices)} prices)"
            )
        if tokens and len(tokens) != len(labels):
            raise self._malformed("clobTokenIds do not match outcomes")

        status = self._status(raw, prices)
        if status == MarketStatus.RESOLVED:
            settled = _settled_prices(prices)
            if settled is None:
                logger.warning(
                    "resolution_without_winner",
                    market_id=raw.get("conditionId") or raw.get("id"),
                    prices=prices,
                )
                status = MarketStatus.CLOSING
            else:
                prices = settled

        outcomes = [
            Outcome(label=str(label), price=price, token_id=str(tokens[i]) if tokens else None)
            for i, (label, price) in enumerate(zip(labels, prices))
        ]

        expiry = _parse_time(raw.get("endDate") or raw.get("end_date_iso"))
        if expiry is None:
            raise self._malformed("market has no endDate")

        return Market(
            platform=self.platform,
            id=str(raw.get("conditionId") or raw["id"]),
            question=raw.get("question") or raw.get("title") or "",
            slug=raw.get("slug"),
            outcomes=_affirmative_first(outcomes),
            expiry=expiry,
            status=status,
            volume=_optional_float(raw.get("volumeNum", raw.get("volume"))),
            liquidity=_optional_float(raw.get("liquidityNum", raw.get("liquidity"))),
        )

    @staticmethod
    def _status(raw: dict, prices: list[float]) -> MarketStatus:
        terminal = all(p in (0.0, 1.0) for p in prices) and sum(prices) == 1.0
        if raw.get("closed"):
            if raw.get("umaResolutionStatus") == "resolved" or terminal:
                return MarketStatus.RESOLVED
            return MarketStatus.CLOSING
        if raw.get("acceptingOrders") is False or raw.get("active") is False:
            return MarketStatus.CLOSING
        return MarketStatus.OPEN

    def normalize_holdings(self, wallet: str, market: Market, raw: list[dict]) -> WalletPosition:
        by_token = {o.token_id: o.label for o in market.outcomes if o.token_id}
        totals: dict[str, tuple[float, float]] = {}

        for row in raw or []:
            if row.get("conditionId") and row["conditionId"] != market.id:
                continue
            label = by_token.get(str(row.get("asset"))) or row.get("outcome")
            if label is None:
                raise self._malformed("position row has neither a known asset nor an outcome")
            label = market.outcome(label).label
            shares = float(row.get("size", 0))
            if shares <= 0:
                continue
            held, cost = totals.get(label, (0.0, 0.0))
            totals[label] = (held + shares, cost + shares * float(row.get("avgPrice", 0)))

        return WalletPosition(
            wallet=wallet,
            market_id=market.id,
            holdings={
                label: Holding(shares=shares, avg_price=min(cost / shares, 1.0))
                for label, (shares, cost) in totals.items()
            },
        )


# ── Kalshi ───────────────────────────────────────────────────────────

_KALSHI_RESOLVED = {"settled", "finalized", "determined"}
_KALSHI_CLOSING = {"closed", "inactive"}


def _mid_cents(bid: Any, ask: Any) -> float | None:
    if bid is None or ask is None or not ask:
        return None
    return (float(bid) + float(ask)) / 2


class KalshiAdapter(PlatformAdapter):
    """Kalshi markets (integer-cent yes/no quotes) + signed portfolio positions."""

    platform = Platform.KALSHI

    def __init__(self, connector: KalshiConnector):
        self.connector = connector

    async def fetch_market(self, identifier: str) -> dict:
        return await self.connector.get_market(identifier)

    async def fetch_holdings(self, wallet: str, market: Market) -> list[dict]:
        return await self.connector.get_positions(market.id)

    def normalize_market(self, raw: dict) -> Market:
        ticker = raw["ticker"]
        status = self._status(raw)

        if status == MarketStatus.RESOLVED:
            yes_won = raw["result"].lower() == "yes"
            yes_price, no_price = (1.0, 0.0) if yes_won else (0.0, 1.0)
        else:
            yes_cents = _mid_cents(raw.get("yes_bid"), raw.get("yes_ask"))
            if yes_cents is None:
                yes_cents = raw.get("last_price")
            if yes_cents is None:
                raise self._malformed(f"{ticker} has no yes quote or last price")
            no_cents = _mid_cents(raw.get("no_bid"), raw.get("no_ask"))
            if no_cents is None:
                no_cents = 100 - float(yes_cents)
            yes_price, no_price = float(yes_cents) / 100, float(no_cents) / 100

        expiry = _parse_time(raw.get("close_time") or raw.get("expiration_time"))
        if expiry is None:
            raise self._malformed(f"{ticker} has no close_time")

        liquidity = _optional_float(raw.get("liquidity"))
        return Market(
            platform=self.platform,
            id=ticker,
            question=raw.get("title") or raw.get("subtitle") or ticker,
            slug=raw.get("event_ticker"),
            outcomes=(
                Outcome(label="Yes", price=yes_price, token_id=ticker),
                Outcome(label="No", price=no_price, token_id=ticker),
            ),
            expiry=expiry,
            status=status,
            volume=_optional_float(raw.get("volume")),
            liquidity=liquidity / 100 if liquidity is not None else None,
        )

    @staticmethod
    def _status(raw: dict) -> MarketStatus:
        status = (raw.get("status") or "").lower()
        if status in _KALSHI_RESOLVED and (raw.get("result") or "").lower() in ("yes", "no"):
            return MarketStatus.RESOLVED
        if status in _KALSHI_RESOLVED or status in _KALSHI_CLOSING:
            return MarketStatus.CLOSING
        return MarketStatus.OPEN

    def normalize_holdings(self, wallet: str, market: Market, raw: list[dict]) -> WalletPosition:
        holdings: dict[str, Holding] = {}
        for row in raw or []:
            if row.get("ticker") != market.id:
                continue
            contracts = float(row.get("position", 0))
            if contracts == 0:
                continue
            label = "Yes" if contracts > 0 else "No"
            shares = abs(contracts)
            exposure = float(row.get("market_exposure", 0)) / 100
            holdings[label] = Holding(shares=shares, avg_price=min(exposure / shares, 1.0))

        return WalletPosition(wallet=wallet, market_id=market.id, holdings=holdings)
