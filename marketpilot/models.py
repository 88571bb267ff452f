"""
Core Models — Shared Pydantic models for MarketPilot.

Defines the data structures that flow between the core components:
  - Market / Outcome / MarketReference: normalized platform market data
  - Holding / WalletPosition: a wallet's holdings in one market
  - PositionAssessment: exposure classification (output only)
  - OrderLevel / OrderPlan / OrderRequest: strategy engine output
  - AiAnalysis / ResearchResult: structured external-service answers
  - ResponseMetadata: timing and provider info attached to service results

Everything here is request-scoped; nothing is persisted.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


# ── Market ───────────────────────────────────────────────────────────


class Platform(str, enum.Enum):
    POLYMARKET = "polymarket"
    KALSHI = "kalshi"


class MarketStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    RESOLVED = "RESOLVED"


AFFIRMATIVE_LABELS = frozenset({"yes", "up"})


class Outcome(BaseModel):
    """One tradable outcome of a market."""

    model_config = ConfigDict(frozen=True)

    label: str
    price: float = Field(ge=0.0, le=1.0, description="Current price as probability")
    token_id: str | None = None


class Market(BaseModel):
    """A market normalized from either platform. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    id: str
    question: str
    outcomes: tuple[Outcome, ...]
    expiry: datetime
    status: MarketStatus
    slug: str | None = None
    volume: float | None = None
    liquidity: float | None = None

    @property
    def is_binary(self) -> bool:
        return len(self.outcomes) == 2

    @property
    def labels(self) -> list[str]:
        return [o.label for o in self.outcomes]

    @property
    def price_sum(self) -> float:
        return sum(o.price for o in self.outcomes)

    def outcome(self, label: str) -> Outcome:
        """Look up an outcome by label (case-insensitive)."""
        for o in self.outcomes:
            if o.label.lower() == label.lower():
                return o
        raise KeyError(f"Outcome '{label}' not in market {self.id}: {self.labels}")

    @property
    def winning_outcome(self) -> Outcome | None:
        """The outcome that resolved true, or None while undecided."""
        if self.status != MarketStatus.RESOLVED:
            return None
        for o in self.outcomes:
            if o.price >= 1.0:
                return o
        return None

    @property
    def expiry_timestamp(self) -> int:
        return int(self.expiry.astimezone(timezone.utc).timestamp())


class MarketReference(BaseModel):
    """Which market to fetch: platform tag plus native identifier (slug/ticker/id)."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    identifier: str


# ── Positions ────────────────────────────────────────────────────────


class Holding(BaseModel):
    """Shares held on one outcome and their average entry price."""

    model_config = ConfigDict(frozen=True)

    shares: float = Field(default=0.0, ge=0.0)
    avg_price: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def cost(self) -> float:
        return self.shares * self.avg_price


class WalletPosition(BaseModel):
    """A wallet's holdings in one market, keyed by outcome label."""

    model_config = ConfigDict(frozen=True)

    wallet: str
    market_id: str
    holdings: dict[str, Holding] = Field(default_factory=dict)

    def holding(self, label: str) -> Holding:
        for key, value in self.holdings.items():
            if key.lower() == label.lower():
                return value
        return Holding()


class PairStatus(str, enum.Enum):
    FULLY_PAIRED = "FULLY_PAIRED"
    PARTIAL = "PARTIAL"
    UNPAIRED = "UNPAIRED"


class LockState(str, enum.Enum):
    PROFIT_LOCKED = "PROFIT_LOCKED"
    BREAK_EVEN = "BREAK_EVEN"
    AT_RISK = "AT_RISK"
    NO_POSITION = "NO_POSITION"


class PositionLine(BaseModel):
    """Per-outcome view of a position at the market's current price."""

    outcome: str
    shares: float
    avg_price: float
    current_price: float
    unrealized_pnl: float


class PositionAssessment(BaseModel):
    """Exposure of a wallet in one market. Computed, never stored."""

    position: WalletPosition
    profit_lock: float = Field(
        description="Guaranteed P&L across every outcome that can still win"
    )
    break_even: float | None = Field(
        default=None,
        description="Win probability of break_even_outcome at which expected P&L is 0",
    )
    break_even_outcome: str | None = None
    pair_status: PairStatus
    lock_state: LockState
    total_cost: float
    payouts: dict[str, float] = Field(
        default_factory=dict, description="Net P&L if the keyed outcome wins"
    )
    lines: list[PositionLine] = Field(default_factory=list)


# ── Orders ───────────────────────────────────────────────────────────


class OrderMode(str, enum.Enum):
    SIMPLE = "SIMPLE"
    LADDER = "LADDER"


class OrderLevel(BaseModel):
    """One limit buy: `size` USD on outcome `side` at `price`."""

    model_config = ConfigDict(frozen=True)

    side: str
    price: float = Field(gt=0.0, lt=1.0)
    size: float = Field(gt=0.0)
    level_index: int = Field(default=1, ge=1)

    @property
    def shares(self) -> float:
        return round(self.size / self.price, 4)


class OrderPlan(BaseModel):
    """Priced order levels for a bankroll. `total_committed` never exceeds `bankroll`."""

    model_config = ConfigDict(frozen=True)

    mode: OrderMode
    bankroll: float
    levels: tuple[OrderLevel, ...] = ()
    total_committed: float = 0.0
    warnings: tuple[str, ...] = ()

    def side(self, label: str) -> list[OrderLevel]:
        return [lvl for lvl in self.levels if lvl.side == label]


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    FAILED = "failed"


class OrderRequest(BaseModel):
    """Unsigned limit order handed to the external signer/submitter."""

    token_id: str
    outcome: str
    side: str = "BUY"
    price: float
    size: float
    shares: float
    order_id: str | None = None
    status: OrderStatus = OrderStatus.PENDING


# ── AI & Research ────────────────────────────────────────────────────


class Recommendation(str, enum.Enum):
    BUY_YES = "BUY_YES"
    BUY_NO = "BUY_NO"
    NO_TRADE = "NO_TRADE"


class AiAnalysis(BaseModel):
    """Structured recommendation returned by an AI provider."""

    recommendation: Recommendation
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    key_factors: list[str] = Field(default_factory=list)


class Citation(BaseModel):
    source: str
    url: str | None = None
    relevance: float = 0.0


class ResearchResult(BaseModel):
    answer: str
    citations: list[Citation] = Field(default_factory=list)


# ── Service Metadata ─────────────────────────────────────────────────


class ResponseMetadata(BaseModel):
    """Timing and provider info attached to every service result."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    execution_time_ms: int = 0
    provider_used: str | None = None
    retries: int = 0
