"""
Market abstraction — one `Market` model over Polymarket and Kalshi.
"""

from marketpilot.markets.adapters import KalshiAdapter, PlatformAdapter, PolymarketAdapter
from marketpilot.markets.cycles import (
    CycleSeries,
    CycleWindow,
    current_cycle,
    cycle_start,
    next_cycle,
    parse_interval,
)
from marketpilot.markets.references import parse_reference
from marketpilot.markets.service import MarketService, check_price_sum

__all__ = [
    "CycleSeries",
    "CycleWindow",
    "KalshiAdapter",
    "MarketService",
    "PlatformAdapter",
    "PolymarketAdapter",
    "check_price_sum",
    "current_cycle",
    "cycle_start",
    "next_cycle",
    "parse_interval",
    "parse_reference",
]
