"""
Recurring-market cycles — which market of a series is live at a given instant.

Short-duration series (e.g. BTC up/down every 15 minutes) publish one market
per interval with a slug like `btc-updown-15m-{start_timestamp}`. The start
of the cycle containing `now` is

    floor((now + skew) / interval) * interval

where `skew` snaps instants just before a boundary onto the upcoming
market: anything within `skew` seconds of a boundary B (either side)
resolves to the market that starts at B. Clock drift between us and the
platform therefore never flips the answer around a boundary.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from marketpilot.config import CycleConfig
from marketpilot.errors import InvalidConfig
from marketpilot.models import Platform

_UNIT_SECONDS = {"m": 60, "min": 60, "h": 3600, "hr": 3600, "d": 86400}

# Interval token anywhere in the prefix: "btc-updown-15m", "eth-1h", "sol-15min-up"
_INTERVAL_RE = re.compile(r"(?:^|-)(\d+)(min|m|hr|h|d)(?=-|$)")


@dataclass(frozen=True)
class CycleSeries:
    """A recurring market series: slug prefix plus interval length in seconds."""

    prefix: str
    interval: int
    platform: Platform = Platform.POLYMARKET

    def __post_init__(self):
        if self.interval <= 0:
            raise InvalidConfig("cycle interval must be > 0", field="interval")

    @classmethod
    def from_prefix(cls, prefix: str, platform: Platform = Platform.POLYMARKET) -> CycleSeries:
        """Derive the interval from the prefix itself (`btc-updown-15m` → 900s)."""
        return cls(prefix=prefix, interval=parse_interval(prefix), platform=platform)


@dataclass(frozen=True)
class CycleWindow:
    """One cycle of a series: `[start, end)` as epoch seconds."""

    series: CycleSeries
    start: int
    end: int

    @property
    def slug(self) -> str:
        return f"{self.series.prefix}-{self.start}"

    @property
    def start_time(self) -> datetime:
        return datetime.fromtimestamp(self.start, tz=timezone.utc)

    @property
    def end_time(self) -> datetime:
        return datetime.fromtimestamp(self.end, tz=timezone.utc)

    def next(self) -> CycleWindow:
        interval = self.series.interval
        return CycleWindow(series=self.series, start=self.start + interval, end=self.end + interval)


def parse_interval(prefix: str) -> int:
    """Interval in seconds encoded in a series prefix. Raises InvalidConfig if absent."""
    matches = _INTERVAL_RE.findall(prefix.lower())
    if not matches:
        raise InvalidConfig(
            f"Cannot derive a cycle interval from series prefix '{prefix}'",
            field="series_prefix",
        )
    amount, unit = matches[-1]
    seconds = int(amount) * _UNIT_SECONDS[unit]
    if seconds <= 0:
        raise InvalidConfig(f"Zero-length interval in '{prefix}'", field="series_prefix")
    return seconds


def to_epoch(now: datetime | float | int) -> float:
    if isinstance(now, datetime):
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.timestamp()
    return float(now)


def cycle_start(now: datetime | float | int, interval: int, skew: int = 90) -> int:
    """Start of the cycle `now` belongs to, with boundary skew applied."""
    if 2 * skew >= interval:
        raise InvalidConfig(
            f"skew_tolerance {skew}s is too large for a {interval}s interval",
            field="skew_tolerance",
        )
    return int((to_epoch(now) + skew) // interval) * interval


def current_cycle(
    series: CycleSeries,
    now: datetime | float | int,
    config: CycleConfig | None = None,
) -> CycleWindow:
    config = config or CycleConfig()
    start = cycle_start(now, series.interval, config.skew_tolerance)
    return CycleWindow(series=series, start=start, end=start + series.interval)


def next_cycle(
    series: CycleSeries,
    now: datetime | float | int,
    config: CycleConfig | None = None,
) -> CycleWindow:
    return current_cycle(series, now, config).next()
