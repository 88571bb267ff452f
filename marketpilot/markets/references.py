"""Market references from user-facing platform URLs."""

from __future__ import annotations

from urllib.parse import urlparse

from marketpilot.errors import InvalidConfig
from marketpilot.models import MarketReference, Platform

_HOSTS = {
    "polymarket.com": Platform.POLYMARKET,
    "kalshi.com": Platform.KALSHI,
}

# First path segment that precedes the identifier on each platform.
_PATH_KINDS = {
    Platform.POLYMARKET: ("event", "market"),
    Platform.KALSHI: ("markets", "trade", "events"),
}


def parse_reference(url: str) -> MarketReference:
    """Turn a market URL into a `MarketReference`.

    Accepts `polymarket.com/event/<slug>` and `kalshi.com/markets/<ticker>`
    (also `/trade/<ticker>`), with or without scheme and `www.`. The last
    path segment is the identifier, so for Polymarket event URLs that name
    a specific market (`/event/<event>/<market>`) the market slug wins.

    Raises:
        InvalidConfig: unsupported host or path.
    """
    if not url or not url.strip():
        raise InvalidConfig("Market URL is empty", field="url")

    raw = url.strip()
    if "://" not in raw:
        raw = f"https://{raw}"
    parsed = urlparse(raw)

    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    platform = _HOSTS.get(host)
    if platform is None:
        raise InvalidConfig(f"Unsupported market host '{host}'", field="url")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2 or parts[0].lower() not in _PATH_KINDS[platform]:
        raise InvalidConfig(f"Unsupported {platform.value} URL path '{parsed.path}'", field="url")

    identifier = parts[-1]
    if platform == Platform.KALSHI:
        identifier = identifier.upper()
    return MarketReference(platform=platform, identifier=identifier)
