from datetime import datetime, timezone

import pytest

from marketpilot.models import Market, MarketStatus, Outcome, Platform


class FakeSleep:
    """Records backoff delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def make_market():
    """Factory for binary markets priced at `yes` / `1 - yes`."""

    def _make(
        yes: float = 0.5,
        no: float | None = None,
        *,
        status: MarketStatus = MarketStatus.OPEN,
        labels: tuple[str, str] = ("Yes", "No"),
        market_id: str = "0xmarket",
        platform: Platform = Platform.POLYMARKET,
        expiry: datetime = datetime(2026, 1, 1, 0, 15, tzinfo=timezone.utc),
    ) -> Market:
        return Market(
            platform=platform,
            id=market_id,
            question="Will BTC close higher?",
            outcomes=(
                Outcome(label=labels[0], price=yes, token_id="tok-yes"),
                Outcome(label=labels[1], price=round(1 - yes, 10) if no is None else no, token_id="tok-no"),
            ),
            expiry=expiry,
            status=status,
        )

    return _make
