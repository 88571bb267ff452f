"""
Tests for the request-scoped services — analysis, research, position
tracking, limit-order planning.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from marketpilot.config import Budget
from marketpilot.connectors.ai_connector import AIProvider
from marketpilot.connectors.registry import ProviderRegistry
from marketpilot.errors import (
    DeadlineExceededError,
    InvalidConfig,
    MalformedResponseError,
    MaxRetriesExceededError,
    TransientCallFailure,
    UpstreamAuthError,
)
from marketpilot.markets.service import MarketService
from marketpilot.models import (
    AiAnalysis,
    Citation,
    Holding,
    LockState,
    MarketReference,
    MarketStatus,
    OrderMode,
    PairStatus,
    Platform,
    Recommendation,
    ResearchResult,
    WalletPosition,
)
from marketpilot.orders.strategy import StrategyConfig
from marketpilot.services.analysis import AnalysisService
from marketpilot.services.limit_orders import LimitOrderService
from marketpilot.services.position_tracking import PositionTrackingService
from marketpilot.services.research import ResearchService
from marketpilot.utils.resilience import CallConfig

URL = "https://polymarket.com/event/btc-updown-15m-1767225600"

ANALYSIS = AiAnalysis(
    recommendation=Recommendation.BUY_YES,
    confidence=0.72,
    reasoning="Momentum favours the upside.",
    key_factors=["momentum", "liquidity"],
)


class FakeProvider(AIProvider):
    """Provider whose `infer` replays a script of results and exceptions."""

    def __init__(self, name: str, *script):
        super().__init__(MagicMock(spec=httpx.AsyncClient))
        self._name = name
        self.script = list(script)
        self.prompts: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"fake {self._name}"

    async def infer(self, prompt, context=None):
        self.prompts.append(prompt)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item


def _registry(*providers) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    return registry


def _budget(deadline: float = 5.0) -> Budget:
    return Budget(call=CallConfig(max_attempts=2, base_delay=0.1, max_delay=1.0), deadline=deadline)


def _research_connector(*, result=None, error=None):
    connector = MagicMock()
    connector.name = "polyfactual"
    connector.research = AsyncMock(
        return_value=result or ResearchResult(answer="ETF inflows are strong.", citations=[Citation(source="news")]),
        side_effect=error,
    )
    return connector


@pytest.fixture
def markets(make_market):
    service = AsyncMock(spec=MarketService)
    service.resolve_market.return_value = make_market(0.55, market_id="0xcond")
    service.resolve_current_cycle.return_value = make_market(0.55, market_id="0xcycle")
    service.resolve_next_cycle.return_value = make_market(0.60, market_id="0xnext")
    return service


# ── Analysis ─────────────────────────────────────────────────────────


class TestAnalysisService:
    def _service(self, markets, providers, fake_sleep, research=None):
        return AnalysisService(
            markets,
            providers,
            ai_budget=_budget(),
            market_deadline=5.0,
            research=research,
            sleep=fake_sleep,
        )

    @pytest.mark.asyncio
    async def test_primary_provider_answers(self, markets, fake_sleep):
        grok = FakeProvider("grok", ANALYSIS)
        service = self._service(markets, _registry(grok, FakeProvider("openai", ANALYSIS)), fake_sleep)

        result = await service.analyze(URL, question="Up or down?")

        assert result.recommendation == Recommendation.BUY_YES
        assert result.metadata.provider_used == "grok"
        assert result.metadata.retries == 0
        assert result.market.id == "0xcond"
        assert "Up or down?" in grok.prompts[0]
        markets.resolve_market.assert_awaited_once_with(
            MarketReference(platform=Platform.POLYMARKET, identifier="btc-updown-15m-1767225600")
        )

    @pytest.mark.asyncio
    async def test_fails_over_after_transient_exhaustion(self, markets, fake_sleep):
        grok = FakeProvider("grok", TransientCallFailure("overloaded", status_code=503))
        openai = FakeProvider("openai", ANALYSIS)
        service = self._service(markets, _registry(grok, openai), fake_sleep)

        result = await service.analyze(URL)

        assert result.metadata.provider_used == "openai"
        assert len(grok.prompts) == 2
        assert len(openai.prompts) == 1

    @pytest.mark.asyncio
    async def test_fatal_primary_skips_fallback(self, markets, fake_sleep):
        grok = FakeProvider("grok", UpstreamAuthError("bad key", status_code=401))
        openai = FakeProvider("openai", ANALYSIS)
        service = self._service(markets, _registry(grok, openai), fake_sleep)

        with pytest.raises(UpstreamAuthError) as exc_info:
            await service.analyze(URL)

        assert openai.prompts == []
        assert exc_info.value.partial["market"]["id"] == "0xcond"

    @pytest.mark.asyncio
    async def test_inference_failure_keeps_market_and_research(self, markets, fake_sleep):
        grok = FakeProvider("grok", TransientCallFailure("down", status_code=502))
        openai = FakeProvider("openai", TransientCallFailure("down", status_code=502))
        research = ResearchService(_research_connector(), _budget(), sleep=fake_sleep)
        service = self._service(markets, _registry(grok, openai), fake_sleep, research=research)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await service.analyze(URL, question="Will it close up?", include_research=True)

        error = exc_info.value
        assert error.providers == ["grok", "openai"]
        assert error.component == "analysis"
        assert error.partial["market"]["id"] == "0xcond"
        assert error.partial["research"]["answer"] == "ETF inflows are strong."

    @pytest.mark.asyncio
    async def test_research_included(self, markets, fake_sleep):
        connector = _research_connector()
        research = ResearchService(connector, _budget(), sleep=fake_sleep)
        service = self._service(markets, _registry(FakeProvider("grok", ANALYSIS)), fake_sleep, research=research)

        result = await service.analyze(URL, question="Will it close up?", include_research=True)

        assert result.research.answer == "ETF inflows are strong."
        assert result.research_error is None
        connector.research.assert_awaited_once_with("Will it close up?")

    @pytest.mark.asyncio
    async def test_research_failure_is_reported_not_fatal(self, markets, fake_sleep):
        connector = _research_connector(error=MalformedResponseError("garbage"))
        research = ResearchService(connector, _budget(), sleep=fake_sleep)
        service = self._service(markets, _registry(FakeProvider("grok", ANALYSIS)), fake_sleep, research=research)

        result = await service.analyze(URL, include_research=True)

        assert result.research is None
        assert result.research_error["error_code"] == "MALFORMED_RESPONSE"
        assert result.recommendation == Recommendation.BUY_YES
        # no question given: the market question is researched
        connector.research.assert_awaited_once_with("Will BTC close higher?")

    @pytest.mark.asyncio
    async def test_unknown_provider_fails_before_io(self, markets, fake_sleep):
        service = self._service(markets, _registry(FakeProvider("grok", ANALYSIS)), fake_sleep)

        with pytest.raises(InvalidConfig) as exc_info:
            await service.analyze(URL, provider="claude")

        assert exc_info.value.field == "provider"
        markets.resolve_market.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_url_fails_before_io(self, markets, fake_sleep):
        service = self._service(markets, _registry(FakeProvider("grok", ANALYSIS)), fake_sleep)

        with pytest.raises(InvalidConfig):
            await service.analyze("https://example.com/nothing")
        markets.resolve_market.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_market_deadline(self, markets, fake_sleep):
        async def hang(reference):
            await asyncio.sleep(10)

        markets.resolve_market.side_effect = hang
        service = AnalysisService(
            markets,
            _registry(FakeProvider("grok", ANALYSIS)),
            ai_budget=_budget(),
            market_deadline=0.01,
            sleep=fake_sleep,
        )

        with pytest.raises(DeadlineExceededError) as exc_info:
            await service.analyze(URL)
        assert exc_info.value.dependency == "polymarket"
        assert exc_info.value.retryable is True


# ── Research ─────────────────────────────────────────────────────────


class TestResearchService:
    @pytest.mark.asyncio
    async def test_research_report(self, fake_sleep):
        connector = _research_connector()
        service = ResearchService(connector, _budget(), sleep=fake_sleep)

        report = await service.research("  What moves BTC this week?  ")

        assert report.research.citations[0].source == "news"
        assert report.metadata.provider_used == "polyfactual"
        connector.research.assert_awaited_once_with("What moves BTC this week?")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "x" * 11])
    async def test_query_length_validated(self, fake_sleep, query):
        connector = _research_connector()
        service = ResearchService(connector, _budget(), max_query_length=10, sleep=fake_sleep)

        with pytest.raises(InvalidConfig) as exc_info:
            await service.research(query)

        assert exc_info.value.field == "query"
        connector.research.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, fake_sleep):
        connector = _research_connector()
        connector.research.side_effect = [
            TransientCallFailure("timeout"),
            ResearchResult(answer="ok"),
        ]
        service = ResearchService(connector, _budget(), sleep=fake_sleep)

        report = await service.research("q")

        assert report.research.answer == "ok"
        assert report.metadata.retries == 1
        assert fake_sleep.delays == pytest.approx([0.1])


# ── Position tracking ────────────────────────────────────────────────


class TestPositionTrackingService:
    @pytest.mark.asyncio
    async def test_tracks_current_cycle_by_default(self, markets):
        markets.fetch_position.return_value = WalletPosition(
            wallet="0xwallet",
            market_id="0xcycle",
            holdings={"Yes": Holding(shares=100, avg_price=0.45), "No": Holding(shares=100, avg_price=0.50)},
        )
        service = PositionTrackingService(markets, market_deadline=5.0, default_series="btc-updown-15m")

        report = await service.track("0xwallet", now=1767225700)

        markets.resolve_current_cycle.assert_awaited_once_with("btc-updown-15m", 1767225700)
        assert report.assessment.pair_status == PairStatus.FULLY_PAIRED
        assert report.assessment.lock_state == LockState.PROFIT_LOCKED
        assert report.rebalance is None

    @pytest.mark.asyncio
    async def test_url_with_rebalance(self, markets):
        markets.fetch_position.return_value = WalletPosition(
            wallet="0xwallet",
            market_id="0xcond",
            holdings={"Yes": Holding(shares=100, avg_price=0.5), "No": Holding(shares=60, avg_price=0.4)},
        )
        service = PositionTrackingService(markets, market_deadline=5.0)

        report = await service.track("0xwallet", url=URL, rebalance_budget=50)

        markets.resolve_market.assert_awaited_once()
        markets.resolve_current_cycle.assert_not_awaited()
        (level,) = report.rebalance.levels
        assert level.side == "No"
        assert level.size == pytest.approx(18.0)

    @pytest.mark.asyncio
    async def test_resolved_market_has_no_rebalance(self, markets, make_market):
        markets.resolve_market.return_value = make_market(1.0, 0.0, status=MarketStatus.RESOLVED)
        markets.fetch_position.return_value = WalletPosition(
            wallet="w", market_id="0xmarket", holdings={"Yes": Holding(shares=10, avg_price=0.4)}
        )
        service = PositionTrackingService(markets, market_deadline=5.0)

        report = await service.track("w", url=URL, rebalance_budget=50)

        assert report.rebalance is None
        assert report.assessment.profit_lock == pytest.approx(6.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"wallet": ""},
            {"wallet": "w", "url": URL, "series": "btc-updown-15m"},
            {"wallet": "w", "rebalance_budget": 0},
        ],
    )
    async def test_invalid_requests(self, markets, kwargs):
        service = PositionTrackingService(markets, market_deadline=5.0)

        with pytest.raises(InvalidConfig):
            await service.track(**kwargs)
        markets.fetch_position.assert_not_awaited()


# ── Limit orders ─────────────────────────────────────────────────────


class TestLimitOrderService:
    @pytest.mark.asyncio
    async def test_plans_next_cycle(self, markets):
        service = LimitOrderService(markets, market_deadline=5.0, default_series="btc-updown-15m")

        result = await service.plan_orders(100, now=1767225700)

        markets.resolve_next_cycle.assert_awaited_once_with("btc-updown-15m", 1767225700)
        assert result.market.id == "0xnext"
        assert [(o.outcome, o.price, o.size) for o in result.orders] == [
            ("Yes", 0.6, 50.0),
            ("No", 0.4, 50.0),
        ]
        assert result.logs[0] == "Target series: btc-updown-15m (next cycle)"
        assert result.logs[-1].startswith("Completed in")

    @pytest.mark.asyncio
    async def test_ladder_on_explicit_market(self, markets):
        service = LimitOrderService(markets, market_deadline=5.0)

        result = await service.plan_orders(
            100,
            "LADDER",
            url=URL,
            config=StrategyConfig(price_levels=3, taper_factor=0.5),
        )

        assert result.plan.mode == OrderMode.LADDER
        assert len(result.orders) == 6
        assert sum(o.size for o in result.orders) == pytest.approx(100.0)
        markets.resolve_next_cycle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_bankroll_fails_before_io(self, markets):
        service = LimitOrderService(markets, market_deadline=5.0)

        with pytest.raises(InvalidConfig):
            await service.plan_orders(-1)
        markets.resolve_next_cycle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_mode(self, markets):
        service = LimitOrderService(markets, market_deadline=5.0)

        with pytest.raises(ValueError):
            await service.plan_orders(100, "martingale")
