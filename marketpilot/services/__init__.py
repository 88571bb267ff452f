"""
Services — request-scoped orchestrations over the core.

`build_services(settings)` wires connectors, adapters and budgets from
`Settings`; tests construct the services directly with fakes instead.
"""

from __future__ import annotations

from dataclasses import dataclass

from marketpilot.config import Settings
from marketpilot.connectors.kalshi_connector import KalshiConnector
from marketpilot.connectors.polymarket_connector import PolymarketConnector
from marketpilot.connectors.registry import ProviderRegistry, build_provider_registry
from marketpilot.connectors.research_connector import ResearchConnector
from marketpilot.markets.adapters import KalshiAdapter, PolymarketAdapter
from marketpilot.markets.service import MarketService
from marketpilot.models import Platform
from marketpilot.services.analysis import AnalysisResult, AnalysisService
from marketpilot.services.limit_orders import LimitOrderResult, LimitOrderService
from marketpilot.services.position_tracking import PositionReport, PositionTrackingService
from marketpilot.services.research import ResearchReport, ResearchService

__all__ = [
    "AnalysisResult",
    "AnalysisService",
    "LimitOrderResult",
    "LimitOrderService",
    "PositionReport",
    "PositionTrackingService",
    "ResearchReport",
    "ResearchService",
    "Services",
    "build_services",
]


@dataclass
class Services:
    markets: MarketService
    providers: ProviderRegistry
    analysis: AnalysisService
    research: ResearchService
    positions: PositionTrackingService
    limit_orders: LimitOrderService

    async def close(self) -> None:
        await self.markets.close()
        await self.providers.close_all()
        await self.research.connector.close()


def build_services(settings: Settings) -> Services:
    market_budget = settings.market_budget()
    research_budget = settings.research_budget()

    markets = MarketService(
        {
            Platform.POLYMARKET: PolymarketAdapter(
                PolymarketConnector.from_urls(
                    settings.polymarket_gamma_url,
                    settings.polymarket_data_url,
                    api_key=settings.polymarket_gamma_api_key,
                )
            ),
            Platform.KALSHI: KalshiAdapter(
                KalshiConnector.from_url(
                    settings.kalshi_api_url, api_key_id=settings.kalshi_api_key_id
                )
            ),
        },
        market_budget.call,
        settings.cycle_config(),
    )
    providers = build_provider_registry(settings)
    research = ResearchService(
        ResearchConnector.from_url(
            settings.research_api_url,
            api_key=settings.research_api_key,
            timeout=settings.research_timeout,
        ),
        research_budget,
        max_query_length=settings.research_max_query_length,
    )

    return Services(
        markets=markets,
        providers=providers,
        analysis=AnalysisService(
            markets,
            providers,
            ai_budget=settings.ai_budget(),
            market_deadline=market_budget.deadline,
            research=research,
            primary_provider=settings.ai_primary_provider,
            fallback_provider=settings.ai_fallback_provider,
        ),
        research=research,
        positions=PositionTrackingService(
            markets,
            market_deadline=market_budget.deadline,
            default_series=settings.default_series,
        ),
        limit_orders=LimitOrderService(
            markets,
            market_deadline=market_budget.deadline,
            default_series=settings.default_series,
        ),
    )
