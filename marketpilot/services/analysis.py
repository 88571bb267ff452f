"""
AnalysisService — AI recommendation for a market, with optional research.

Flow:
  1. parse the market URL and pick providers (caller errors surface here,
     before any I/O)
  2. resolve the market under the market budget
  3. run AI inference (primary → fallback) and, if asked, research
     concurrently

If inference fails after the market was fetched, the raised error carries
`partial={"market": ...}` so the caller can still show the market.
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import BaseModel

from marketpilot.config import Budget
from marketpilot.connectors.registry import ProviderRegistry
from marketpilot.errors import MarketPilotError
from marketpilot.markets.references import parse_reference
from marketpilot.markets.service import MarketService
from marketpilot.models import AiAnalysis, Market, Recommendation, ResearchResult, ResponseMetadata
from marketpilot.services.base import Stopwatch, with_deadline
from marketpilot.services.prompts import build_analysis_prompt
from marketpilot.services.research import ResearchService
from marketpilot.utils.resilience import CallResult, Operation, Sleeper, call

logger = structlog.get_logger(__name__)


class AnalysisResult(BaseModel):
    recommendation: Recommendation
    analysis: AiAnalysis
    market: Market
    research: ResearchResult | None = None
    research_error: dict | None = None
    metadata: ResponseMetadata


class AnalysisService:
    def __init__(
        self,
        markets: MarketService,
        providers: ProviderRegistry,
        *,
        ai_budget: Budget,
        market_deadline: float,
        research: ResearchService | None = None,
        primary_provider: str = "grok",
        fallback_provider: str | None = "openai",
        sleep: Sleeper = asyncio.sleep,
    ):
        self.markets = markets
        self.providers = providers
        self.ai_budget = ai_budget
        self.market_deadline = market_deadline
        self.research_service = research
        self.primary_provider = primary_provider
        self.fallback_provider = fallback_provider
        self._sleep = sleep

    async def analyze(
        self,
        url: str,
        question: str | None = None,
        provider: str | None = None,
        include_research: bool = False,
    ) -> AnalysisResult:
        watch = Stopwatch()
        reference = parse_reference(url)
        primary, fallback = self._select_providers(provider)
        if include_research and self.research_service is not None and question:
            self.research_service.validate_query(question)

        market = await with_deadline(
            self.markets.resolve_market(reference),
            self.market_deadline,
            dependency=reference.platform.value,
        )
        prompt = build_analysis_prompt(market, question)

        tasks = [self._infer(prompt, market, primary, fallback)]
        if include_research and self.research_service is not None:
            tasks.append(self.research_service.fetch(question or market.question))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        ai_result = results[0]
        research_outcome = results[1] if len(results) > 1 else None

        if isinstance(ai_result, Exception):
            if isinstance(ai_result, MarketPilotError):
                ai_result.component = ai_result.component or "analysis"
                ai_result.partial = {"market": market.model_dump(mode="json")}
                if isinstance(research_outcome, CallResult):
                    ai_result.partial["research"] = research_outcome.value.model_dump(mode="json")
            logger.error("analysis_failed", market_id=market.id, error=str(ai_result))
            raise ai_result

        research, research_error = None, None
        if isinstance(research_outcome, MarketPilotError):
            logger.warning("analysis_research_failed", market_id=market.id, error=str(research_outcome))
            research_error = research_outcome.to_dict()
        elif isinstance(research_outcome, Exception):
            raise research_outcome
        elif research_outcome is not None:
            research = research_outcome.value

        analysis = ai_result.value
        logger.info(
            "analysis_complete",
            market_id=market.id,
            provider=ai_result.provider,
            recommendation=analysis.recommendation.value,
            confidence=analysis.confidence,
            retries=ai_result.retries,
            execution_time_ms=watch.elapsed_ms,
        )
        return AnalysisResult(
            recommendation=analysis.recommendation,
            analysis=analysis,
            market=market,
            research=research,
            research_error=research_error,
            metadata=ResponseMetadata(
                execution_time_ms=watch.elapsed_ms,
                provider_used=ai_result.provider,
                retries=ai_result.retries,
            ),
        )

    def _select_providers(self, requested: str | None) -> tuple[str, str | None]:
        primary = requested or self.primary_provider
        self.providers.get(primary)
        fallback = self.fallback_provider
        if fallback == primary or fallback not in self.providers:
            fallback = None
        return primary, fallback

    async def _infer(
        self, prompt: str, market: Market, primary: str, fallback: str | None
    ) -> CallResult[AiAnalysis]:
        context = {"market_id": market.id, "platform": market.platform.value}
        primary_provider = self.providers.get(primary)
        config = self.ai_budget.call
        if fallback is not None:
            fallback_provider = self.providers.get(fallback)
            config = config.with_fallback(
                Operation(fallback, lambda: fallback_provider.infer(prompt, context))
            )

        return await with_deadline(
            call(
                Operation(primary, lambda: primary_provider.infer(prompt, context)),
                config,
                sleep=self._sleep,
            ),
            self.ai_budget.deadline,
            dependency=primary,
        )
