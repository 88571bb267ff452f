"""
ResearchService — free-form research questions under the long-running budget.
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import BaseModel

from marketpilot.config import Budget
from marketpilot.connectors.research_connector import ResearchConnector
from marketpilot.errors import InvalidConfig
from marketpilot.models import ResearchResult, ResponseMetadata
from marketpilot.services.base import Stopwatch, with_deadline
from marketpilot.utils.resilience import CallResult, Operation, Sleeper, call

logger = structlog.get_logger(__name__)


class ResearchReport(BaseModel):
    research: ResearchResult
    metadata: ResponseMetadata


class ResearchService:
    def __init__(
        self,
        connector: ResearchConnector,
        budget: Budget,
        *,
        max_query_length: int = 1000,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.connector = connector
        self.budget = budget
        self.max_query_length = max_query_length
        self._sleep = sleep

    def validate_query(self, query: str) -> str:
        query = (query or "").strip()
        if not 1 <= len(query) <= self.max_query_length:
            raise InvalidConfig(
                f"query must be 1..{self.max_query_length} characters, got {len(query)}",
                field="query",
            )
        return query

    async def fetch(self, query: str) -> CallResult[ResearchResult]:
        """Run one research query through the resilience layer, within the deadline."""
        query = self.validate_query(query)
        return await with_deadline(
            call(
                Operation(self.connector.name, lambda: self.connector.research(query)),
                self.budget.call,
                sleep=self._sleep,
            ),
            self.budget.deadline,
            dependency=self.connector.name,
        )

    async def research(self, query: str) -> ResearchReport:
        watch = Stopwatch()
        result = await self.fetch(query)
        logger.info(
            "research_complete",
            citations=len(result.value.citations),
            execution_time_ms=watch.elapsed_ms,
        )
        return ResearchReport(
            research=result.value,
            metadata=ResponseMetadata(
                execution_time_ms=watch.elapsed_ms,
                provider_used=result.provider,
                retries=result.retries,
            ),
        )
