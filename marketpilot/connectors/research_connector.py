"""
ResearchConnector — Long-running research queries against the Polyfactual API.

A research call can take minutes; it runs under its own budget (see
`Settings.research_budget`) so it never shares deadlines with interactive
market lookups.
"""

from __future__ import annotations

import httpx
import structlog

from marketpilot.connectors.base_connector import BaseConnector, build_http_client
from marketpilot.models import Citation, ResearchResult

logger = structlog.get_logger(__name__)

RESEARCH_API_URL = "https://api.polyfactual.com/v1"


class ResearchConnector(BaseConnector):
    """Polyfactual research client."""

    @classmethod
    def from_url(
        cls,
        base_url: str = RESEARCH_API_URL,
        *,
        api_key: str = "",
        timeout: float = 300.0,
    ) -> ResearchConnector:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        return cls(build_http_client(base_url, timeout=timeout, headers=headers))

    @property
    def name(self) -> str:
        return "polyfactual"

    @property
    def description(self) -> str:
        return "Polyfactual research API — cited answers to free-form questions"

    async def research(self, query: str) -> ResearchResult:
        logger.info("research_request", query_length=len(query))
        data = await self._request("POST", "/research", json={"query": query})
        return ResearchResult(
            answer=data["answer"],
            citations=[
                Citation(
                    source=c["source"],
                    url=c.get("url"),
                    relevance=c.get("relevance") or 0.0,
                )
                for c in data.get("citations", [])
            ],
        )
