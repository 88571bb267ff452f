"""
Connectors — httpx clients for every external service MarketPilot talks to.
"""

from marketpilot.connectors.ai_connector import (
    AIProvider,
    GrokConnector,
    OpenAICompatibleConnector,
    OpenAIConnector,
)
from marketpilot.connectors.base_connector import BaseConnector, ConnectorInfo, build_http_client
from marketpilot.connectors.kalshi_connector import KalshiConnector
from marketpilot.connectors.polymarket_connector import PolymarketConnector
from marketpilot.connectors.registry import ProviderRegistry, build_provider_registry
from marketpilot.connectors.research_connector import ResearchConnector

__all__ = [
    "AIProvider",
    "BaseConnector",
    "ConnectorInfo",
    "GrokConnector",
    "KalshiConnector",
    "OpenAICompatibleConnector",
    "OpenAIConnector",
    "PolymarketConnector",
    "ProviderRegistry",
    "ResearchConnector",
    "build_http_client",
    "build_provider_registry",
]
