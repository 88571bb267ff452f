"""
ProviderRegistry — Lookup and lifecycle for AI inference providers.

Services ask the registry for providers by name ("grok", "openai") so the
primary/fallback pair is a configuration choice, not code.

Usage:
    registry = build_provider_registry(get_settings())
    primary = registry.get("grok")
    health = await registry.health_check_all()
    # {"grok": True, "openai": False}
"""

from __future__ import annotations

import structlog

from marketpilot.config import Settings
from marketpilot.connectors.ai_connector import AIProvider, GrokConnector, OpenAIConnector
from marketpilot.connectors.base_connector import ConnectorInfo
from marketpilot.errors import InvalidConfig

logger = structlog.get_logger(__name__)


class ProviderRegistry:
    """Registry of AI providers keyed by name."""

    def __init__(self):
        self._providers: dict[str, AIProvider] = {}

    def register(self, provider: AIProvider) -> None:
        if provider.name in self._providers:
            logger.warning("provider_already_registered", name=provider.name, replacing=True)
        self._providers[provider.name] = provider
        logger.info("provider_registered", name=provider.name, description=provider.description)

    def get(self, name: str) -> AIProvider:
        """Get a provider by name. Unknown names are a caller error."""
        if name not in self._providers:
            raise InvalidConfig(
                f"AI provider '{name}' not found. Available: {self.names}",
                field="provider",
            )
        return self._providers[name]

    def list_all(self) -> list[ConnectorInfo]:
        return [p.get_info() for p in self._providers.values()]

    async def health_check_all(self) -> dict[str, bool]:
        results = {}
        for name, provider in self._providers.items():
            try:
                results[name] = await provider.health_check()
            except Exception as e:
                logger.warning("provider_health_check_failed", name=name, error=str(e))
                results[name] = False
        return results

    async def close_all(self) -> None:
        for provider in self._providers.values():
            await provider.close()

    @property
    def names(self) -> list[str]:
        return list(self._providers.keys())

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    """Register every provider that has an API key configured."""
    registry = ProviderRegistry()
    timeout = settings.ai_timeout

    if settings.grok_api_key:
        registry.register(
            GrokConnector.from_settings(
                settings.grok_api_url,
                settings.grok_api_key,
                model=settings.grok_model,
                temperature=settings.ai_temperature,
                timeout=timeout,
            )
        )
    if settings.openai_api_key:
        registry.register(
            OpenAIConnector.from_settings(
                settings.openai_api_url,
                settings.openai_api_key,
                model=settings.openai_model,
                temperature=settings.ai_temperature,
                timeout=timeout,
            )
        )

    logger.info("providers_registered", count=len(registry), names=registry.names)
    return registry
