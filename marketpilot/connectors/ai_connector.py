"""
AI providers — Chat-completion clients that answer with a structured `AiAnalysis`.

Both supported providers (xAI Grok and OpenAI) speak the OpenAI chat
completions protocol, so they share `OpenAICompatibleConnector` and differ
only in base URL, model and name. Providers never retry themselves; the
analysis service wraps `infer()` in `resilience.call` with the other
provider as fallback.

Adding a provider means subclassing `AIProvider` and registering it in the
`ProviderRegistry`; the resilience layer does not change.
"""

from __future__ import annotations

import json
from abc import abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from marketpilot.connectors.base_connector import BaseConnector, build_http_client
from marketpilot.errors import MalformedResponseError
from marketpilot.models import AiAnalysis

logger = structlog.get_logger(__name__)


class AIProvider(BaseConnector):
    """Contract for AI inference backends: `infer(prompt, context) -> AiAnalysis`."""

    @abstractmethod
    async def infer(self, prompt: str, context: dict[str, Any] | None = None) -> AiAnalysis:
        ...


class OpenAICompatibleConnector(AIProvider):
    """Chat completions with `response_format=json_object`, parsed into `AiAnalysis`."""

    provider_name = "openai_compatible"
    provider_description = "OpenAI-compatible chat completions"

    def __init__(self, http: httpx.AsyncClient, *, model: str, temperature: float = 0.7):
        super().__init__(http)
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_settings(
        cls,
        base_url: str,
        api_key: str,
        *,
        model: str,
        temperature: float = 0.7,
        timeout: float = 120.0,
    ) -> OpenAICompatibleConnector:
        http = build_http_client(
            base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        return cls(http, model=model, temperature=temperature)

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def description(self) -> str:
        return self.provider_description

    async def infer(self, prompt: str, context: dict[str, Any] | None = None) -> AiAnalysis:
        messages = []
        if context:
            messages.append(
                {"role": "system", "content": json.dumps(context, default=str)}
            )
        messages.append({"role": "user", "content": prompt})

        body = {
            "model": self.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
        }
        data = await self._request("POST", "/chat/completions", json=body)
        return self._parse(data)

    def _parse(self, data: dict) -> AiAnalysis:
        try:
            content = data["choices"][0]["message"]["content"]
            analysis = AiAnalysis.model_validate(json.loads(content))
        except (KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
            logger.warning("ai_response_malformed", provider=self.name, error=str(e))
            raise MalformedResponseError(
                f"{self.name} returned an unusable analysis",
                provider=self.name,
                detail=str(e),
            ) from e

        logger.info(
            "ai_analysis_parsed",
            provider=self.name,
            model=self.model,
            recommendation=analysis.recommendation.value,
            confidence=analysis.confidence,
        )
        return analysis


class GrokConnector(OpenAICompatibleConnector):
    provider_name = "grok"
    provider_description = "xAI Grok — chat completions"


class OpenAIConnector(OpenAICompatibleConnector):
    provider_name = "openai"
    provider_description = "OpenAI — chat completions"
