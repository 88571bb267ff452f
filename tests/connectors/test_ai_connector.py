"""
Tests for the AI inference providers and the provider registry.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from marketpilot.config import Settings
from marketpilot.connectors.ai_connector import GrokConnector, OpenAIConnector
from marketpilot.connectors.registry import ProviderRegistry, build_provider_registry
from marketpilot.errors import InvalidConfig, MalformedResponseError
from marketpilot.models import Recommendation


def _make_response(json_data=None, status_code: int = 200) -> httpx.Response:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.text = ""
    resp.json.return_value = json_data if json_data is not None else {}
    return resp


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _make_provider(cls=GrokConnector, content: str | None = None):
    http = AsyncMock(spec=httpx.AsyncClient)
    http.request = AsyncMock(return_value=_make_response(_completion(content or "{}")))
    http.base_url = httpx.URL("https://api.x.ai/v1")
    return cls(http, model="grok-test", temperature=0.2)


# ── Inference ────────────────────────────────────────────────────────


class TestInfer:
    @pytest.mark.asyncio
    async def test_parses_json_analysis(self):
        content = json.dumps(
            {
                "recommendation": "BUY_NO",
                "confidence": 0.65,
                "reasoning": "Overpriced upside.",
                "key_factors": ["funding rates"],
            }
        )
        grok = _make_provider(content=content)

        analysis = await grok.infer("Analyze this", {"market_id": "0xcond"})

        assert analysis.recommendation == Recommendation.BUY_NO
        assert analysis.confidence == pytest.approx(0.65)
        assert analysis.key_factors == ["funding rates"]

    @pytest.mark.asyncio
    async def test_request_body(self):
        grok = _make_provider(
            content=json.dumps({"recommendation": "NO_TRADE", "confidence": 0.1, "reasoning": "flat"})
        )

        await grok.infer("Analyze this", {"market_id": "0xcond"})

        args, kwargs = grok._http.request.call_args
        assert args == ("POST", "/chat/completions")
        body = kwargs["json"]
        assert body["model"] == "grok-test"
        assert body["temperature"] == 0.2
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        assert json.loads(body["messages"][0]["content"]) == {"market_id": "0xcond"}
        assert body["messages"][-1] == {"role": "user", "content": "Analyze this"}

    @pytest.mark.asyncio
    async def test_no_context_sends_only_prompt(self):
        grok = _make_provider(
            content=json.dumps({"recommendation": "NO_TRADE", "confidence": 0.1, "reasoning": "flat"})
        )

        await grok.infer("Analyze this")

        _, kwargs = grok._http.request.call_args
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "Analyze this"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            json.dumps({"recommendation": "HODL", "confidence": 0.5, "reasoning": "x"}),
            json.dumps({"recommendation": "BUY_YES", "confidence": 1.5, "reasoning": "x"}),
            json.dumps({"confidence": 0.5}),
        ],
    )
    async def test_unusable_content_is_malformed(self, content):
        grok = _make_provider(content=content)

        with pytest.raises(MalformedResponseError) as exc_info:
            await grok.infer("Analyze this")
        assert exc_info.value.provider == "grok"

    @pytest.mark.asyncio
    async def test_missing_choices_is_malformed(self):
        grok = _make_provider()
        grok._http.request.return_value = _make_response({"error": "overloaded"})

        with pytest.raises(MalformedResponseError):
            await grok.infer("Analyze this")


# ── Registry ─────────────────────────────────────────────────────────


class TestProviderRegistry:
    def test_register_and_get(self):
        registry = ProviderRegistry()
        grok = _make_provider(GrokConnector)
        openai = _make_provider(OpenAIConnector)
        registry.register(grok)
        registry.register(openai)

        assert registry.get("grok") is grok
        assert registry.names == ["grok", "openai"]
        assert "openai" in registry
        assert len(registry) == 2
        assert [info.name for info in registry.list_all()] == ["grok", "openai"]

    def test_unknown_provider(self):
        with pytest.raises(InvalidConfig) as exc_info:
            ProviderRegistry().get("claude")
        assert exc_info.value.field == "provider"

    @pytest.mark.asyncio
    async def test_health_check_all(self):
        registry = ProviderRegistry()
        registry.register(_make_provider(GrokConnector))

        assert await registry.health_check_all() == {"grok": True}

    @pytest.mark.asyncio
    async def test_close_all(self):
        registry = ProviderRegistry()
        grok = _make_provider(GrokConnector)
        registry.register(grok)

        await registry.close_all()

        grok._http.aclose.assert_awaited_once()

    def test_only_configured_providers_registered(self):
        settings = Settings(_env_file=None, grok_api_key="xai-key", openai_api_key="")

        registry = build_provider_registry(settings)

        assert registry.names == ["grok"]
