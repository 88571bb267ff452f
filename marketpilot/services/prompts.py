"""Prompt construction for AI market analysis."""

from __future__ import annotations

from marketpilot.models import Market

DEFAULT_QUESTION = "Should I buy YES or NO on this prediction market?"

_TEMPLATE = """You are an experienced prediction market analyst. Review the market below and give a trading recommendation.

Market question: {question}
Platform: {platform}
Status: {status}
Closes: {expiry}
Volume: {volume}
Liquidity: {liquidity}

Outcomes (price = implied probability):
{outcomes}

User question: {user_question}

Answer with a single JSON object of this shape:
{{
  "recommendation": "BUY_YES" | "BUY_NO" | "NO_TRADE",
  "confidence": <number between 0.0 and 1.0>,
  "reasoning": "<explanation of the analysis>",
  "key_factors": ["<factor>", "..."]
}}

Keep it concise. Weigh market dynamics, liquidity and whether the current prices offer value."""


def _fmt(value: float | None) -> str:
    return "unknown" if value is None else f"{value:,.2f}"


def build_analysis_prompt(market: Market, question: str | None = None) -> str:
    outcomes = "\n".join(f"  - {o.label}: {o.price:.4f}" for o in market.outcomes)
    return _TEMPLATE.format(
        question=market.question,
        platform=market.platform.value,
        status=market.status.value,
        expiry=market.expiry.isoformat(),
        volume=_fmt(market.volume),
        liquidity=_fmt(market.liquidity),
        outcomes=outcomes,
        user_question=question or DEFAULT_QUESTION,
    )
