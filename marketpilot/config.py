"""
Configuration — Environment-backed settings and the explicit structs the core runs on.

`Settings` is the only place that reads the environment (env vars and
`.env`). Core components never touch it directly: they receive plain
`CallConfig` / `CycleConfig` values built here, so every piece of core
logic can be constructed and tested with literal configuration.

Budgets:
  - market:   interactive lookups (market data, holdings) — short timeouts
  - ai:       model inference — long per-attempt timeout, failover enabled
  - research: long-running research queries — single long attempt
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from marketpilot.utils.resilience import CallConfig


@dataclass(frozen=True)
class CycleConfig:
    """Tolerances for recurring-market cycle resolution (seconds)."""

    skew_tolerance: int = 90
    boundary_tolerance: int = 90


@dataclass(frozen=True)
class Budget:
    """A retry policy plus the outer deadline a service imposes on the whole request."""

    call: CallConfig
    deadline: float


class Settings(BaseSettings):
    """All MarketPilot settings, loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        env_prefix="MARKETPILOT_",
        extra="ignore",
    )

    # ── Process ──────────────────────────────────────────────────────
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Polymarket ───────────────────────────────────────────────────
    polymarket_gamma_url: str = "https://gamma-api.polymarket.com"
    polymarket_data_url: str = "https://data-api.polymarket.com"
    polymarket_gamma_api_key: str = ""

    # ── Kalshi ───────────────────────────────────────────────────────
    kalshi_api_url: str = "https://api.elections.kalshi.com/trade-api/v2"
    kalshi_api_key_id: str = ""

    # ── AI Providers ─────────────────────────────────────────────────
    grok_api_key: str = ""
    grok_api_url: str = "https://api.x.ai/v1"
    grok_model: str = "grok-beta"
    openai_api_key: str = ""
    openai_api_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    ai_primary_provider: str = "grok"
    ai_fallback_provider: str = "openai"
    ai_temperature: float = 0.7

    # ── Research ─────────────────────────────────────────────────────
    research_api_key: str = ""
    research_api_url: str = "https://api.polyfactual.com/v1"
    research_max_query_length: int = 1000

    # ── Resilience: market budget ────────────────────────────────────
    market_max_attempts: int = 3
    market_base_delay: float = 0.1
    market_max_delay: float = 2.0
    market_timeout: float = 10.0
    market_deadline: float = 30.0

    # ── Resilience: AI budget ────────────────────────────────────────
    ai_max_attempts: int = 3
    ai_base_delay: float = 0.1
    ai_max_delay: float = 5.0
    ai_timeout: float = 120.0
    # primary and fallback may each run every attempt to its timeout
    ai_deadline: float = 780.0

    # ── Resilience: research budget ──────────────────────────────────
    research_max_attempts: int = 1
    research_base_delay: float = 1.0
    research_max_delay: float = 1.0
    research_timeout: float = 300.0
    research_deadline: float = 330.0

    # ── Recurring markets ────────────────────────────────────────────
    cycle_skew_tolerance: int = 90
    cycle_boundary_tolerance: int = 90
    default_series: str = "btc-updown-15m"

    def market_budget(self) -> Budget:
        return Budget(
            call=CallConfig(
                max_attempts=self.market_max_attempts,
                base_delay=self.market_base_delay,
                max_delay=self.market_max_delay,
                timeout=self.market_timeout,
            ),
            deadline=self.market_deadline,
        )

    def ai_budget(self) -> Budget:
        return Budget(
            call=CallConfig(
                max_attempts=self.ai_max_attempts,
                base_delay=self.ai_base_delay,
                max_delay=self.ai_max_delay,
                timeout=self.ai_timeout,
            ),
            deadline=self.ai_deadline,
        )

    def research_budget(self) -> Budget:
        return Budget(
            call=CallConfig(
                max_attempts=self.research_max_attempts,
                base_delay=self.research_base_delay,
                max_delay=self.research_max_delay,
                timeout=self.research_timeout,
            ),
            deadline=self.research_deadline,
        )

    def cycle_config(self) -> CycleConfig:
        return CycleConfig(
            skew_tolerance=self.cycle_skew_tolerance,
            boundary_tolerance=self.cycle_boundary_tolerance,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor — parsed once, cached forever."""
    return Settings()
