"""
LimitOrderService — plan limit orders for the upcoming cycle (or a given market).

Produces the plan and the unsigned `OrderRequest`s; submission is left to
an external `OrderSubmitter`. The step log mirrors what an operator would
want to read back after a run.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from marketpilot.errors import InvalidConfig
from marketpilot.markets.references import parse_reference
from marketpilot.markets.service import MarketService
from marketpilot.models import (
    Market,
    MarketReference,
    OrderMode,
    OrderPlan,
    OrderRequest,
    ResponseMetadata,
)
from marketpilot.orders.requests import build_order_requests
from marketpilot.orders.strategy import StrategyConfig, build_plan, validate_parameters
from marketpilot.services.base import Stopwatch, with_deadline

logger = structlog.get_logger(__name__)


class LimitOrderResult(BaseModel):
    plan: OrderPlan
    orders: list[OrderRequest]
    market: Market
    logs: list[str] = Field(default_factory=list)
    metadata: ResponseMetadata


class LimitOrderService:
    def __init__(
        self,
        markets: MarketService,
        *,
        market_deadline: float,
        default_series: str = "btc-updown-15m",
        strategy: StrategyConfig | None = None,
    ):
        self.markets = markets
        self.market_deadline = market_deadline
        self.default_series = default_series
        self.strategy = strategy or StrategyConfig()

    async def plan_orders(
        self,
        bankroll: float,
        mode: OrderMode | str = OrderMode.SIMPLE,
        *,
        series: str | None = None,
        reference: MarketReference | None = None,
        url: str | None = None,
        config: StrategyConfig | None = None,
        now: datetime | float | None = None,
    ) -> LimitOrderResult:
        watch = Stopwatch()
        mode = OrderMode(mode)
        config = config or self.strategy
        validate_parameters(bankroll, mode, config)
        if sum(x is not None for x in (url, reference, series)) > 1:
            raise InvalidConfig("pass only one of url, reference or series", field="market")
        if url is not None:
            reference = parse_reference(url)

        logs: list[str] = []
        if reference is not None:
            logs.append(f"Target market: {reference.platform.value}/{reference.identifier}")
            lookup = self.markets.resolve_market(reference)
            dependency = reference.platform.value
        else:
            series = series or self.default_series
            logs.append(f"Target series: {series} (next cycle)")
            lookup = self.markets.resolve_next_cycle(series, now)
            dependency = "polymarket"

        market = await with_deadline(lookup, self.market_deadline, dependency=dependency)
        logs.append(f"Fetched market: {market.question} ({market.id})")
        logs.append(
            "Prices: " + ", ".join(f"{o.label} {o.price:.4f}" for o in market.outcomes)
        )

        plan = build_plan(bankroll, mode, market, config)
        logs.append(
            f"Mode: {mode.value}, {len(plan.levels)} level(s), "
            f"committing {plan.total_committed:.2f} of {bankroll:.2f}"
        )
        for level in plan.levels:
            logs.append(
                f"{level.side} L{level.level_index}: {level.size:.2f} USD @ {level.price:.2f} "
                f"({level.shares} shares)"
            )
        logs.extend(f"Warning: {w}" for w in plan.warnings)

        orders = build_order_requests(plan, market)
        logs.append(f"Completed in {watch.elapsed_ms}ms")

        logger.info(
            "limit_orders_planned",
            market_id=market.id,
            mode=mode.value,
            orders=len(orders),
            total_committed=plan.total_committed,
            execution_time_ms=watch.elapsed_ms,
        )
        return LimitOrderResult(
            plan=plan,
            orders=orders,
            market=market,
            logs=logs,
            metadata=ResponseMetadata(execution_time_ms=watch.elapsed_ms),
        )
