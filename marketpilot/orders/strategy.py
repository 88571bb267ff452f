"""
Order strategy engine — turn a bankroll into priced limit-buy levels.

Two modes on binary markets:

  SIMPLE  straddle: one level per side at that side's current price,
          half the bankroll each.
  LADDER  `price_levels` prices per side, starting at the current price and
          stepping by `ladder_step` toward 1 on the affirmative (Yes/Up)
          side and toward 0 on the negative side. Sizes taper
          geometrically (`base · taper^(i−1)`), so the level nearest the
          current price gets the most.

Money is allocated in integer cents: the bankroll is floored to cents,
split evenly between sides (odd cent to the affirmative side), and each
side's cent remainder goes to its first level. Trailing ladder levels that
would get 0 cents are dropped with a warning. `total_committed` therefore
never exceeds the bankroll.

Plans are pure functions of their inputs: identical inputs yield identical
plans.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import structlog

from marketpilot.errors import InvalidConfig
from marketpilot.models import (
    Market,
    MarketStatus,
    OrderLevel,
    OrderMode,
    OrderPlan,
    PairStatus,
    PositionAssessment,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StrategyConfig:
    """Ladder shape. Ignored by SIMPLE except for `tick_size`."""

    price_levels: int = 5
    taper_factor: float = 0.5
    ladder_step: float = 0.02
    tick_size: float = 0.01


# ── Validation ───────────────────────────────────────────────────────


def validate_parameters(bankroll: float, mode: OrderMode, config: StrategyConfig) -> None:
    """Raise InvalidConfig for bad bankroll or ladder parameters. No market needed."""
    if not math.isfinite(bankroll) or bankroll <= 0:
        raise InvalidConfig(f"bankroll must be > 0, got {bankroll}", field="bankroll")
    if not 0 < config.tick_size < 0.5:
        raise InvalidConfig("tick_size must be in (0, 0.5)", field="tick_size")
    if mode == OrderMode.LADDER:
        if config.price_levels < 1:
            raise InvalidConfig("price_levels must be >= 1", field="price_levels")
        if not 0 < config.taper_factor < 1:
            raise InvalidConfig("taper_factor must be in (0, 1)", field="taper_factor")
        if config.ladder_step <= 0:
            raise InvalidConfig("ladder_step must be > 0", field="ladder_step")


def _validate_market(market: Market) -> None:
    if not market.is_binary:
        raise InvalidConfig(
            f"Market {market.id} has {len(market.outcomes)} outcomes; only binary markets are supported",
            field="market",
        )
    if market.status == MarketStatus.RESOLVED:
        raise InvalidConfig(f"Market {market.id} is resolved", field="market")


# ── Price & money helpers ────────────────────────────────────────────


def _to_ticks(price: float, tick: float) -> int:
    return round(price / tick)


def _clamp_ticks(ticks: int, tick: float) -> int:
    return min(max(ticks, 1), round(1 / tick) - 1)


def _price(ticks: int, tick: float) -> float:
    return round(ticks * tick, 10)


def _split_cents(total: int, weights: list[float]) -> list[int]:
    """Floor each weighted share of `total`; the remainder goes to the first slot."""
    weight_sum = sum(weights)
    parts = [math.floor(total * w / weight_sum) for w in weights]
    parts[0] += total - sum(parts)
    return parts


def _side_budgets(bankroll: float) -> tuple[int, int]:
    cents = math.floor(bankroll * 100 + 1e-9)
    negative = cents // 2
    return cents - negative, negative


# ── Plans ────────────────────────────────────────────────────────────


def build_plan(
    bankroll: float,
    mode: OrderMode,
    market: Market,
    config: StrategyConfig | None = None,
) -> OrderPlan:
    """Build a SIMPLE or LADDER plan for `bankroll` USD on a binary `market`.

    Raises:
        InvalidConfig: bad bankroll or ladder parameters, non-binary or
            resolved market, or a bankroll that cannot fund one level per side.
    """
    config = config or StrategyConfig()
    mode = OrderMode(mode)
    validate_parameters(bankroll, mode, config)
    _validate_market(market)

    warnings: list[str] = []
    levels: list[OrderLevel] = []
    budgets = _side_budgets(bankroll)
    directions = (1, -1)

    for outcome, budget, direction in zip(market.outcomes, budgets, directions):
        if mode == OrderMode.SIMPLE:
            prices = _ladder_ticks(outcome.price, 1, direction, config, outcome.label, warnings)
            weights = [1.0]
        else:
            prices = _ladder_ticks(
                outcome.price, config.price_levels, direction, config, outcome.label, warnings
            )
            weights = [config.taper_factor**i for i in range(len(prices))]

        if budget <= 0:
            raise InvalidConfig(
                f"bankroll {bankroll} is too small to fund a level on {outcome.label}",
                field="bankroll",
            )
        funded = _fund_levels(prices, weights, budget, outcome.label, config.tick_size, warnings)

        for index, (ticks, cents) in enumerate(funded, start=1):
            levels.append(
                OrderLevel(
                    side=outcome.label,
                    price=_price(ticks, config.tick_size),
                    size=cents / 100,
                    level_index=index,
                )
            )

    total_cents = sum(budgets)
    if total_cents / 100 > bankroll + 1e-9:
        raise InvalidConfig(
            f"commitments {total_cents / 100} exceed bankroll {bankroll}", field="bankroll"
        )

    plan = OrderPlan(
        mode=mode,
        bankroll=bankroll,
        levels=tuple(levels),
        total_committed=total_cents / 100,
        warnings=tuple(warnings),
    )
    logger.info(
        "order_plan_built",
        market_id=market.id,
        mode=mode.value,
        bankroll=bankroll,
        levels=len(plan.levels),
        total_committed=plan.total_committed,
        warnings=len(warnings),
    )
    return plan


def _ladder_ticks(
    current: float,
    count: int,
    direction: int,
    config: StrategyConfig,
    label: str,
    warnings: list[str],
) -> list[int]:
    """Tick prices for one side, clamped to [tick, 1 − tick], duplicates dropped."""
    tick = config.tick_size
    kept: list[int] = []
    for i in range(count):
        raw = current + direction * config.ladder_step * i
        ticks = _to_ticks(raw, tick)
        clamped = _clamp_ticks(ticks, tick)
        if clamped != ticks:
            warnings.append(
                f"{label} level {i + 1}: price {raw:.4f} clamped to {_price(clamped, tick)}"
            )
        if clamped in kept:
            message = f"{label} level {i + 1}: duplicate price {_price(clamped, tick)} dropped"
            warnings.append(message)
            logger.warning("ladder_level_dropped", side=label, level=i + 1, price=_price(clamped, tick))
            continue
        kept.append(clamped)
    return kept


def _fund_levels(
    ticks: list[int],
    weights: list[float],
    budget: int,
    label: str,
    tick: float,
    warnings: list[str],
) -> list[tuple[int, int]]:
    """Split `budget` cents over the levels, dropping the smallest levels that round to 0."""
    ticks, weights = list(ticks), list(weights)
    cents = _split_cents(budget, weights)
    while min(cents) <= 0:
        dropped = ticks.pop()
        weights.pop()
        warnings.append(
            f"{label} level {len(ticks) + 1}: price {_price(dropped, tick)} dropped, "
            f"budget too small to fund it"
        )
        logger.warning(
            "ladder_level_dropped", side=label, level=len(ticks) + 1, price=_price(dropped, tick), reason="unfunded"
        )
        cents = _split_cents(budget, weights)
    return list(zip(ticks, cents))


def rebalance_plan(
    assessment: PositionAssessment,
    market: Market,
    budget: float,
    config: StrategyConfig | None = None,
) -> OrderPlan:
    """Buy the lighter side's share deficit at its current price, capped by `budget`.

    Returns an empty plan when nothing is held or the pair is already
    matched.
    """
    config = config or StrategyConfig()
    if not math.isfinite(budget) or budget <= 0:
        raise InvalidConfig(f"budget must be > 0, got {budget}", field="budget")
    _validate_market(market)

    empty = OrderPlan(mode=OrderMode.SIMPLE, bankroll=budget)
    shares = {label: assessment.position.holding(label).shares for label in market.labels}
    if assessment.pair_status == PairStatus.FULLY_PAIRED or not any(shares.values()):
        return empty

    heavy = max(shares.values())
    light_label = min(shares, key=shares.get)
    deficit = heavy - shares[light_label]

    tick = config.tick_size
    ticks = _clamp_ticks(_to_ticks(market.outcome(light_label).price, tick), tick)
    price = _price(ticks, tick)

    needed_cents = math.ceil(deficit * price * 100 - 1e-9)
    budget_cents = math.floor(budget * 100 + 1e-9)
    cents = min(needed_cents, budget_cents)

    warnings: list[str] = []
    if cents < needed_cents:
        warnings.append(
            f"budget {budget} covers {cents / 100} of the {needed_cents / 100} needed to pair {light_label}"
        )
    if cents <= 0:
        return empty.model_copy(update={"warnings": tuple(warnings)})

    level = OrderLevel(side=light_label, price=price, size=cents / 100, level_index=1)
    logger.info(
        "rebalance_plan_built",
        market_id=market.id,
        side=light_label,
        deficit_shares=round(deficit, 4),
        price=price,
        size=level.size,
    )
    return OrderPlan(
        mode=OrderMode.SIMPLE,
        bankroll=budget,
        levels=(level,),
        total_committed=level.size,
        warnings=tuple(warnings),
    )
