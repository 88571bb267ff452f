#!/usr/bin/env python3
"""
MarketPilot CLI — Operator tools for the trading core.

Usage:
    python -m marketpilot.cli cycle btc-updown-15m [--at 2026-01-01T00:14:00Z]
    python -m marketpilot.cli plan 100 --mode ladder --price 0.55 [--levels 5 --taper 0.5]
    python -m marketpilot.cli analyze https://polymarket.com/event/<slug> [--research]
    python -m marketpilot.cli track <wallet> [--url <market url> | --series btc-updown-15m]
    python -m marketpilot.cli orders 100 --mode simple [--series btc-updown-15m]

`cycle` and `plan` are offline: no network, no credentials. The other
commands read credentials from MARKETPILOT_* environment variables.
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from marketpilot.config import CycleConfig, get_settings
from marketpilot.errors import InvalidConfig, MarketPilotError
from marketpilot.logging import configure_logging
from marketpilot.markets.cycles import CycleSeries, current_cycle
from marketpilot.models import Market, MarketStatus, OrderMode, Outcome, Platform
from marketpilot.orders.strategy import StrategyConfig, build_plan


def _parse_at(value: str | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.isdigit():
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def show_cycle(series_prefix: str, at: str | None, skew: int) -> None:
    """Print the current and next cycle of a series."""
    now = _parse_at(at)
    series = CycleSeries.from_prefix(series_prefix)
    window = current_cycle(series, now, CycleConfig(skew_tolerance=skew))

    print(f"Series:   {series.prefix} (every {series.interval}s)")
    print(f"At:       {now.isoformat()}")
    for name, w in (("Current", window), ("Next", window.next())):
        print(f"{name + ':':<9} {w.slug}  [{w.start_time.isoformat()} → {w.end_time.isoformat()})")


def show_plan(
    bankroll: float,
    mode: str,
    price: float,
    levels: int,
    taper: float,
    step: float,
    labels: tuple[str, str],
) -> None:
    """Build a plan against a synthetic binary market priced at `price`."""
    if not 0 < price < 1:
        raise InvalidConfig(f"--price must be in (0, 1), got {price}", field="price")
    market = Market(
        platform=Platform.POLYMARKET,
        id="preview",
        question="Plan preview",
        outcomes=(
            Outcome(label=labels[0], price=price),
            Outcome(label=labels[1], price=round(1 - price, 10)),
        ),
        expiry=datetime.now(timezone.utc),
        status=MarketStatus.OPEN,
    )
    plan = build_plan(
        bankroll,
        OrderMode(mode.upper()),
        market,
        StrategyConfig(price_levels=levels, taper_factor=taper, ladder_step=step),
    )

    print(f"Mode: {plan.mode.value}   Bankroll: {plan.bankroll:.2f}   Committed: {plan.total_committed:.2f}")
    for level in plan.levels:
        print(
            f"  {level.side:<5} L{level.level_index}  {level.price:.2f}  "
            f"{level.size:>9.2f} USD  {level.shares:>10.4f} sh"
        )
    for warning in plan.warnings:
        print(f"  ⚠️  {warning}")


async def _run_service(args: argparse.Namespace) -> str:
    from marketpilot.services import build_services

    services = build_services(get_settings())
    try:
        if args.command == "analyze":
            result = await services.analysis.analyze(
                args.url,
                question=args.question,
                provider=args.provider,
                include_research=args.research,
            )
        elif args.command == "track":
            result = await services.positions.track(
                args.wallet, url=args.url, series=args.series, rebalance_budget=args.rebalance
            )
        elif args.command == "research":
            result = await services.research.research(args.query)
        else:
            result = await services.limit_orders.plan_orders(
                args.bankroll,
                args.mode.upper(),
                url=args.url,
                series=args.series,
                config=StrategyConfig(price_levels=args.levels, taper_factor=args.taper),
            )
        return result.model_dump_json(indent=2)
    finally:
        await services.close()


def main():
    parser = argparse.ArgumentParser(description="MarketPilot CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    cycle_parser = subparsers.add_parser("cycle", help="Show the current and next cycle of a series")
    cycle_parser.add_argument("series", help="Series slug prefix, e.g. btc-updown-15m")
    cycle_parser.add_argument("--at", help="Instant to resolve (ISO-8601 or epoch seconds)")
    cycle_parser.add_argument("--skew", type=int, default=90, help="Boundary skew tolerance (s)")

    plan_parser = subparsers.add_parser("plan", help="Preview an order plan offline")
    plan_parser.add_argument("bankroll", type=float, help="Bankroll in USD")
    plan_parser.add_argument("--mode", choices=["simple", "ladder"], default="simple")
    plan_parser.add_argument("--price", type=float, default=0.5, help="Affirmative side price")
    plan_parser.add_argument("--levels", type=int, default=5)
    plan_parser.add_argument("--taper", type=float, default=0.5)
    plan_parser.add_argument("--step", type=float, default=0.02)
    plan_parser.add_argument("--labels", nargs=2, default=["Up", "Down"], metavar=("YES", "NO"))

    analyze_parser = subparsers.add_parser("analyze", help="AI recommendation for a market URL")
    analyze_parser.add_argument("url")
    analyze_parser.add_argument("--question")
    analyze_parser.add_argument("--provider", choices=["grok", "openai"])
    analyze_parser.add_argument("--research", action="store_true", help="Also run research")

    track_parser = subparsers.add_parser("track", help="Assess a wallet's position")
    track_parser.add_argument("wallet")
    track_parser.add_argument("--url")
    track_parser.add_argument("--series")
    track_parser.add_argument("--rebalance", type=float, help="Budget for a pairing plan")

    research_parser = subparsers.add_parser("research", help="Run a research query")
    research_parser.add_argument("query")

    orders_parser = subparsers.add_parser("orders", help="Plan orders for the next cycle")
    orders_parser.add_argument("bankroll", type=float)
    orders_parser.add_argument("--mode", choices=["simple", "ladder"], default="simple")
    orders_parser.add_argument("--url")
    orders_parser.add_argument("--series")
    orders_parser.add_argument("--levels", type=int, default=5)
    orders_parser.add_argument("--taper", type=float, default=0.5)

    args = parser.parse_args()
    configure_logging(get_settings())

    try:
        if args.command == "cycle":
            show_cycle(args.series, args.at, args.skew)
        elif args.command == "plan":
            show_plan(
                args.bankroll,
                args.mode,
                args.price,
                args.levels,
                args.taper,
                args.step,
                tuple(args.labels),
            )
        else:
            print(asyncio.run(_run_service(args)))
    except MarketPilotError as e:
        print(f"Error [{e.error_code}]: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
