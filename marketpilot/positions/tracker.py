"""
Position tracker — exposure of a wallet in one market, computed from holdings.

Pure functions: no I/O, no clock. Every share pays 1.0 if its outcome wins,
so with `cost = Σ shares·avg_price` the net result if outcome X wins is

    payout(X) = shares(X) − cost

The profit lock is the worst of those over the outcomes that can still win
(only the winner once the market is resolved).
"""

from __future__ import annotations

import math

import structlog

from marketpilot.models import (
    LockState,
    Market,
    MarketStatus,
    PairStatus,
    PositionAssessment,
    PositionLine,
    WalletPosition,
)

logger = structlog.get_logger(__name__)

# Share counts this close are treated as a matched pair.
PAIR_REL_TOLERANCE = 0.01
PAIR_ABS_TOLERANCE = 0.01

# Half a cent: below this a lock is break-even, not profit or loss.
LOCK_EPSILON = 0.005


def assess(position: WalletPosition, market: Market) -> PositionAssessment:
    """Classify the exposure of `position` in `market`."""
    shares = {label: position.holding(label).shares for label in market.labels}
    held = [label for label, s in shares.items() if s > 0]
    total_cost = sum(position.holding(label).cost for label in market.labels)
    payouts = {label: s - total_cost for label, s in shares.items()}

    winner = market.winning_outcome
    if market.status == MarketStatus.RESOLVED and winner is not None:
        possible = [winner.label]
    else:
        possible = list(market.labels)

    profit_lock = min(payouts[label] for label in possible) if held else 0.0
    break_even, break_even_outcome = _break_even(shares, total_cost, market) if held else (None, None)

    assessment = PositionAssessment(
        position=position,
        profit_lock=profit_lock,
        break_even=break_even,
        break_even_outcome=break_even_outcome,
        pair_status=pair_status(shares),
        lock_state=_lock_state(held, profit_lock),
        total_cost=total_cost,
        payouts=payouts,
        lines=[
            PositionLine(
                outcome=label,
                shares=shares[label],
                avg_price=position.holding(label).avg_price,
                current_price=market.outcome(label).price,
                unrealized_pnl=(market.outcome(label).price - position.holding(label).avg_price)
                * shares[label],
            )
            for label in held
        ],
    )

    logger.debug(
        "position_assessed",
        market_id=market.id,
        wallet=position.wallet,
        profit_lock=round(profit_lock, 4),
        pair_status=assessment.pair_status.value,
        lock_state=assessment.lock_state.value,
    )
    return assessment


def pair_status(shares: dict[str, float]) -> PairStatus:
    """FULLY_PAIRED when every outcome is held in (nearly) equal size."""
    held = [s for s in shares.values() if s > 0]
    if len(held) < 2:
        return PairStatus.UNPAIRED
    if len(held) == len(shares) and all(
        math.isclose(s, held[0], rel_tol=PAIR_REL_TOLERANCE, abs_tol=PAIR_ABS_TOLERANCE)
        for s in held
    ):
        return PairStatus.FULLY_PAIRED
    return PairStatus.PARTIAL


def _break_even(
    shares: dict[str, float], cost: float, market: Market
) -> tuple[float | None, str | None]:
    """Win probability of the dominant outcome at which expected P&L is zero.

    Only defined for binary markets whose two share counts differ.
    """
    if not market.is_binary:
        return None, None
    (label_a, s_a), (label_b, s_b) = shares.items()
    if s_a == s_b:
        return None, None
    held, other = ((label_a, s_a), (label_b, s_b)) if s_a > s_b else ((label_b, s_b), (label_a, s_a))

    p = (cost - other[1]) / (held[1] - other[1])
    if not 0.0 <= p <= 1.0:
        return None, None
    return p, held[0]


def _lock_state(held: list[str], profit_lock: float) -> LockState:
    if not held:
        return LockState.NO_POSITION
    if profit_lock > LOCK_EPSILON:
        return LockState.PROFIT_LOCKED
    if profit_lock >= -LOCK_EPSILON:
        return LockState.BREAK_EVEN
    return LockState.AT_RISK
