"""
Order requests — the unsigned orders handed to an external submitter.

Signing, key custody and broadcast live outside this package. The
`OrderSubmitter` protocol documents what that collaborator looks like;
nothing here calls it.
"""

from __future__ import annotations

from typing import Any, Protocol

from marketpilot.models import Market, OrderPlan, OrderRequest


class OrderSubmitter(Protocol):
    """External collaborator that signs and places an order, returning its receipt."""

    async def submit(self, request: OrderRequest, credentials: Any) -> OrderRequest:
        ...


def build_order_requests(plan: OrderPlan, market: Market) -> list[OrderRequest]:
    """One BUY request per plan level, keyed by the outcome's token id.

    Kalshi outcomes share the market ticker as their token id; the
    `outcome` field carries the side.
    """
    requests = []
    for level in plan.levels:
        outcome = market.outcome(level.side)
        requests.append(
            OrderRequest(
                token_id=outcome.token_id or market.id,
                outcome=outcome.label,
                price=level.price,
                size=level.size,
                shares=level.shares,
            )
        )
    return requests
