from marketpilot.orders.requests import OrderSubmitter, build_order_requests
from marketpilot.orders.strategy import (
    StrategyConfig,
    build_plan,
    rebalance_plan,
    validate_parameters,
)

__all__ = [
    "OrderSubmitter",
    "StrategyConfig",
    "build_order_requests",
    "build_plan",
    "rebalance_plan",
    "validate_parameters",
]
