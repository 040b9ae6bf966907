from strategy_engine.strategies.evaluator import ConditionEvaluator, Decision, MarketSnapshot
from strategy_engine.strategies.models import (
    Condition,
    ConditionalConfig,
    CreateStrategyRequest,
    SniperConfig,
    SpotConfig,
    Strategy,
    parse_create_request,
)

__all__ = [
    "Condition",
    "ConditionEvaluator",
    "ConditionalConfig",
    "CreateStrategyRequest",
    "Decision",
    "MarketSnapshot",
    "SniperConfig",
    "SpotConfig",
    "Strategy",
    "parse_create_request",
]
