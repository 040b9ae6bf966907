from strategy_engine.orchestrator.activity import ActivityEntry, ActivityLog
from strategy_engine.orchestrator.scheduler import (
    CycleResult,
    SchedulerSettings,
    SchedulerStatus,
    StrategyScheduler,
)
from strategy_engine.orchestrator.store import StrategyStore

__all__ = [
    "ActivityEntry",
    "ActivityLog",
    "CycleResult",
    "SchedulerSettings",
    "SchedulerStatus",
    "StrategyScheduler",
    "StrategyStore",
]
