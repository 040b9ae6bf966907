from __future__ import annotations

from typing import Dict, FrozenSet

from strategy_engine.core.exceptions import InvalidStateTransition
from strategy_engine.strategies.models import STRATEGY_SPOT, Strategy

STATE_INACTIVE = "INACTIVE"
STATE_ACTIVE = "ACTIVE"

EVENT_ACTIVATE = "activate"
EVENT_DEACTIVATE = "deactivate"
EVENT_SPOT_FIRED = "spot_fired"

TRANSITIONS: Dict[str, Dict[str, str]] = {
    STATE_INACTIVE: {EVENT_ACTIVATE: STATE_ACTIVE},
    STATE_ACTIVE: {EVENT_DEACTIVATE: STATE_INACTIVE, EVENT_SPOT_FIRED: STATE_INACTIVE},
}

# deactivating twice is a no-op rather than an error
IDEMPOTENT_EVENTS: FrozenSet[str] = frozenset({EVENT_DEACTIVATE})


def state_of(strategy: Strategy) -> str:
    return STATE_ACTIVE if strategy.is_active else STATE_INACTIVE


def next_state(strategy: Strategy, event: str) -> str:
    current = state_of(strategy)
    if event == EVENT_ACTIVATE and strategy.type == STRATEGY_SPOT and strategy.last_fired_at is not None:
        raise InvalidStateTransition(f"Spot strategy {strategy.id} already executed")
    if event == EVENT_SPOT_FIRED and strategy.type != STRATEGY_SPOT:
        raise InvalidStateTransition(f"{strategy.type} strategies stay active after firing")
    target = TRANSITIONS.get(current, {}).get(event)
    if target is None:
        if event in IDEMPOTENT_EVENTS:
            return current
        raise InvalidStateTransition(f"Cannot {event} strategy {strategy.id} in state {current}")
    return target


def apply_event(strategy: Strategy, event: str, now: float) -> Strategy:
    target = next_state(strategy, event)
    updates = {"is_active": target == STATE_ACTIVE, "updated_at": now}
    if event == EVENT_SPOT_FIRED:
        updates["last_fired_at"] = now
    return strategy.model_copy(update=updates)


__all__ = [
    "EVENT_ACTIVATE",
    "EVENT_DEACTIVATE",
    "EVENT_SPOT_FIRED",
    "STATE_ACTIVE",
    "STATE_INACTIVE",
    "TRANSITIONS",
    "apply_event",
    "next_state",
    "state_of",
]
