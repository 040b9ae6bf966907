from pathlib import Path

import pytest

from strategy_engine.core.exceptions import InvalidStateTransition, StrategyNotFound
from strategy_engine.orchestrator.activity import ACTIVITY_CHECK, ACTIVITY_ERROR, ActivityLog
from strategy_engine.orchestrator.state_machine import (
    EVENT_ACTIVATE,
    EVENT_DEACTIVATE,
    EVENT_SPOT_FIRED,
    STATE_ACTIVE,
    STATE_INACTIVE,
    apply_event,
    next_state,
)
from strategy_engine.orchestrator.store import StrategyStore
from strategy_engine.strategies.models import SniperConfig, SpotConfig, Strategy


def _spot(**kwargs) -> Strategy:
    return Strategy(
        owner="local",
        name="spot",
        description="spot",
        config=SpotConfig(input_token="SOL", output_token="USDC", amount=1),
        **kwargs,
    )


def _sniper(**kwargs) -> Strategy:
    return Strategy(owner="local", name="snipe", description="sniper", config=SniperConfig(), **kwargs)


def test_activate_and_deactivate():
    strategy = _sniper()
    active = apply_event(strategy, EVENT_ACTIVATE, now=10.0)
    assert active.is_active
    assert active.updated_at == 10.0
    inactive = apply_event(active, EVENT_DEACTIVATE, now=20.0)
    assert not inactive.is_active


def test_deactivate_is_idempotent():
    assert next_state(_sniper(), EVENT_DEACTIVATE) == STATE_INACTIVE


def test_activating_active_strategy_is_rejected():
    with pytest.raises(InvalidStateTransition):
        next_state(_sniper(is_active=True), EVENT_ACTIVATE)


def test_spot_fired_deactivates_and_stamps():
    fired = apply_event(_spot(is_active=True), EVENT_SPOT_FIRED, now=30.0)
    assert not fired.is_active
    assert fired.last_fired_at == 30.0
    with pytest.raises(InvalidStateTransition):
        apply_event(fired, EVENT_ACTIVATE, now=40.0)


def test_only_spot_strategies_complete_on_fire():
    with pytest.raises(InvalidStateTransition):
        next_state(_sniper(is_active=True), EVENT_SPOT_FIRED)
    assert next_state(_spot(is_active=True), EVENT_SPOT_FIRED) == STATE_INACTIVE
    assert next_state(_sniper(), EVENT_ACTIVATE) == STATE_ACTIVE


def test_store_persists_across_instances(tmp_path: Path):
    path = tmp_path / "strategies.json"
    store = StrategyStore(path)
    older = store.create(_sniper(created_at=1.0))
    newer = store.create(_spot(created_at=2.0))
    store.set_active(older.id, True)

    reopened = StrategyStore(path)
    assert [s.id for s in reopened.list_by_owner("local")] == [newer.id, older.id]
    assert [s.id for s in reopened.list_active("local")] == [older.id]
    assert isinstance(reopened.get(newer.id).config, SpotConfig)


def test_store_scopes_by_owner():
    store = StrategyStore()
    strategy = store.create(_sniper())
    assert store.get(strategy.id, owner="local") == strategy
    with pytest.raises(StrategyNotFound):
        store.get(strategy.id, owner="someone-else")
    with pytest.raises(StrategyNotFound):
        store.save(_spot())
    with pytest.raises(ValueError):
        store.create(strategy)
    assert store.list_by_owner("someone-else") == []


def test_activity_log_newest_first_and_capped():
    ticks = iter(range(100))
    log = ActivityLog(limit=3, clock=lambda: float(next(ticks)))
    for idx in range(5):
        log.add("s1", ACTIVITY_CHECK, f"check {idx}")
    entries = log.get("s1")
    assert [entry.message for entry in entries] == ["check 4", "check 3", "check 2"]
    assert log.get("s1", limit=1)[0].timestamp == 4.0
    assert log.latest("s1").message == "check 4"
    assert log.get("missing") == []
    log.clear("s1")
    assert log.latest("s1") is None


def test_activity_log_rejects_unknown_types():
    log = ActivityLog()
    log.add("s1", ACTIVITY_ERROR, "boom", {"error": "x"})
    with pytest.raises(ValueError):
        log.add("s1", "panic", "nope")
