from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set

from strategy_engine.data.market_types import Candle, NewListing
from strategy_engine.strategies import indicators
from strategy_engine.strategies.models import (
    Condition,
    ConditionalConfig,
    SniperConfig,
    SpotConfig,
    Strategy,
)

DECISION_FIRE = "FIRE"
DECISION_HOLD = "HOLD"

REASON_SPOT_READY = "SPOT_READY"
REASON_ALREADY_FIRED = "ALREADY_FIRED"
REASON_CANDIDATE_FOUND = "CANDIDATE_FOUND"
REASON_NO_CANDIDATES = "NO_CANDIDATES"
REASON_ALREADY_BOUGHT = "ALREADY_BOUGHT"
REASON_INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
REASON_CONDITION_MET = "CONDITION_MET"
REASON_CONDITION_NOT_MET = "CONDITION_NOT_MET"

TOUCH_TOLERANCE = 0.005


@dataclass(frozen=True)
class MarketSnapshot:
    now_ts: int
    candles: Sequence[Candle] = ()
    listings: Sequence[NewListing] = ()
    bought_mints: FrozenSet[str] = frozenset()

    @property
    def sample_ts(self) -> Optional[int]:
        return int(self.candles[-1].t) if self.candles else None


@dataclass(frozen=True)
class Sample:
    subject: float
    reference: float
    ts: Optional[int] = None


@dataclass(frozen=True)
class Decision:
    action: str
    reason: str
    message: str = ""
    target: Optional[NewListing] = None
    current: Optional[Sample] = None
    prior: Optional[Sample] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def fire(self) -> bool:
        return self.action == DECISION_FIRE


def _hold(reason: str, message: str = "", **kwargs: Any) -> Decision:
    return Decision(action=DECISION_HOLD, reason=reason, message=message, **kwargs)


def _within(value: Optional[float], low: Optional[float], high: Optional[float]) -> bool:
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def listing_matches(listing: NewListing, config: SniperConfig, now_ts: int) -> bool:
    if config.max_age_minutes is not None:
        age = listing.age_minutes(now_ts)
        if age is None or age > config.max_age_minutes:
            return False
    if not _within(listing.liquidity_usd, config.min_liquidity, config.max_liquidity):
        return False
    if not _within(listing.volume_24h, config.min_volume, None):
        return False
    if not _within(listing.market_cap_usd, config.min_market_cap, config.max_market_cap):
        return False
    if config.name_filter:
        needle = config.name_filter.lower()
        if needle not in (listing.name or "").lower() and needle not in (listing.symbol or "").lower():
            return False
    return True


def sample_condition(condition: Condition, candles: Sequence[Candle]) -> Optional[Sample]:
    """Subject/reference pair for the newest candle, or None when the indicator is undefined."""
    if not candles:
        return None
    values = indicators.closes(candles)
    ts = int(candles[-1].t)
    close = values[-1]
    period = condition.effective_period

    if condition.indicator == "PRICE":
        return Sample(subject=close, reference=float(condition.value), ts=ts)
    if condition.indicator == "RSI":
        subject = indicators.latest(indicators.rsi(values, period))
        if math.isnan(subject):
            return None
        return Sample(subject=subject, reference=float(condition.value), ts=ts)
    if condition.indicator == "EMA":
        reference = indicators.latest(indicators.ema(values, period))
    else:
        reference = indicators.latest(indicators.sma(values, period))
    if math.isnan(reference):
        return None
    return Sample(subject=close, reference=reference, ts=ts)


def _touching(sample: Sample) -> bool:
    if sample.reference == 0:
        return sample.subject == 0
    return abs(sample.subject - sample.reference) / abs(sample.reference) < TOUCH_TOLERANCE


class ConditionEvaluator:
    """Decides FIRE/HOLD per strategy. Keeps the state that stops repeat fires."""

    def __init__(self) -> None:
        self._spot_fired: Set[str] = set()
        self._crossing_fired_at: Dict[str, int] = {}
        self._touch_latched: Set[str] = set()

    def release(self, strategy_id: str) -> None:
        """Forget a spot fire that never reached execution."""
        self._spot_fired.discard(strategy_id)

    def reset(self, strategy_id: str) -> None:
        self._crossing_fired_at.pop(strategy_id, None)
        self._touch_latched.discard(strategy_id)

    def evaluate(
        self, strategy: Strategy, snapshot: MarketSnapshot, prior: Optional[MarketSnapshot] = None
    ) -> Decision:
        config = strategy.config
        if isinstance(config, SpotConfig):
            return self._evaluate_spot(strategy)
        if isinstance(config, SniperConfig):
            return self._evaluate_sniper(config, snapshot)
        if isinstance(config, ConditionalConfig):
            return self._evaluate_conditional(strategy.id, config, snapshot, prior)
        raise TypeError(f"Unsupported strategy config: {type(config).__name__}")

    def _evaluate_spot(self, strategy: Strategy) -> Decision:
        if strategy.id in self._spot_fired or strategy.last_fired_at is not None:
            return _hold(REASON_ALREADY_FIRED, "Spot order already placed")
        self._spot_fired.add(strategy.id)
        return Decision(action=DECISION_FIRE, reason=REASON_SPOT_READY, message="Spot order ready")

    def _evaluate_sniper(self, config: SniperConfig, snapshot: MarketSnapshot) -> Decision:
        matches: List[NewListing] = [
            listing for listing in snapshot.listings if listing_matches(listing, config, snapshot.now_ts)
        ]
        if not matches:
            if config.name_filter:
                return _hold(REASON_NO_CANDIDATES, f'No new pairs matching name filter "{config.name_filter}"')
            return _hold(REASON_NO_CANDIDATES, "No new pairs matching criteria")
        for listing in matches:
            if listing.address not in snapshot.bought_mints:
                age = listing.age_minutes(snapshot.now_ts)
                return Decision(
                    action=DECISION_FIRE,
                    reason=REASON_CANDIDATE_FOUND,
                    message=f"Found {listing.symbol} ({listing.name})",
                    target=listing,
                    details={
                        "age_minutes": age,
                        "liquidity_usd": listing.liquidity_usd,
                        "matches": len(matches),
                    },
                )
        return _hold(REASON_ALREADY_BOUGHT, f"Already bought all {len(matches)} matching pairs")

    def _evaluate_conditional(
        self,
        strategy_id: str,
        config: ConditionalConfig,
        snapshot: MarketSnapshot,
        prior: Optional[MarketSnapshot],
    ) -> Decision:
        condition = config.condition
        current = sample_condition(condition, snapshot.candles)
        if current is None:
            return _hold(REASON_INSUFFICIENT_DATA, "Not enough price data for indicator calculation")

        waiting = (
            f"Waiting for condition: {condition.describe()}, "
            f"subject={current.subject:.4f} reference={current.reference:.4f}"
        )
        trigger = condition.trigger
        if trigger == "price_above":
            met = current.subject > current.reference
        elif trigger == "price_below":
            met = current.subject < current.reference
        elif trigger == "price_touches":
            return self._touch(strategy_id, current, waiting)
        elif trigger in ("crosses_above", "crosses_below"):
            return self._crossing(strategy_id, trigger, condition, current, snapshot, prior, waiting)
        else:
            raise ValueError(f"Unsupported trigger: {trigger}")

        if not met:
            return _hold(REASON_CONDITION_NOT_MET, waiting, current=current)
        return Decision(
            action=DECISION_FIRE,
            reason=REASON_CONDITION_MET,
            message=f"Condition met: {condition.describe()} at {current.subject:.4f}",
            current=current,
        )

    def _touch(self, strategy_id: str, current: Sample, waiting: str) -> Decision:
        if not _touching(current):
            self._touch_latched.discard(strategy_id)
            return _hold(REASON_CONDITION_NOT_MET, waiting, current=current)
        if strategy_id in self._touch_latched:
            return _hold(REASON_ALREADY_FIRED, "Still inside touch band", current=current)
        self._touch_latched.add(strategy_id)
        return Decision(
            action=DECISION_FIRE,
            reason=REASON_CONDITION_MET,
            message=f"Price touched {current.reference:.4f}",
            current=current,
        )

    def _crossing(
        self,
        strategy_id: str,
        trigger: str,
        condition: Condition,
        current: Sample,
        snapshot: MarketSnapshot,
        prior_snapshot: Optional[MarketSnapshot],
        waiting: str,
    ) -> Decision:
        prior_candles = prior_snapshot.candles if prior_snapshot is not None else snapshot.candles[:-1]
        prior = sample_condition(condition, prior_candles)
        if prior is None:
            return _hold(REASON_INSUFFICIENT_DATA, "Crossing needs a prior sample", current=current)

        above = trigger == "crosses_above"
        now_ok, before_ok = _compare(current, above), _compare(prior, above)
        if not now_ok or before_ok:
            return _hold(REASON_CONDITION_NOT_MET, waiting, current=current, prior=prior)
        if current.ts is not None and self._crossing_fired_at.get(strategy_id) == current.ts:
            return _hold(REASON_ALREADY_FIRED, "Crossing already acted on", current=current, prior=prior)
        if current.ts is not None:
            self._crossing_fired_at[strategy_id] = current.ts
        return Decision(
            action=DECISION_FIRE,
            reason=REASON_CONDITION_MET,
            message=f"Condition met: {condition.describe()} at {current.subject:.4f}",
            current=current,
            prior=prior,
        )


def _compare(sample: Sample, above: bool) -> bool:
    if above:
        return sample.subject > sample.reference
    return sample.subject < sample.reference


__all__ = [
    "ConditionEvaluator",
    "DECISION_FIRE",
    "DECISION_HOLD",
    "Decision",
    "MarketSnapshot",
    "REASON_ALREADY_BOUGHT",
    "REASON_ALREADY_FIRED",
    "REASON_CONDITION_MET",
    "REASON_CONDITION_NOT_MET",
    "REASON_INSUFFICIENT_DATA",
    "REASON_NO_CANDIDATES",
    "Sample",
    "listing_matches",
    "sample_condition",
]
