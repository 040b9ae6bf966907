from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx
from pydantic import BaseModel, Field

from strategy_engine.core.exceptions import (
    CircuitBreakerOpen,
    ExecutionCancelled,
    ExecutionError,
    ExecutionTimeout,
    NoRoute,
    NotFound,
    QuoteError,
    UpstreamError,
    WalletCorrupt,
)
from strategy_engine.data.market_provider import MarketDataProvider, price_hint
from strategy_engine.execution.executor import SwapExecutor
from strategy_engine.ledger.trade_ledger import (
    DIRECTION_BUY,
    DIRECTION_SELL,
    STATUS_CONFIRMED,
    STATUS_FAILED,
    STATUS_PENDING,
    TradeLedger,
    TradeRecord,
    direction_for,
)
from strategy_engine.orchestrator.activity import (
    ACTIVITY_BUY,
    ACTIVITY_CHECK,
    ACTIVITY_ERROR,
    ACTIVITY_INFO,
    ACTIVITY_SCAN,
    ACTIVITY_SELL,
    ActivityEntry,
    ActivityLog,
)
from strategy_engine.orchestrator.state_machine import (
    EVENT_ACTIVATE,
    EVENT_DEACTIVATE,
    EVENT_SPOT_FIRED,
    apply_event,
)
from strategy_engine.orchestrator.store import StrategyStore
from strategy_engine.quotes.engine import Quote, QuoteEngine
from strategy_engine.strategies.evaluator import (
    REASON_ALREADY_BOUGHT,
    ConditionEvaluator,
    Decision,
    MarketSnapshot,
)
from strategy_engine.strategies.models import ConditionalConfig, SniperConfig, SpotConfig, Strategy
from strategy_engine.tokens.registry import SOL_MINT
from strategy_engine.tokens.resolver import TokenResolver
from strategy_engine.wallet.manager import TransactionSigner

logger = logging.getLogger(__name__)

ACTION_TRADE_EXECUTED = "TRADE_EXECUTED"
ACTION_NO_OPPORTUNITIES = "NO_OPPORTUNITIES"
ACTION_ALREADY_BOUGHT = "ALREADY_BOUGHT"
ACTION_NO_ROUTE = "NO_ROUTE"
ACTION_DEBOUNCED = "DEBOUNCED"
ACTION_CANCELLED = "CANCELLED"
ACTION_ERROR = "ERROR"

_TRANSIENT_ERRORS = (UpstreamError, CircuitBreakerOpen, httpx.HTTPError, QuoteError, NotFound)


class CycleResult(BaseModel):
    strategy_id: str
    strategy_name: str
    action: str
    details: str = ""
    trade: Optional[TradeRecord] = None
    error: Optional[str] = None


class StrategySummary(BaseModel):
    id: str
    name: str
    type: str
    is_active: bool
    trades_today: int = 0
    last_activity: Optional[ActivityEntry] = None


class SchedulerStatus(BaseModel):
    owner: str
    active_count: int = 0
    total_trades_today: int = 0
    strategies: List[StrategySummary] = Field(default_factory=list)


@dataclass(frozen=True)
class SchedulerSettings:
    interval_sec: float = 60.0
    concurrency: int = 4
    debounce_sec: float = 300.0
    sniper_rebuy_hours: float = 24.0
    candidate_limit: int = 20
    pending_expiry_sec: float = 180.0

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "SchedulerSettings":
        scheduler = cfg.get("scheduler", {}) or {}
        sniper = (cfg.get("defaults", {}) or {}).get("sniper", {}) or {}
        return cls(
            interval_sec=float(scheduler.get("interval_sec", cls.interval_sec)),
            concurrency=max(1, int(scheduler.get("concurrency", cls.concurrency))),
            debounce_sec=float(scheduler.get("debounce_sec", cls.debounce_sec)),
            sniper_rebuy_hours=float(scheduler.get("sniper_rebuy_hours", cls.sniper_rebuy_hours)),
            candidate_limit=int(sniper.get("candidate_limit", cls.candidate_limit)),
            pending_expiry_sec=float(scheduler.get("pending_expiry_sec", cls.pending_expiry_sec)),
        )


@dataclass(frozen=True)
class TradeIntent:
    input_token: str
    output_token: str
    amount: float
    slippage_bps: int
    direction: str
    price_usd: Optional[float] = None


class StrategyScheduler:
    def __init__(
        self,
        store: StrategyStore,
        market: MarketDataProvider,
        resolver: TokenResolver,
        quote_engine: QuoteEngine,
        executor: SwapExecutor,
        signer: TransactionSigner,
        ledger: TradeLedger,
        evaluator: Optional[ConditionEvaluator] = None,
        activity: Optional[ActivityLog] = None,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.market = market
        self.resolver = resolver
        self.quote_engine = quote_engine
        self.executor = executor
        self.signer = signer
        self.ledger = ledger
        self.evaluator = evaluator or ConditionEvaluator()
        self.activity = activity or ActivityLog(clock=clock)
        self.settings = settings or SchedulerSettings()
        self._clock = clock
        self._last_fired: Dict[str, float] = {}
        self._reserved: Set[Tuple[str, str]] = set()
        self._inflight: Set[asyncio.Future] = set()

    # state changes

    def activate(self, strategy_id: str) -> Strategy:
        strategy = self.store.save(apply_event(self.store.get(strategy_id), EVENT_ACTIVATE, self._clock()))
        self.evaluator.reset(strategy_id)
        self.activity.add(strategy_id, ACTIVITY_INFO, "Strategy activated")
        return strategy

    def deactivate(self, strategy_id: str) -> Strategy:
        strategy = self.store.save(apply_event(self.store.get(strategy_id), EVENT_DEACTIVATE, self._clock()))
        self.evaluator.reset(strategy_id)
        self.activity.add(strategy_id, ACTIVITY_INFO, "Strategy deactivated")
        return strategy

    def _still_active(self, strategy_id: str) -> bool:
        try:
            return self.store.get(strategy_id).is_active
        except NotFound:
            return False

    # cycle

    async def run_cycle(self, owner: Optional[str] = None) -> List[CycleResult]:
        strategies = self.store.list_active(owner)
        if not strategies:
            return []
        semaphore = asyncio.Semaphore(self.settings.concurrency)

        async def guarded(strategy: Strategy) -> CycleResult:
            async with semaphore:
                return await self._run_strategy(strategy)

        outcomes = await asyncio.gather(*(guarded(s) for s in strategies), return_exceptions=True)
        results: List[CycleResult] = []
        for strategy, outcome in zip(strategies, outcomes):
            if isinstance(outcome, (WalletCorrupt, asyncio.CancelledError)):
                raise outcome
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                logger.exception("strategy %s crashed", strategy.id, exc_info=outcome)
                self.activity.add(strategy.id, ACTIVITY_ERROR, f"Unexpected error: {outcome}")
                results.append(self._result(strategy, ACTION_ERROR, error=str(outcome)))
                continue
            results.append(outcome)
        return results

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None, owner: Optional[str] = None) -> None:
        stop = stop_event or asyncio.Event()
        logger.info("scheduler started (interval %.0fs)", self.settings.interval_sec)
        while not stop.is_set():
            try:
                await self.reconcile_pending(owner)
                results = await self.run_cycle(owner)
            except WalletCorrupt:
                logger.critical("wallet is corrupt; halting scheduler")
                raise
            executed = sum(1 for result in results if result.action == ACTION_TRADE_EXECUTED)
            logger.info("cycle complete: %d strategies, %d trades", len(results), executed)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings.interval_sec)
            except asyncio.TimeoutError:
                continue
        logger.info("scheduler stopped")

    async def drain(self) -> None:
        """Wait for shielded executions that outlived a cancelled cycle."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _run_strategy(self, strategy: Strategy) -> CycleResult:
        now = self._clock()
        last = self._last_fired.get(strategy.id)
        if last is not None and now - last < self.settings.debounce_sec:
            remaining = int(self.settings.debounce_sec - (now - last))
            return self._result(strategy, ACTION_DEBOUNCED, details=f"Debounced for another {remaining}s")

        try:
            snapshot = await self._snapshot(strategy, now)
        except _TRANSIENT_ERRORS as exc:
            self.activity.add(strategy.id, ACTIVITY_ERROR, f"Market data unavailable: {exc}")
            return self._result(strategy, ACTION_ERROR, error=str(exc))

        try:
            decision = self.evaluator.evaluate(strategy, snapshot)
        except (ValueError, TypeError) as exc:
            logger.warning("evaluation failed for %s: %s", strategy.id, exc)
            self.activity.add(strategy.id, ACTIVITY_ERROR, f"Evaluation failed: {exc}")
            return self._result(strategy, ACTION_ERROR, error=str(exc))

        if not decision.fire:
            return self._hold(strategy, decision)

        reservation = self._reserve(strategy, decision)
        try:
            return await self._fire(strategy, decision)
        finally:
            if reservation is not None:
                self._reserved.discard(reservation)

    def _hold(self, strategy: Strategy, decision: Decision) -> CycleResult:
        kind = ACTIVITY_SCAN if isinstance(strategy.config, SniperConfig) else ACTIVITY_CHECK
        self.activity.add(strategy.id, kind, decision.message or decision.reason)
        action = ACTION_ALREADY_BOUGHT if decision.reason == REASON_ALREADY_BOUGHT else ACTION_NO_OPPORTUNITIES
        return self._result(strategy, action, details=decision.message)

    def _reserve(self, strategy: Strategy, decision: Decision) -> Optional[Tuple[str, str]]:
        if decision.target is None:
            return None
        key = (strategy.owner, decision.target.address)
        self._reserved.add(key)
        return key

    async def _snapshot(self, strategy: Strategy, now: float) -> MarketSnapshot:
        config = strategy.config
        if isinstance(config, SpotConfig):
            return MarketSnapshot(now_ts=int(now))
        if isinstance(config, SniperConfig):
            listings = await self.market.get_new_listings(limit=self.settings.candidate_limit)
            since = now - self.settings.sniper_rebuy_hours * 3600
            bought = self.ledger.bought_mints(strategy.owner, since=since)
            bought |= {mint for owner, mint in self._reserved if owner == strategy.owner}
            return MarketSnapshot(now_ts=int(now), listings=listings, bought_mints=frozenset(bought))
        if isinstance(config, ConditionalConfig):
            asset = await self.resolver.resolve(config.token)
            candles = await self.market.get_ohlcv(asset.address, config.condition.timeframe, limit=config.candles)
            return MarketSnapshot(now_ts=int(now), candles=candles)
        raise TypeError(f"Unsupported strategy config: {type(config).__name__}")

    def _intent(self, strategy: Strategy, decision: Decision) -> TradeIntent:
        config = strategy.config
        if isinstance(config, SpotConfig):
            return TradeIntent(
                input_token=config.input_token,
                output_token=config.output_token,
                amount=config.amount,
                slippage_bps=config.slippage_bps,
                direction="",
            )
        if isinstance(config, SniperConfig):
            target = decision.target
            self.resolver.learn(target.address, symbol=target.symbol, name=target.name, decimals=target.decimals)
            return TradeIntent(
                input_token=SOL_MINT,
                output_token=target.address,
                amount=config.amount,
                slippage_bps=config.slippage_bps,
                direction=DIRECTION_BUY,
                price_usd=target.price_usd,
            )
        if isinstance(config, ConditionalConfig):
            price = decision.current.subject if decision.current and config.condition.indicator != "RSI" else None
            if config.direction == "buy":
                return TradeIntent(SOL_MINT, config.token, config.amount, config.slippage_bps, DIRECTION_BUY, price)
            return TradeIntent(config.token, SOL_MINT, config.amount, config.slippage_bps, DIRECTION_SELL, price)
        raise TypeError(f"Unsupported strategy config: {type(config).__name__}")

    async def _fire(self, strategy: Strategy, decision: Decision) -> CycleResult:
        self.activity.add(strategy.id, ACTIVITY_INFO, decision.message or "Condition met")
        try:
            intent = self._intent(strategy, decision)
            if not self._still_active(strategy.id):
                return self._cancelled(strategy)
            input_asset, output_asset = await self.resolver.resolve_many([intent.input_token, intent.output_token])
            quote = await self.quote_engine.quote(input_asset, output_asset, intent.amount, intent.slippage_bps)
        except NoRoute as exc:
            self.evaluator.release(strategy.id)
            self.activity.add(strategy.id, ACTIVITY_SCAN, f"No route: {exc}")
            return self._result(strategy, ACTION_NO_ROUTE, details=str(exc))
        except _TRANSIENT_ERRORS as exc:
            self.evaluator.release(strategy.id)
            self.activity.add(strategy.id, ACTIVITY_ERROR, f"Quote failed: {exc}")
            return self._result(strategy, ACTION_ERROR, error=str(exc))

        # deactivation is checked again by the executor under the wallet lock
        if not self._still_active(strategy.id):
            return self._cancelled(strategy)

        task = asyncio.ensure_future(self._execute_and_record(strategy, intent, quote))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    def _cancelled(self, strategy: Strategy) -> CycleResult:
        self.evaluator.release(strategy.id)
        self.activity.add(strategy.id, ACTIVITY_INFO, "Deactivated before execution; trade skipped")
        return self._result(strategy, ACTION_CANCELLED, details="Strategy deactivated")

    async def _execute_and_record(self, strategy: Strategy, intent: TradeIntent, quote: Quote) -> CycleResult:
        direction = intent.direction or direction_for(quote.input_asset.address)
        price = intent.price_usd
        if price is None:
            mint = quote.output_asset.address if direction == DIRECTION_BUY else quote.input_asset.address
            price = await price_hint(self.market, mint)
        trade = TradeRecord(
            owner=strategy.owner,
            strategy_id=strategy.id,
            type=strategy.type,
            direction=direction,
            input_mint=quote.input_asset.address,
            output_mint=quote.output_asset.address,
            input_symbol=quote.input_asset.symbol,
            output_symbol=quote.output_asset.symbol,
            input_amount=quote.input_amount,
            output_amount=quote.output_amount,
            price_usd=price,
        )
        self._last_fired[strategy.id] = self._clock()
        try:
            receipt = await self.executor.execute(
                quote, self.signer, should_submit=lambda: self._still_active(strategy.id)
            )
        except ExecutionCancelled:
            self._last_fired.pop(strategy.id, None)
            return self._cancelled(strategy)
        except ExecutionTimeout as exc:
            record = self.ledger.record(
                trade.model_copy(update={"signature": exc.signature, "status": STATUS_PENDING, "reason": str(exc)})
            )
            self.activity.add(strategy.id, ACTIVITY_INFO, f"Submitted {exc.signature}; awaiting confirmation")
            self._after_attempt(strategy)
            return self._result(strategy, ACTION_TRADE_EXECUTED, details="Awaiting confirmation", trade=record)
        except (ExecutionError, QuoteError, UpstreamError, CircuitBreakerOpen, httpx.HTTPError) as exc:
            record = self.ledger.record(
                trade.model_copy(
                    update={
                        "signature": getattr(exc, "signature", None),
                        "status": STATUS_FAILED,
                        "reason": f"{type(exc).__name__}: {exc}",
                    }
                )
            )
            self.activity.add(strategy.id, ACTIVITY_ERROR, f"Trade failed: {exc}")
            self._after_attempt(strategy)
            return self._result(strategy, ACTION_ERROR, error=str(exc), trade=record)

        record = self.ledger.record(
            trade.model_copy(
                update={
                    "signature": receipt.signature,
                    "status": STATUS_CONFIRMED,
                    "input_amount": receipt.settled_input_amount,
                    "output_amount": receipt.settled_output_amount,
                }
            )
        )
        verb = "Bought" if direction == DIRECTION_BUY else "Sold"
        label = quote.output_asset.label if direction == DIRECTION_BUY else quote.input_asset.label
        message = f"{verb} {label}: {quote.input_amount} {quote.input_asset.label} -> {quote.output_amount} {quote.output_asset.label}"
        self.activity.add(
            strategy.id,
            ACTIVITY_BUY if direction == DIRECTION_BUY else ACTIVITY_SELL,
            message,
            details={"signature": receipt.signature},
        )
        self._after_attempt(strategy)
        return self._result(strategy, ACTION_TRADE_EXECUTED, details=message, trade=record)

    def _after_attempt(self, strategy: Strategy) -> None:
        if not isinstance(strategy.config, SpotConfig):
            return
        current = self.store.get(strategy.id)
        if current.is_active:
            self.store.save(apply_event(current, EVENT_SPOT_FIRED, self._clock()))
        else:
            self.store.save(current.model_copy(update={"last_fired_at": self._clock()}))
        self.activity.add(strategy.id, ACTIVITY_INFO, "Spot order placed; strategy deactivated")

    # pending trades

    async def reconcile_pending(self, owner: Optional[str] = None) -> List[TradeRecord]:
        settled: List[TradeRecord] = []
        now = self._clock()
        for trade in self.ledger.pending(owner):
            if not trade.signature:
                continue
            status, reason = await self.executor.final_status(trade.signature)
            if status is None and now - trade.created_at > self.settings.pending_expiry_sec:
                status, reason = STATUS_FAILED, "Transaction expired without confirmation"
            if status is None:
                continue
            record = self.ledger.settle(trade.signature, status, reason=reason)
            settled.append(record)
            if trade.strategy_id:
                kind = ACTIVITY_INFO if status == STATUS_CONFIRMED else ACTIVITY_ERROR
                self.activity.add(trade.strategy_id, kind, f"Trade {trade.signature} {status.lower()}")
            logger.info("settled pending trade %s as %s", trade.signature, status)
        return settled

    # reads

    def get_activity(self, strategy_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        self.store.get(strategy_id)
        return self.activity.get(strategy_id, limit)

    def get_status(self, owner: str) -> SchedulerStatus:
        status = SchedulerStatus(owner=owner)
        for strategy in self.store.list_by_owner(owner):
            trades_today = self.ledger.trades_today(owner, strategy_id=strategy.id)
            status.strategies.append(
                StrategySummary(
                    id=strategy.id,
                    name=strategy.name,
                    type=strategy.type,
                    is_active=strategy.is_active,
                    trades_today=trades_today,
                    last_activity=self.activity.latest(strategy.id),
                )
            )
            if strategy.is_active:
                status.active_count += 1
        status.total_trades_today = self.ledger.trades_today(owner)
        return status

    def _result(self, strategy: Strategy, action: str, **kwargs: Any) -> CycleResult:
        return CycleResult(strategy_id=strategy.id, strategy_name=strategy.name, action=action, **kwargs)


__all__ = [
    "ACTION_ALREADY_BOUGHT",
    "ACTION_CANCELLED",
    "ACTION_DEBOUNCED",
    "ACTION_ERROR",
    "ACTION_NO_OPPORTUNITIES",
    "ACTION_NO_ROUTE",
    "ACTION_TRADE_EXECUTED",
    "CycleResult",
    "SchedulerSettings",
    "SchedulerStatus",
    "StrategyScheduler",
    "StrategySummary",
    "TradeIntent",
]
