from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel

from strategy_engine.core.exceptions import (
    CircuitBreakerOpen,
    ExecutionError,
    ExecutionTimeout,
    InvalidStrategyConfig,
    UpstreamError,
)
from strategy_engine.data.market_provider import MarketDataProvider, price_hint
from strategy_engine.data.solana_rpc.provider import SolanaRpc
from strategy_engine.execution.executor import SwapExecutor
from strategy_engine.ledger.trade_ledger import (
    DIRECTION_BUY,
    STATUS_CONFIRMED,
    STATUS_FAILED,
    STATUS_PENDING,
    LedgerStats,
    TradeLedger,
    TradeRecord,
    direction_for,
)
from strategy_engine.orchestrator.activity import ActivityEntry
from strategy_engine.orchestrator.scheduler import CycleResult, SchedulerStatus, StrategyScheduler
from strategy_engine.orchestrator.store import StrategyStore
from strategy_engine.quotes.amounts import from_smallest_unit
from strategy_engine.quotes.engine import QuoteEngine
from strategy_engine.strategies.models import (
    ConditionalConfig,
    CreateStrategyRequest,
    SniperConfig,
    SpotConfig,
    Strategy,
    parse_create_request,
)
from strategy_engine.tokens.resolver import Asset, TokenResolver
from strategy_engine.wallet.manager import WalletManager

logger = logging.getLogger(__name__)

DEFAULT_OWNER = "local"
LAMPORTS_DECIMALS = 9


class TokenInfo(BaseModel):
    address: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: int
    decimals_verified: bool = True


class QuoteResult(BaseModel):
    input_mint: str
    input_symbol: Optional[str] = None
    input_amount: str
    output_mint: str
    output_symbol: Optional[str] = None
    output_amount: str
    exchange_rate: str
    price_impact_pct: str
    slippage_bps: int
    route: str


class SwapResult(BaseModel):
    signature: Optional[str] = None
    status: str
    input_amount: str
    output_amount: str
    route: str
    trade: TradeRecord


class WalletInfo(BaseModel):
    address: str
    sol_balance: Optional[str] = None
    created: bool = False
    created_at: str


def _token_info(asset: Asset) -> TokenInfo:
    return TokenInfo(
        address=asset.address,
        symbol=asset.symbol,
        name=asset.name,
        decimals=asset.decimals,
        decimals_verified=asset.decimals_verified,
    )


def apply_strategy_defaults(request: CreateStrategyRequest, defaults: Dict[str, Any]) -> CreateStrategyRequest:
    """Fill unset config fields from the ``defaults`` config section."""
    config = request.config
    if isinstance(config, SniperConfig):
        overrides = defaults.get("sniper", {}) or {}
    elif isinstance(config, ConditionalConfig):
        overrides = defaults.get("conditional", {}) or {}
    elif isinstance(config, SpotConfig):
        overrides = defaults.get("spot", {}) or {}
    else:
        raise TypeError(f"Unsupported strategy config: {type(config).__name__}")

    updates = {
        key: value
        for key, value in overrides.items()
        if key in type(config).model_fields and key not in config.model_fields_set and key != "type"
    }
    if isinstance(config, ConditionalConfig) and "timeframe" not in config.condition.model_fields_set:
        timeframe = overrides.get("timeframe")
        if timeframe:
            updates["condition"] = config.condition.model_copy(update={"timeframe": timeframe})
    if not updates:
        return request
    merged = type(config).model_validate({**config.model_dump(), **updates})
    return request.model_copy(update={"config": merged})


class TradingService:
    def __init__(
        self,
        store: StrategyStore,
        ledger: TradeLedger,
        scheduler: StrategyScheduler,
        resolver: TokenResolver,
        quote_engine: QuoteEngine,
        executor: SwapExecutor,
        wallet: WalletManager,
        rpc: SolanaRpc,
        market: Optional[MarketDataProvider] = None,
        defaults: Optional[Dict[str, Any]] = None,
        owner: str = DEFAULT_OWNER,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.scheduler = scheduler
        self.resolver = resolver
        self.quote_engine = quote_engine
        self.executor = executor
        self.wallet = wallet
        self.rpc = rpc
        self.market = market
        self.defaults = defaults or {}
        self.owner = owner

    # strategies

    def create_strategy(self, payload: Union[Dict[str, Any], CreateStrategyRequest]) -> Strategy:
        if isinstance(payload, CreateStrategyRequest):
            request = payload
        else:
            data = dict(payload)
            data.setdefault("owner", self.owner)
            request = parse_create_request(data)
        try:
            request = apply_strategy_defaults(request, self.defaults)
        except ValueError as exc:
            raise InvalidStrategyConfig(f"Invalid strategy defaults: {exc}") from exc
        strategy = Strategy(
            owner=request.owner,
            name=request.name,
            description=request.description,
            config=request.config,
        )
        self.store.create(strategy)
        logger.info("created %s strategy %s (%s)", strategy.type, strategy.id, strategy.name)
        return strategy

    def list_strategies(self, owner: Optional[str] = None) -> List[Strategy]:
        return self.store.list_by_owner(owner or self.owner)

    def activate_strategy(self, strategy_id: str) -> Strategy:
        return self.scheduler.activate(strategy_id)

    def deactivate_strategy(self, strategy_id: str) -> Strategy:
        return self.scheduler.deactivate(strategy_id)

    def get_strategy_activity(self, strategy_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        return self.scheduler.get_activity(strategy_id, limit)

    def get_strategy_stats(self, strategy_id: Optional[str] = None, owner: Optional[str] = None) -> LedgerStats:
        if strategy_id is not None:
            strategy = self.store.get(strategy_id)
            return self.ledger.stats(strategy.owner, strategy_id=strategy.id)
        return self.ledger.stats(owner or self.owner)

    def get_strategy_status(self, owner: Optional[str] = None) -> SchedulerStatus:
        return self.scheduler.get_status(owner or self.owner)

    async def run_once(self, owner: Optional[str] = None) -> List[CycleResult]:
        await self.scheduler.reconcile_pending(owner)
        return await self.scheduler.run_cycle(owner)

    # tokens and quotes

    async def resolve_token(self, reference: str) -> TokenInfo:
        asset = await self.resolver.resolve(reference)
        return _token_info(await self.resolver.refine(asset))

    async def get_quote(
        self, input_token: str, output_token: str, amount: Union[str, float, Decimal], slippage_bps: int = 100
    ) -> QuoteResult:
        input_asset, output_asset = await self.resolver.resolve_many([input_token, output_token])
        quote = await self.quote_engine.quote(input_asset, output_asset, amount, slippage_bps)
        return QuoteResult(**quote.summary())

    async def execute_swap(
        self,
        input_token: str,
        output_token: str,
        amount: Union[str, float, Decimal],
        slippage_bps: int = 100,
        owner: Optional[str] = None,
    ) -> SwapResult:
        """Quote, sign, submit and record a one-off swap. Execution errors are recorded, then re-raised."""
        self.wallet.get_or_create()
        input_asset, output_asset = await self.resolver.resolve_many([input_token, output_token])
        quote = await self.quote_engine.quote(input_asset, output_asset, amount, slippage_bps)

        direction = direction_for(quote.input_asset.address)
        position_mint = quote.output_asset.address if direction == DIRECTION_BUY else quote.input_asset.address
        trade = TradeRecord(
            owner=owner or self.owner,
            direction=direction,
            input_mint=quote.input_asset.address,
            output_mint=quote.output_asset.address,
            input_symbol=quote.input_asset.symbol,
            output_symbol=quote.output_asset.symbol,
            input_amount=quote.input_amount,
            output_amount=quote.output_amount,
            price_usd=await price_hint(self.market, position_mint),
        )
        try:
            receipt = await self.executor.execute(quote, self.wallet)
        except ExecutionTimeout as exc:
            record = self.ledger.record(
                trade.model_copy(update={"signature": exc.signature, "status": STATUS_PENDING, "reason": str(exc)})
            )
            return SwapResult(
                signature=exc.signature,
                status=STATUS_PENDING,
                input_amount=str(quote.input_amount),
                output_amount=str(quote.output_amount),
                route=quote.route_label,
                trade=record,
            )
        except (ExecutionError, UpstreamError, CircuitBreakerOpen, httpx.HTTPError) as exc:
            self.ledger.record(
                trade.model_copy(
                    update={
                        "signature": getattr(exc, "signature", None),
                        "status": STATUS_FAILED,
                        "reason": f"{type(exc).__name__}: {exc}",
                    }
                )
            )
            raise

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
        return SwapResult(
            signature=receipt.signature,
            status=STATUS_CONFIRMED,
            input_amount=str(receipt.settled_input_amount),
            output_amount=str(receipt.settled_output_amount),
            route=quote.route_label,
            trade=record,
        )

    # wallet

    async def get_wallet_info(self, with_balance: bool = True) -> WalletInfo:
        wallet, created = self.wallet.get_or_create()
        balance: Optional[str] = None
        if with_balance:
            try:
                lamports = await self.rpc.get_balance(wallet.public_key)
                balance = str(from_smallest_unit(lamports, LAMPORTS_DECIMALS))
            except (UpstreamError, CircuitBreakerOpen, httpx.HTTPError) as exc:
                logger.warning("balance lookup failed for %s: %s", wallet.public_key, exc)
        return WalletInfo(address=wallet.public_key, sol_balance=balance, created=created, created_at=wallet.created_at)

    async def aclose(self) -> None:
        for provider in (self.market, self.quote_engine.aggregator, self.rpc):
            closer = getattr(provider, "__aexit__", None)
            if closer is not None:
                await closer(None, None, None)


__all__ = [
    "DEFAULT_OWNER",
    "QuoteResult",
    "SwapResult",
    "TokenInfo",
    "TradingService",
    "WalletInfo",
    "apply_strategy_defaults",
]
