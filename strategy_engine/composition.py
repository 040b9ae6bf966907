from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from strategy_engine.config import expand_path, get_config, section
from strategy_engine.data.aggregator import SwapAggregator
from strategy_engine.data.birdeye.provider import MockProvider as MockMarketProvider, get_market_data_provider
from strategy_engine.data.jupiter.provider import MockJupiterProvider, get_jupiter_provider
from strategy_engine.data.market_provider import MarketDataProvider
from strategy_engine.data.solana_rpc.provider import MockSolanaRpcProvider, SolanaRpc, get_solana_rpc_provider
from strategy_engine.execution.executor import SwapExecutor
from strategy_engine.ledger.trade_ledger import TradeLedger
from strategy_engine.orchestrator.scheduler import SchedulerSettings, StrategyScheduler
from strategy_engine.orchestrator.store import StrategyStore
from strategy_engine.quotes.engine import QuoteEngine
from strategy_engine.service import TradingService
from strategy_engine.tokens.resolver import TokenResolver
from strategy_engine.wallet.manager import WalletManager

MARKET_DATA_CHOICES = ("birdeye", "mock")
AGGREGATOR_CHOICES = ("jupiter", "mock")
RPC_CHOICES = ("solana", "mock")


def _choice(value: Optional[str], default: str) -> str:
    return (value or "").strip().lower() or default


def build_providers(
    market_choice: Optional[str] = None,
    aggregator_choice: Optional[str] = None,
    rpc_choice: Optional[str] = None,
) -> Tuple[MarketDataProvider, SwapAggregator, SolanaRpc]:
    market = _choice(market_choice, "birdeye")
    aggregator = _choice(aggregator_choice, "jupiter")
    rpc = _choice(rpc_choice, "solana")

    if market == "mock":
        market_provider: MarketDataProvider = MockMarketProvider()
    elif market == "birdeye":
        market_provider = get_market_data_provider()
    else:
        raise ValueError(f"Unknown MARKET_DATA provider: {market}")

    if aggregator == "mock":
        aggregator_provider: SwapAggregator = MockJupiterProvider()
    elif aggregator == "jupiter":
        aggregator_provider = get_jupiter_provider()
    else:
        raise ValueError(f"Unknown AGGREGATOR provider: {aggregator}")

    if rpc == "mock":
        rpc_provider: SolanaRpc = MockSolanaRpcProvider()
    elif rpc == "solana":
        rpc_provider = get_solana_rpc_provider()
    else:
        raise ValueError(f"Unknown RPC provider: {rpc}")

    return market_provider, aggregator_provider, rpc_provider


def build_service(
    cfg: Optional[Dict[str, Any]] = None,
    providers: Optional[Tuple[MarketDataProvider, SwapAggregator, SolanaRpc]] = None,
    market_choice: Optional[str] = None,
    aggregator_choice: Optional[str] = None,
    rpc_choice: Optional[str] = None,
    wallet_path: Optional[Path] = None,
    strategies_path: Optional[Path] = None,
    trades_path: Optional[Path] = None,
) -> TradingService:
    cfg = cfg if cfg is not None else get_config()
    provider_cfg = section(cfg, "providers")
    if providers is None:
        providers = build_providers(
            market_choice or provider_cfg.get("market_data"),
            aggregator_choice or provider_cfg.get("aggregator"),
            rpc_choice or provider_cfg.get("rpc"),
        )
    market, aggregator, rpc = providers

    storage = section(cfg, "storage")
    execution = section(cfg, "execution")
    wallet_cfg = section(cfg, "wallet")

    store_path = strategies_path or storage.get("strategies_path")
    ledger_path = trades_path or storage.get("trades_path")
    store = StrategyStore(expand_path(store_path) if store_path else None)
    ledger = TradeLedger(expand_path(ledger_path) if ledger_path else None)
    wallet = WalletManager(wallet_path or expand_path(wallet_cfg.get("path", "~/.strategy-engine/wallet.json")))

    resolver = TokenResolver(market=market, rpc=rpc)
    quote_engine = QuoteEngine(
        aggregator, resolver=resolver, ttl_sec=float(section(cfg, "quotes").get("ttl_sec", 30))
    )
    executor = SwapExecutor(
        aggregator,
        rpc,
        quote_engine=quote_engine,
        confirm_timeout_sec=float(execution.get("confirm_timeout_sec", 60)),
        poll_interval_sec=float(execution.get("poll_interval_sec", 2)),
        max_quote_refreshes=int(execution.get("max_quote_refreshes", 1)),
    )
    scheduler = StrategyScheduler(
        store=store,
        market=market,
        resolver=resolver,
        quote_engine=quote_engine,
        executor=executor,
        signer=wallet,
        ledger=ledger,
        settings=SchedulerSettings.from_config(cfg),
    )
    return TradingService(
        store=store,
        ledger=ledger,
        scheduler=scheduler,
        resolver=resolver,
        quote_engine=quote_engine,
        executor=executor,
        wallet=wallet,
        rpc=rpc,
        market=market,
        defaults=section(cfg, "defaults"),
    )


__all__ = ["AGGREGATOR_CHOICES", "MARKET_DATA_CHOICES", "RPC_CHOICES", "build_providers", "build_service"]
