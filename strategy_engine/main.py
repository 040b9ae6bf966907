from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from strategy_engine.composition import AGGREGATOR_CHOICES, MARKET_DATA_CHOICES, RPC_CHOICES, build_service
from strategy_engine.config import configure_logging, get_config, load_config
from strategy_engine.core.exceptions import (
    ExecutionError,
    InvalidStateTransition,
    InvalidStrategyConfig,
    NotFound,
    ProviderMisconfigured,
    QuoteError,
    UpstreamError,
    WalletCorrupt,
)
from strategy_engine.service import TradingService

console = Console()
err_console = Console(stderr=True)

EXIT_ERROR = 1
EXIT_WALLET_CORRUPT = 2


def _bps(value: str) -> int:
    try:
        bps = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid slippage: {value}") from exc
    if not 1 <= bps <= 5000:
        raise argparse.ArgumentTypeError("slippage must be between 1 and 5000 bps")
    return bps


def _positive_amount(value: str) -> str:
    try:
        amount = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {value}") from exc
    if amount <= 0:
        raise argparse.ArgumentTypeError("amount must be positive")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="strategy-engine", description="Solana strategy engine CLI")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--market-data", choices=MARKET_DATA_CHOICES, default=None, help="Market data provider")
    parser.add_argument("--aggregator", choices=AGGREGATOR_CHOICES, default=None, help="Swap aggregator")
    parser.add_argument("--rpc", choices=RPC_CHOICES, default=None, help="Solana RPC provider")
    parser.add_argument("--owner", type=str, default="local", help="Owner id for strategies and trades")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")

    commands = parser.add_subparsers(dest="command", required=True)

    resolve = commands.add_parser("resolve", help="Resolve a symbol or mint address")
    resolve.add_argument("token")

    for name, help_text in (("quote", "Get a swap quote"), ("swap", "Execute a swap")):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("input_token")
        sub.add_argument("output_token")
        sub.add_argument("amount", type=_positive_amount)
        sub.add_argument("--slippage-bps", type=_bps, default=100)

    wallet = commands.add_parser("wallet", help="Wallet operations")
    wallet_commands = wallet.add_subparsers(dest="wallet_command", required=True)
    wallet_commands.add_parser("info", help="Show address, SOL balance and whether it was just created")
    export = wallet_commands.add_parser("export", help="Print the secret key (audited)")
    export.add_argument("--reason", required=True, help="Why the secret is being exported")

    strategy = commands.add_parser("strategy", help="Strategy management")
    strategy_commands = strategy.add_subparsers(dest="strategy_command", required=True)
    create = strategy_commands.add_parser("create", help="Create an inactive strategy")
    create.add_argument("--name", required=True)
    create.add_argument("--description", required=True)
    source = create.add_mutually_exclusive_group(required=True)
    source.add_argument("--config-json", type=str, help="Strategy config as a JSON object")
    source.add_argument("--config-file", type=str, help="Path to a JSON file holding the strategy config")
    strategy_commands.add_parser("list", help="List strategies, newest first")
    for name in ("activate", "deactivate"):
        sub = strategy_commands.add_parser(name, help=f"{name.capitalize()} a strategy")
        sub.add_argument("strategy_id")
    activity = strategy_commands.add_parser("activity", help="Show a strategy's activity trail")
    activity.add_argument("strategy_id")
    activity.add_argument("--limit", type=int, default=20)
    stats = strategy_commands.add_parser("stats", help="PnL and win rate for a strategy or owner")
    stats.add_argument("strategy_id", nargs="?", default=None)
    strategy_commands.add_parser("status", help="Active strategies and trades today")

    run = commands.add_parser("run", help="Run the strategy scheduler")
    run.add_argument("--once", action="store_true", help="Run a single cycle and exit")

    serve = commands.add_parser("serve-mock", help="Serve the mock upstream API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=18080)
    return parser


def _emit(value: Any, as_json: bool) -> None:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in value]
    if as_json:
        print(json.dumps(value, indent=2, default=str))
        return
    if isinstance(value, dict):
        table = Table(show_header=False)
        table.add_column("Field")
        table.add_column("Value")
        for key, item in value.items():
            table.add_row(str(key), json.dumps(item, default=str) if isinstance(item, (dict, list)) else str(item))
        console.print(table)
        return
    console.print(value)


def _print_strategies(strategies: List[Any]) -> None:
    table = Table(title="Strategies")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Active")
    for strategy in strategies:
        table.add_row(strategy.id, strategy.name, strategy.type, "yes" if strategy.is_active else "no")
    console.print(table)


def _print_cycle(results: List[Any]) -> None:
    table = Table(title="Cycle Results")
    table.add_column("Strategy")
    table.add_column("Action")
    table.add_column("Details")
    for result in results:
        table.add_row(result.strategy_name, result.action, result.error or result.details)
    console.print(table)


def _load_strategy_config(args: argparse.Namespace) -> Dict[str, Any]:
    if args.config_file:
        text = Path(args.config_file).read_text(encoding="utf-8")
    else:
        text = args.config_json
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise InvalidStrategyConfig(f"Strategy config is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidStrategyConfig("Strategy config must be a JSON object")
    return data


async def _dispatch(service: TradingService, args: argparse.Namespace) -> None:
    as_json = args.json
    if args.command == "resolve":
        _emit(await service.resolve_token(args.token), as_json)
    elif args.command == "quote":
        _emit(await service.get_quote(args.input_token, args.output_token, args.amount, args.slippage_bps), as_json)
    elif args.command == "swap":
        _emit(await service.execute_swap(args.input_token, args.output_token, args.amount, args.slippage_bps), as_json)
    elif args.command == "wallet":
        if args.wallet_command == "info":
            _emit(await service.get_wallet_info(), as_json)
        else:
            print(service.wallet.export_secret(args.reason))
    elif args.command == "strategy":
        await _dispatch_strategy(service, args)
    elif args.command == "run":
        if args.once:
            results = await service.run_once(args.owner)
            if as_json:
                _emit(results, True)
            else:
                _print_cycle(results)
            service.ledger.summarize(args.owner, console=console)
        else:
            try:
                await service.scheduler.run_forever(owner=args.owner)
            finally:
                await service.scheduler.drain()


async def _dispatch_strategy(service: TradingService, args: argparse.Namespace) -> None:
    as_json = args.json
    command = args.strategy_command
    if command == "create":
        payload = {
            "owner": args.owner,
            "name": args.name,
            "description": args.description,
            "config": _load_strategy_config(args),
        }
        _emit(service.create_strategy(payload), as_json)
    elif command == "list":
        strategies = service.list_strategies(args.owner)
        if as_json:
            _emit(strategies, True)
        else:
            _print_strategies(strategies)
    elif command == "activate":
        _emit(service.activate_strategy(args.strategy_id), as_json)
    elif command == "deactivate":
        _emit(service.deactivate_strategy(args.strategy_id), as_json)
    elif command == "activity":
        _emit(service.get_strategy_activity(args.strategy_id, args.limit), as_json)
    elif command == "stats":
        _emit(service.get_strategy_stats(args.strategy_id, owner=args.owner), as_json)
    elif command == "status":
        _emit(service.get_strategy_status(args.owner), as_json)


async def _run(service: TradingService, args: argparse.Namespace) -> None:
    try:
        await _dispatch(service, args)
    finally:
        await service.aclose()
        service.ledger.close()


def cmd_serve_mock(host: str, port: int) -> None:
    uvicorn.run("mock_api.server:app", host=host, port=port)


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    cfg = load_config(args.config) if args.config else get_config()
    configure_logging(cfg)

    if args.command == "serve-mock":
        cmd_serve_mock(args.host, args.port)
        return 0

    try:
        service = build_service(
            cfg,
            market_choice=args.market_data,
            aggregator_choice=args.aggregator,
            rpc_choice=args.rpc,
        )
        service.owner = args.owner
        asyncio.run(_run(service, args))
    except WalletCorrupt as exc:
        err_console.print(f"[bold red]Wallet corrupt:[/] {exc}")
        return EXIT_WALLET_CORRUPT
    except (
        ExecutionError,
        InvalidStateTransition,
        InvalidStrategyConfig,
        NotFound,
        ProviderMisconfigured,
        QuoteError,
        UpstreamError,
    ) as exc:
        err_console.print(f"[red]{type(exc).__name__}:[/] {exc}")
        if isinstance(exc, InvalidStrategyConfig):
            for error in exc.errors:
                err_console.print(f"  {error['loc']}: {error['msg']}")
        return EXIT_ERROR
    except KeyboardInterrupt:
        err_console.print("stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
