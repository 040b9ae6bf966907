import asyncio
import time
from pathlib import Path

import pytest

from strategy_engine.core.exceptions import (
    ExecutionCancelled,
    ExecutionTimeout,
    QuoteExpired,
    SimulationFailed,
    SlippageExceeded,
    SubmissionFailed,
)
from strategy_engine.data.jupiter.provider import MockJupiterProvider
from strategy_engine.data.solana_rpc.provider import MockSolanaRpcProvider
from strategy_engine.execution.executor import SwapExecutor, classify_error
from strategy_engine.quotes.engine import QuoteEngine
from strategy_engine.tokens.resolver import TokenResolver
from strategy_engine.wallet.manager import WalletManager


async def _no_sleep(_seconds: float) -> None:
    return None


def _setup(tmp_path: Path, rpc: MockSolanaRpcProvider, **kwargs):
    aggregator = MockJupiterProvider()
    engine = QuoteEngine(aggregator)
    executor = SwapExecutor(aggregator, rpc, quote_engine=engine, sleep=_no_sleep, **kwargs)
    wallet = WalletManager(tmp_path / "wallet.json")
    wallet.get_or_create()
    sol, usdc = asyncio.run(TokenResolver().resolve_many(["SOL", "USDC"]))
    quote = asyncio.run(engine.quote(sol, usdc, "0.5", 100))
    return aggregator, executor, wallet, quote


def test_execute_confirms_and_reports_settled_amounts(tmp_path: Path):
    rpc = MockSolanaRpcProvider(pending_polls=2)
    _, executor, wallet, quote = _setup(tmp_path, rpc)
    receipt = asyncio.run(executor.execute(quote, wallet))
    assert receipt.signature == rpc.submitted[0]
    assert receipt.settled_input_amount == quote.input_amount
    assert receipt.settled_output_amount == quote.output_amount
    assert executor.receipt_for(receipt.signature) is receipt
    assert asyncio.run(executor.confirm(receipt.signature)) is receipt


def test_empty_signature_is_submission_failure(tmp_path: Path):
    _, executor, wallet, quote = _setup(tmp_path, MockSolanaRpcProvider(error_mode="empty"))
    with pytest.raises(SubmissionFailed):
        asyncio.run(executor.execute(quote, wallet))


@pytest.mark.parametrize(
    "mode, error",
    [("slippage", SlippageExceeded), ("simulation", SimulationFailed), ("rejected", SubmissionFailed)],
)
def test_rpc_errors_are_classified(tmp_path: Path, mode, error):
    _, executor, wallet, quote = _setup(tmp_path, MockSolanaRpcProvider(error_mode=mode))
    with pytest.raises(error):
        asyncio.run(executor.execute(quote, wallet))


def test_stale_blockhash_refreshes_quote_once(tmp_path: Path):
    aggregator, executor, wallet, quote = _setup(tmp_path, MockSolanaRpcProvider(error_mode="blockhash"))
    with pytest.raises(QuoteExpired):
        asyncio.run(executor.execute(quote, wallet))
    assert aggregator.quote_calls == 2
    assert aggregator.swap_calls == 2


def test_expired_quote_is_refreshed_before_submission(tmp_path: Path):
    rpc = MockSolanaRpcProvider()
    aggregator, executor, wallet, quote = _setup(tmp_path, rpc, max_quote_refreshes=1)
    executor._clock = lambda: quote.created_at + quote.ttl_sec + 0.5
    with pytest.raises(QuoteExpired):
        asyncio.run(executor.execute(quote, wallet))
    assert aggregator.swap_calls == 0
    assert rpc.submitted == []


def test_on_chain_slippage_failure(tmp_path: Path):
    rpc = MockSolanaRpcProvider()
    rpc.status_error = {"InstructionError": [3, {"Custom": 6001}]}
    _, executor, wallet, quote = _setup(tmp_path, rpc)
    with pytest.raises(SlippageExceeded) as excinfo:
        asyncio.run(executor.execute(quote, wallet))
    assert excinfo.value.signature == rpc.submitted[0]


def test_unconfirmed_swap_times_out_and_resolves_later(tmp_path: Path):
    rpc = MockSolanaRpcProvider(pending_polls=3)
    _, executor, wallet, quote = _setup(tmp_path, rpc, confirm_timeout_sec=0)
    with pytest.raises(ExecutionTimeout) as excinfo:
        asyncio.run(executor.execute(quote, wallet))
    signature = excinfo.value.signature
    assert signature == rpc.submitted[0]
    assert executor.pending_signatures() == [signature]

    assert asyncio.run(executor.final_status(signature)) == (None, None)
    assert asyncio.run(executor.final_status(signature)) == (None, None)
    assert asyncio.run(executor.final_status(signature)) == ("CONFIRMED", None)
    assert executor.pending_signatures() == []


def test_unknown_signature_has_no_final_status(tmp_path: Path):
    _, executor, _, _ = _setup(tmp_path, MockSolanaRpcProvider())
    assert asyncio.run(executor.final_status("unknown")) == (None, None)


def test_concurrent_executions_are_serialized_per_wallet(tmp_path: Path):
    rpc = MockSolanaRpcProvider()
    _, executor, wallet, quote = _setup(tmp_path, rpc)

    async def run():
        return await asyncio.gather(executor.execute(quote, wallet), executor.execute(quote, wallet))

    first, second = asyncio.run(run())
    assert first.signature != second.signature
    assert len(rpc.submitted) == 2


def test_classify_error_markers():
    assert isinstance(classify_error("custom program error: 0x1771"), SlippageExceeded)
    assert isinstance(classify_error("Blockhash not found"), QuoteExpired)
    assert isinstance(classify_error("Blockhash not found", submitted=True), SubmissionFailed)
    assert isinstance(classify_error("x", logs=["Program log: SlippageToleranceExceeded"]), SlippageExceeded)
    assert isinstance(classify_error("Transaction simulation failed: AccountNotFound"), SimulationFailed)
    assert isinstance(classify_error(""), SubmissionFailed)


def test_declined_submission_signs_and_sends_nothing(tmp_path: Path):
    rpc = MockSolanaRpcProvider()
    aggregator, executor, wallet, quote = _setup(tmp_path, rpc)
    with pytest.raises(ExecutionCancelled):
        asyncio.run(executor.execute(quote, wallet, should_submit=lambda: False))
    assert aggregator.swap_calls == 1
    assert rpc.submitted == []
    assert executor.pending_signatures() == []


def test_receipt_cache_keeps_most_recent(tmp_path: Path):
    rpc = MockSolanaRpcProvider()
    _, executor, wallet, quote = _setup(tmp_path, rpc, max_receipts=2)

    async def run():
        return [await executor.execute(quote, wallet) for _ in range(3)]

    first, second, third = asyncio.run(run())
    assert executor.receipt_for(first.signature) is None
    assert executor.receipt_for(second.signature) is second
    assert executor.receipt_for(third.signature) is third
