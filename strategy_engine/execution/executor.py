from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx

from strategy_engine.core.exceptions import (
    CircuitBreakerOpen,
    ExecutionCancelled,
    ExecutionError,
    ExecutionTimeout,
    QuoteExpired,
    RpcError,
    SimulationFailed,
    SlippageExceeded,
    SubmissionFailed,
    UpstreamError,
)
from strategy_engine.data.aggregator import SwapAggregator
from strategy_engine.data.solana_rpc.provider import SolanaRpc
from strategy_engine.quotes.engine import Quote, QuoteEngine
from strategy_engine.wallet.manager import TransactionSigner

logger = logging.getLogger(__name__)

# Jupiter program error 6001
SLIPPAGE_MARKERS = ("0x1771", "slippagetoleranceexceeded", "slippage", '"custom": 6001')
BLOCKHASH_MARKERS = ("blockhash not found", "blockhashnotfound", "block height exceeded", "blockhash")
SIMULATION_MARKERS = ("simulation failed", "simulation", "preflight")
MAX_RECEIPTS = 1024


@dataclass(frozen=True)
class SwapOptions:
    wrap_and_unwrap_sol: bool = True
    dynamic_compute_unit_limit: bool = True
    prioritization_fee_lamports: Optional[Union[int, str]] = "auto"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "wrap_and_unwrap_sol": self.wrap_and_unwrap_sol,
            "dynamic_compute_unit_limit": self.dynamic_compute_unit_limit,
            "prioritization_fee_lamports": self.prioritization_fee_lamports,
        }


@dataclass(frozen=True)
class ExecutionReceipt:
    signature: str
    input_mint: str
    output_mint: str
    settled_input_amount: Decimal
    settled_output_amount: Decimal
    price_impact: str
    slot: Optional[int] = None
    quote: Optional[Quote] = field(default=None, repr=False, compare=False)


def classify_error(
    message: str,
    logs: Optional[List[str]] = None,
    data: Any = None,
    signature: Optional[str] = None,
    submitted: bool = False,
) -> ExecutionError:
    parts = [message or ""]
    parts.extend(logs or [])
    if data is not None:
        parts.append(json.dumps(data, default=str))
    text = " ".join(parts).lower()
    if any(marker in text for marker in SLIPPAGE_MARKERS):
        return SlippageExceeded(f"Slippage tolerance exceeded: {message}", signature=signature)
    if not submitted and any(marker in text for marker in BLOCKHASH_MARKERS):
        return QuoteExpired(f"Route expired before submission: {message}", signature=signature)
    if not submitted and any(marker in text for marker in SIMULATION_MARKERS):
        return SimulationFailed(f"Simulation failed: {message}", signature=signature)
    return SubmissionFailed(message or "Transaction failed", signature=signature)


class SwapExecutor:
    def __init__(
        self,
        aggregator: SwapAggregator,
        rpc: SolanaRpc,
        quote_engine: Optional[QuoteEngine] = None,
        confirm_timeout_sec: float = 60.0,
        poll_interval_sec: float = 2.0,
        max_quote_refreshes: int = 1,
        swap_options: Optional[SwapOptions] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_receipts: int = MAX_RECEIPTS,
    ) -> None:
        self.aggregator = aggregator
        self.rpc = rpc
        self.quote_engine = quote_engine
        self.confirm_timeout_sec = confirm_timeout_sec
        self.poll_interval_sec = poll_interval_sec
        self.max_quote_refreshes = max(0, max_quote_refreshes)
        self.swap_options = swap_options or SwapOptions()
        self._clock = clock
        self._sleep = sleep
        self.max_receipts = max(1, max_receipts)
        self._receipts: "OrderedDict[str, ExecutionReceipt]" = OrderedDict()
        self._pending: Dict[str, Quote] = {}

    def receipt_for(self, signature: str) -> Optional[ExecutionReceipt]:
        return self._receipts.get(signature)

    def pending_signatures(self) -> List[str]:
        return list(self._pending)

    async def execute(
        self, quote: Quote, signer: TransactionSigner, should_submit: Optional[Callable[[], bool]] = None
    ) -> ExecutionReceipt:
        """Sign and submit ``quote``, then wait for confirmation.

        ``should_submit`` is checked under the wallet lock right before signing; a false
        result raises ``ExecutionCancelled`` and nothing is sent.
        """
        current = quote
        refreshes = 0
        while True:
            if current.is_expired(self._clock()):
                current = await self._refresh(current, refreshes, "quote expired before execution")
                refreshes += 1
                continue
            try:
                signature = await self._submit(current, signer, should_submit)
            except QuoteExpired as exc:
                current = await self._refresh(current, refreshes, str(exc), cause=exc)
                refreshes += 1
                continue
            existing = self._receipts.get(signature)
            if existing is not None:
                return existing
            return await self.confirm(signature, current)

    async def confirm(
        self, signature: str, quote: Optional[Quote] = None, timeout_sec: Optional[float] = None
    ) -> ExecutionReceipt:
        existing = self._receipts.get(signature)
        if existing is not None:
            return existing
        quote = quote or self._pending.get(signature)
        if quote is None:
            raise ValueError(f"No quote known for signature {signature}")
        timeout = self.confirm_timeout_sec if timeout_sec is None else timeout_sec
        deadline = self._clock() + timeout
        while True:
            status = await self._poll_status(signature)
            if status is not None and status.err is not None:
                self._pending.pop(signature, None)
                raise classify_error(
                    f"Transaction {signature} failed on-chain",
                    data=status.err,
                    signature=signature,
                    submitted=True,
                )
            if status is not None and status.settled:
                receipt = ExecutionReceipt(
                    signature=signature,
                    input_mint=quote.input_asset.address,
                    output_mint=quote.output_asset.address,
                    settled_input_amount=quote.input_amount,
                    settled_output_amount=quote.output_amount,
                    price_impact=quote.price_impact_pct,
                    slot=status.slot,
                    quote=quote,
                )
                self._keep_receipt(receipt)
                self._pending.pop(signature, None)
                logger.info("swap %s confirmed (%s)", signature, status.confirmation_status)
                return receipt
            if self._clock() >= deadline:
                break
            await self._sleep(self.poll_interval_sec)
        self._pending[signature] = quote
        logger.warning("swap %s not confirmed after %.1fs", signature, timeout)
        raise ExecutionTimeout(f"Confirmation timed out for {signature}", signature=signature)

    async def final_status(self, signature: str) -> Tuple[Optional[str], Optional[str]]:
        """One status poll: ("CONFIRMED"|"FAILED", reason) once settled, (None, None) while in flight."""
        status = await self._poll_status(signature)
        if status is None:
            return None, None
        if status.err is not None:
            self._pending.pop(signature, None)
            error = classify_error("Transaction failed on-chain", data=status.err, signature=signature, submitted=True)
            return "FAILED", str(error)
        if status.settled:
            self._pending.pop(signature, None)
            return "CONFIRMED", None
        return None, None

    async def _refresh(
        self, quote: Quote, refreshes: int, reason: str, cause: Optional[BaseException] = None
    ) -> Quote:
        if self.quote_engine is None or refreshes >= self.max_quote_refreshes:
            raise QuoteExpired(f"Quote cannot be refreshed: {reason}") from cause
        logger.info("refreshing quote for %s -> %s: %s", quote.input_asset.label, quote.output_asset.label, reason)
        return await self.quote_engine.refresh(quote)

    def _keep_receipt(self, receipt: ExecutionReceipt) -> None:
        self._receipts[receipt.signature] = receipt
        while len(self._receipts) > self.max_receipts:
            self._receipts.popitem(last=False)

    async def _submit(
        self, quote: Quote, signer: TransactionSigner, should_submit: Optional[Callable[[], bool]] = None
    ) -> str:
        try:
            swap = await self.aggregator.build_swap_tx(quote.route, signer.public_key, self.swap_options.as_dict())
        except (UpstreamError, httpx.HTTPError, CircuitBreakerOpen) as exc:
            raise SubmissionFailed(f"Swap transaction could not be built: {exc}") from exc

        async with signer.exclusive():
            if should_submit is not None and not should_submit():
                raise ExecutionCancelled("Execution cancelled before submission")
            signed = signer.sign(swap.swap_transaction)
            try:
                signature = await self.rpc.send_transaction(signed.raw)
            except RpcError as exc:
                raise classify_error(str(exc), logs=exc.logs, data=exc.data) from exc
            except httpx.TimeoutException:
                # the transaction may still land; track it by its own signature
                logger.warning("sendTransaction timed out, tracking %s", signed.signature)
                signature = signed.signature
            except (UpstreamError, httpx.HTTPError, CircuitBreakerOpen) as exc:
                raise SubmissionFailed(f"Transaction submission failed: {exc}") from exc

        if not signature or not signature.strip():
            raise SubmissionFailed("RPC returned an empty signature")
        logger.info("submitted swap %s for %s %s", signature, quote.input_amount, quote.input_asset.label)
        return signature

    async def _poll_status(self, signature: str):
        try:
            statuses = await self.rpc.get_signature_statuses([signature])
        except (UpstreamError, httpx.HTTPError, CircuitBreakerOpen) as exc:
            logger.warning("status poll for %s failed: %s", signature, exc)
            return None
        return statuses[0] if statuses else None


__all__ = ["ExecutionReceipt", "SwapExecutor", "SwapOptions", "classify_error"]
