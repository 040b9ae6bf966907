from __future__ import annotations

import base64
import hashlib
import json
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from strategy_engine.core.exceptions import UpstreamBadResponse
from strategy_engine.core.fixtures import fixture_dir, load_fixture
from strategy_engine.core.http import UpstreamHttpClient, live_flag
from strategy_engine.data.aggregator import SwapAggregator
from strategy_engine.data.jupiter.request_factory import JupiterRequestFactory
from strategy_engine.data.jupiter.schemas import JupiterErrorResponse, JupiterQuoteResponse, JupiterSwapResponse

ModelT = TypeVar("ModelT", bound=BaseModel)
FIXTURE_FILES = ("quote_ok", "quote_error", "swap_ok", "swap_error")


@dataclass(frozen=True)
class JupiterSettings:
    api_key: str
    base_url: str
    quote_path: str
    swap_path: str
    live: bool

    @classmethod
    def from_env(cls) -> "JupiterSettings":
        def env(name: str, default: str = "") -> str:
            return os.getenv(name, default).strip()

        # the public v6 endpoint works without a key
        return cls(
            api_key=env("JUPITER_API_KEY"),
            base_url=env("JUPITER_BASE_URL", "https://quote-api.jup.ag/v6").rstrip("/"),
            quote_path=env("JUPITER_QUOTE_PATH", "/quote"),
            swap_path=env("JUPITER_SWAP_PATH", "/swap"),
            live=live_flag(env("JUPITER_LIVE", "0")),
        )


class JupiterHttpClient(UpstreamHttpClient):
    name = "Jupiter"


def parse_jupiter(payload: Any, model: Type[ModelT], context: str) -> ModelT:
    """Validate a Jupiter body; ``{"error": ...}`` bodies become ``UpstreamBadResponse``."""
    if isinstance(payload, dict) and payload.get("error"):
        error = JupiterErrorResponse.model_validate(payload)
        raise UpstreamBadResponse(error.error, body=error.error_code or error.error)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Jupiter {context} response invalid") from exc


class JupiterProvider(SwapAggregator):
    def __init__(self, settings: JupiterSettings, http_client: Optional[JupiterHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = JupiterRequestFactory(
            api_key=settings.api_key,
            base_url=settings.base_url,
            quote_path=settings.quote_path,
            swap_path=settings.swap_path,
        )
        self._client = http_client or JupiterHttpClient()
        self._owns_client = http_client is None

    async def __aenter__(self) -> "JupiterProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def get_quote(self, params: Dict[str, Any], retries: Optional[int] = None) -> JupiterQuoteResponse:
        spec = self.request_factory.build_quote_request(**params)
        return parse_jupiter(await self._client.request(spec, retries=retries), JupiterQuoteResponse, "quote")

    async def build_swap_tx(
        self, quote_response: Dict[str, Any], user_pubkey: str, opts: Dict[str, Any]
    ) -> JupiterSwapResponse:
        spec = self.request_factory.build_swap_request(quote_response, user_pubkey, **opts)
        return parse_jupiter(await self._client.request(spec), JupiterSwapResponse, "swap")


def build_offline_swap_transaction(user_pubkey: str, seed: bytes) -> str:
    """Unsigned v0 transaction paid by ``user_pubkey``; ``seed`` stands in for the recent blockhash."""
    payer = Pubkey.from_string(user_pubkey)
    instruction = transfer(TransferParams(from_pubkey=payer, to_pubkey=payer, lamports=0))
    blockhash = Hash(hashlib.sha256(seed).digest())
    message = MessageV0.try_compile(payer, [instruction], [], blockhash)
    unsigned = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(unsigned)).decode("ascii")


class MockJupiterProvider(SwapAggregator):
    """Fixture-backed aggregator. Quotes are rescaled to the requested pair and amount.

    ``error_mode`` is ``"quote"`` or ``"swap"`` to serve that call's error fixture.
    """

    def __init__(self, fixture_path: Optional[Path] = None, error_mode: Optional[str] = None) -> None:
        self.fixture_dir = fixture_path or fixture_dir("jupiter")
        self.fixtures = {name: load_fixture(self.fixture_dir, f"{name}.json") for name in FIXTURE_FILES}
        self.error_mode = error_mode
        self.request_factory = JupiterRequestFactory(api_key="offline")
        self.quote_calls = 0
        self.swap_calls = 0

    @property
    def rate(self) -> Decimal:
        sample = self.fixtures["quote_ok"]
        return Decimal(sample["outAmount"]) / Decimal(sample["inAmount"])

    async def get_quote(self, params: Dict[str, Any], retries: Optional[int] = None) -> JupiterQuoteResponse:
        self.quote_calls += 1
        self.request_factory.build_quote_request(**params)
        if self.error_mode == "quote":
            return parse_jupiter(self.fixtures["quote_error"], JupiterQuoteResponse, "quote")
        units = int(params["amount"])
        payload = dict(
            self.fixtures["quote_ok"],
            inputMint=params["input_mint"],
            outputMint=params["output_mint"],
            inAmount=str(units),
            outAmount=str(int(units * self.rate)),
            slippageBps=int(params["slippage_bps"]),
        )
        return parse_jupiter(payload, JupiterQuoteResponse, "quote")

    async def build_swap_tx(
        self, quote_response: Dict[str, Any], user_pubkey: str, opts: Dict[str, Any]
    ) -> JupiterSwapResponse:
        self.swap_calls += 1
        if self.error_mode == "swap":
            return parse_jupiter(self.fixtures["swap_error"], JupiterSwapResponse, "swap")
        # distinct per call so repeated swaps never share a signature
        seed = json.dumps([quote_response, user_pubkey, self.swap_calls], sort_keys=True, default=str)
        payload = dict(
            self.fixtures["swap_ok"],
            swapTransaction=build_offline_swap_transaction(user_pubkey, seed.encode("utf-8")),
        )
        return parse_jupiter(payload, JupiterSwapResponse, "swap")


def get_jupiter_provider(settings: Optional[JupiterSettings] = None, fixture_path: Optional[Path] = None):
    cfg = settings or JupiterSettings.from_env()
    return JupiterProvider(cfg) if cfg.live else MockJupiterProvider(fixture_path=fixture_path)


__all__ = [
    "JupiterHttpClient",
    "JupiterProvider",
    "JupiterSettings",
    "MockJupiterProvider",
    "build_offline_swap_transaction",
    "get_jupiter_provider",
    "parse_jupiter",
]
