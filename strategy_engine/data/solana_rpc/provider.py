from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError
from solders.transaction import VersionedTransaction

from strategy_engine.core.exceptions import RpcError, UpstreamBadResponse
from strategy_engine.core.fixtures import fixture_dir, load_fixture
from strategy_engine.core.http import UpstreamHttpClient, live_flag
from strategy_engine.data.solana_rpc.request_factory import SolanaRpcRequestFactory
from strategy_engine.data.solana_rpc.schemas import RpcResponse, SignatureStatus, SignatureStatusesResult


class SolanaRpc(Protocol):
    async def send_transaction(self, raw_transaction: bytes, skip_preflight: bool = False) -> str:
        ...

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[SignatureStatus]]:
        ...

    async def get_mint_decimals(self, mint: str) -> Optional[int]:
        ...

    async def get_balance(self, address: str) -> int:
        ...


@dataclass(frozen=True)
class SolanaRpcSettings:
    rpc_url: str
    api_key: str
    live: bool

    @classmethod
    def from_env(cls) -> "SolanaRpcSettings":
        rpc_url = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com").strip()
        api_key = os.getenv("SOLANA_RPC_API_KEY", "").strip()
        live = live_flag(os.getenv("SOLANA_LIVE", "0"))
        return cls(rpc_url=rpc_url, api_key=api_key, live=live)


class SolanaRpcHttpClient(UpstreamHttpClient):
    name = "Solana RPC"


def _rpc_result(payload: Any, method: str) -> Any:
    try:
        response = RpcResponse.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Solana RPC {method} response invalid") from exc
    if response.error is not None:
        raise RpcError(
            response.error.message or f"Solana RPC {method} error",
            code=response.error.code,
            data=response.error.data,
            logs=response.error.logs(),
        )
    return response.result


def _statuses_from_result(result: Any) -> List[Optional[SignatureStatus]]:
    try:
        return SignatureStatusesResult.model_validate(result).value
    except ValidationError as exc:
        raise UpstreamBadResponse("Solana RPC getSignatureStatuses result invalid") from exc


def _decimals_from_account(result: Any) -> Optional[int]:
    value = (result or {}).get("value") if isinstance(result, dict) else None
    if not value:
        return None
    data = value.get("data")
    if not isinstance(data, dict):
        return None
    info = (data.get("parsed") or {}).get("info") or {}
    decimals = info.get("decimals")
    return int(decimals) if decimals is not None else None


class SolanaRpcProvider(SolanaRpc):
    def __init__(self, settings: SolanaRpcSettings, http_client: Optional[SolanaRpcHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = SolanaRpcRequestFactory(rpc_url=settings.rpc_url, api_key=settings.api_key)
        # sendTransaction is not idempotent from our side; retries happen at the executor level
        self._client = http_client or SolanaRpcHttpClient(max_retries=2)
        self._owns_client = http_client is None

    async def __aenter__(self) -> "SolanaRpcProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def send_transaction(self, raw_transaction: bytes, skip_preflight: bool = False) -> str:
        spec = self.request_factory.build_send_transaction_request(raw_transaction, skip_preflight=skip_preflight)
        payload = await self._client.request(spec, retries=0)
        result = _rpc_result(payload, "sendTransaction")
        return str(result or "")

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[SignatureStatus]]:
        spec = self.request_factory.build_signature_statuses_request(signatures)
        payload = await self._client.request(spec)
        return _statuses_from_result(_rpc_result(payload, "getSignatureStatuses"))

    async def get_mint_decimals(self, mint: str) -> Optional[int]:
        spec = self.request_factory.build_parsed_account_request(mint)
        payload = await self._client.request(spec)
        return _decimals_from_account(_rpc_result(payload, "getParsedAccountInfo"))

    async def get_balance(self, address: str) -> int:
        spec = self.request_factory.build_balance_request(address)
        payload = await self._client.request(spec)
        result = _rpc_result(payload, "getBalance")
        if isinstance(result, dict):
            return int(result.get("value") or 0)
        return int(result or 0)


class MockSolanaRpcProvider(SolanaRpc):
    """Offline RPC. Submitted transactions confirm after ``pending_polls`` status checks."""

    def __init__(
        self,
        fixture_path: Optional[Path] = None,
        error_mode: Optional[str] = None,
        pending_polls: int = 0,
    ) -> None:
        self.fixture_dir = fixture_path or fixture_dir("solana_rpc")
        self._errors: Dict[str, Any] = self._load("send_transaction_errors.json")
        self._mint_account = self._load("parsed_mint_account.json")
        self._balance = self._load("balance.json")
        self.error_mode = error_mode
        self.pending_polls = max(0, pending_polls)
        self.status_error: Optional[Any] = None
        self.submitted: List[str] = []
        self._polls: Dict[str, int] = {}

    async def send_transaction(self, raw_transaction: bytes, skip_preflight: bool = False) -> str:
        if self.error_mode:
            return str(_rpc_result(self._errors[self.error_mode], "sendTransaction") or "")
        try:
            signature = str(VersionedTransaction.from_bytes(raw_transaction).signatures[0])
        except Exception as exc:
            raise RpcError(f"failed to deserialize VersionedTransaction: {exc}", code=-32602) from exc
        self.submitted.append(signature)
        self._polls[signature] = 0
        return signature

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[SignatureStatus]]:
        statuses: List[Optional[SignatureStatus]] = []
        for signature in signatures:
            if signature not in self._polls:
                statuses.append(None)
                continue
            self._polls[signature] += 1
            if self._polls[signature] <= self.pending_polls:
                statuses.append(SignatureStatus(slot=1, confirmations=0, confirmation_status="processed"))
                continue
            statuses.append(
                SignatureStatus(slot=1, confirmations=None, err=self.status_error, confirmation_status="confirmed")
            )
        return statuses

    async def get_mint_decimals(self, mint: str) -> Optional[int]:
        return _decimals_from_account(_rpc_result(self._mint_account, "getParsedAccountInfo"))

    async def get_balance(self, address: str) -> int:
        result = _rpc_result(self._balance, "getBalance")
        return int(result.get("value") or 0)

    def _load(self, name: str) -> Dict[str, Any]:
        return load_fixture(self.fixture_dir, name)


def get_solana_rpc_provider(settings: Optional[SolanaRpcSettings] = None) -> SolanaRpc:
    cfg = settings or SolanaRpcSettings.from_env()
    if cfg.live:
        return SolanaRpcProvider(cfg)
    return MockSolanaRpcProvider()


__all__ = [
    "MockSolanaRpcProvider",
    "SolanaRpc",
    "SolanaRpcHttpClient",
    "SolanaRpcProvider",
    "SolanaRpcSettings",
    "get_solana_rpc_provider",
]
