from __future__ import annotations

import base64
import itertools
from typing import Any, Dict, List, Optional

from strategy_engine.core.request_spec import JsonRpcSpec


class SolanaRpcRequestError(ValueError):
    pass


class SolanaRpcRequestFactory:
    def __init__(self, rpc_url: str = "https://api.mainnet-beta.solana.com", api_key: str = "") -> None:
        self.rpc_url = rpc_url.rstrip("/")
        self.api_key = (api_key or "").strip()
        self._ids = itertools.count(1)

    def build_rpc_request(self, method: str, params: Optional[List[Any]] = None) -> JsonRpcSpec:
        if not method:
            raise SolanaRpcRequestError("method is required")
        query: Dict[str, Any] = {"api-key": self.api_key} if self.api_key else {}
        return JsonRpcSpec(
            base_url=self.rpc_url,
            method=method,
            params=params or [],
            request_id=next(self._ids),
            query=query,
        )

    def build_send_transaction_request(
        self, raw_transaction: bytes, skip_preflight: bool = False, max_retries: int = 3
    ) -> JsonRpcSpec:
        if not raw_transaction:
            raise SolanaRpcRequestError("raw_transaction is required")
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        options = {
            "encoding": "base64",
            "skipPreflight": bool(skip_preflight),
            "preflightCommitment": "confirmed",
            "maxRetries": int(max_retries),
        }
        return self.build_rpc_request("sendTransaction", [encoded, options])

    def build_signature_statuses_request(self, signatures: List[str]) -> JsonRpcSpec:
        if not signatures:
            raise SolanaRpcRequestError("at least one signature is required")
        if len(signatures) > 256:
            raise SolanaRpcRequestError("getSignatureStatuses supports up to 256 signatures")
        return self.build_rpc_request("getSignatureStatuses", [list(signatures), {"searchTransactionHistory": True}])

    def build_parsed_account_request(self, address: str) -> JsonRpcSpec:
        if not address:
            raise SolanaRpcRequestError("address is required")
        return self.build_rpc_request("getParsedAccountInfo", [address, {"encoding": "jsonParsed"}])

    def build_balance_request(self, address: str) -> JsonRpcSpec:
        if not address:
            raise SolanaRpcRequestError("address is required")
        return self.build_rpc_request("getBalance", [address, {"commitment": "confirmed"}])


__all__ = ["SolanaRpcRequestError", "SolanaRpcRequestFactory"]
