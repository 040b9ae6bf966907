from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from strategy_engine.core.request_spec import RequestSpec

_BPS_CEILING = 10_000
FeeSetting = Optional[Union[int, str]]


class JupiterRequestError(ValueError):
    pass


def _check_pair(input_mint: str, output_mint: str) -> None:
    if not (input_mint and output_mint):
        raise JupiterRequestError("input_mint and output_mint are required")
    if input_mint == output_mint:
        raise JupiterRequestError("input_mint and output_mint must differ")


def _check_size(amount: int, slippage_bps: int) -> None:
    if int(amount) <= 0:
        raise JupiterRequestError("amount must be positive")
    if not 0 <= slippage_bps <= _BPS_CEILING:
        raise JupiterRequestError(f"slippage_bps must be between 0 and {_BPS_CEILING}")


def _priority_fee(value: FeeSetting) -> FeeSetting:
    # Jupiter accepts a lamport count or the literal "auto"
    if value is None or value == "auto":
        return value
    if isinstance(value, str):
        raise JupiterRequestError("prioritization_fee_lamports must be an int or 'auto'")
    return int(value)


@dataclass(frozen=True)
class JupiterRequestFactory:
    api_key: str = ""
    base_url: str = "https://quote-api.jup.ag/v6"
    quote_path: str = "/quote"
    swap_path: str = "/swap"

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key} if self.api_key else {}

    def build_quote_request(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        swap_mode: Optional[str] = None,
        only_direct_routes: Optional[bool] = None,
        max_accounts: Optional[int] = None,
    ) -> RequestSpec:
        _check_pair(input_mint, output_mint)
        _check_size(amount, slippage_bps)
        optional = {
            "swapMode": swap_mode or None,
            "onlyDirectRoutes": None if only_direct_routes is None else str(only_direct_routes).lower(),
            "maxAccounts": None if max_accounts is None else int(max_accounts),
        }
        query: Dict[str, Any] = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": int(amount),
            "slippageBps": int(slippage_bps),
        }
        query.update({key: value for key, value in optional.items() if value is not None})
        return RequestSpec("GET", self.base_url, self.quote_path, query, self.auth_headers)

    def build_swap_request(
        self,
        quote_response: Dict[str, Any],
        user_pubkey: str,
        wrap_and_unwrap_sol: bool = True,
        dynamic_compute_unit_limit: bool = True,
        prioritization_fee_lamports: FeeSetting = "auto",
    ) -> RequestSpec:
        """POST body that asks Jupiter to serialize an unsigned swap for ``user_pubkey``."""
        if not isinstance(quote_response, dict):
            raise JupiterRequestError("quote_response must be a dict")
        if not user_pubkey:
            raise JupiterRequestError("user_pubkey is required")
        body: Dict[str, Any] = {
            "quoteResponse": quote_response,
            "userPublicKey": user_pubkey,
            "wrapAndUnwrapSol": bool(wrap_and_unwrap_sol),
            "dynamicComputeUnitLimit": bool(dynamic_compute_unit_limit),
        }
        fee = _priority_fee(prioritization_fee_lamports)
        if fee is not None:
            body["prioritizationFeeLamports"] = fee
        headers = dict(self.auth_headers, **{"Content-Type": "application/json"})
        return RequestSpec("POST", self.base_url, self.swap_path, {}, headers, json=body)


__all__ = ["JupiterRequestError", "JupiterRequestFactory"]
