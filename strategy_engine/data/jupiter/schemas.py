from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

NO_ROUTE_CODES = frozenset({"COULD_NOT_FIND_ANY_ROUTE", "NO_ROUTES_FOUND", "TOKEN_NOT_TRADABLE"})


class _JupiterModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class JupiterSwapStep(_JupiterModel):
    amm_key: str = Field(alias="ammKey")
    label: Optional[str] = None
    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    fee_amount: Optional[str] = Field(default=None, alias="feeAmount")
    fee_mint: Optional[str] = Field(default=None, alias="feeMint")


class JupiterRouteLeg(_JupiterModel):
    swap_info: JupiterSwapStep = Field(alias="swapInfo")
    percent: int = 100


class JupiterQuoteResponse(_JupiterModel):
    """Jupiter v6 ``/quote`` body. Amounts stay strings on the wire; use the ``*_units`` helpers."""

    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    other_amount_threshold: str = Field(alias="otherAmountThreshold")
    swap_mode: str = Field(default="ExactIn", alias="swapMode")
    slippage_bps: int = Field(alias="slippageBps")
    price_impact_pct: str = Field(default="0", alias="priceImpactPct")
    route_plan: List[JupiterRouteLeg] = Field(default_factory=list, alias="routePlan")
    context_slot: Optional[int] = Field(default=None, alias="contextSlot")

    @property
    def in_units(self) -> int:
        return int(self.in_amount)

    @property
    def out_units(self) -> int:
        return int(self.out_amount)

    @property
    def has_route(self) -> bool:
        return bool(self.route_plan) and self.out_units > 0

    def route_labels(self) -> List[str]:
        return [leg.swap_info.label or "Unknown" for leg in self.route_plan]

    def route_label(self, separator: str = " → ") -> str:
        return separator.join(self.route_labels())


class JupiterSwapResponse(_JupiterModel):
    swap_transaction: str = Field(alias="swapTransaction")
    last_valid_block_height: Optional[int] = Field(default=None, alias="lastValidBlockHeight")
    prioritization_fee_lamports: Optional[int] = Field(default=None, alias="prioritizationFeeLamports")


class JupiterErrorResponse(_JupiterModel):
    error: str
    error_code: Optional[str] = Field(default=None, alias="errorCode")


__all__ = [
    "JupiterErrorResponse",
    "JupiterQuoteResponse",
    "JupiterRouteLeg",
    "JupiterSwapResponse",
    "JupiterSwapStep",
    "NO_ROUTE_CODES",
]
