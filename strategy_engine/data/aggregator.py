from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

if TYPE_CHECKING:
    from strategy_engine.data.jupiter.schemas import JupiterQuoteResponse, JupiterSwapResponse


class SwapAggregator(Protocol):
    async def get_quote(self, params: Dict[str, Any], retries: Optional[int] = None) -> JupiterQuoteResponse:
        ...

    async def build_swap_tx(
        self, quote_response: Dict[str, Any], user_pubkey: str, opts: Dict[str, Any]
    ) -> JupiterSwapResponse:
        ...


__all__ = ["SwapAggregator"]
