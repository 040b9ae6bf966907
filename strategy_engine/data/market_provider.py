from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import httpx

from strategy_engine.core.exceptions import CircuitBreakerOpen, UpstreamError
from strategy_engine.data.market_types import Candle, NewListing, TokenOverview, TokenSearchResult

logger = logging.getLogger(__name__)


class MarketDataProvider(Protocol):
    async def get_ohlcv(
        self,
        token_mint: str,
        interval: str,
        limit: int = 100,
        end_ts: Optional[int] = None,
    ) -> List[Candle]:
        ...

    async def get_token_overview(self, token_mint: str) -> TokenOverview:
        ...

    async def search_tokens(self, keyword: str, limit: int = 10) -> List[TokenSearchResult]:
        ...

    async def get_new_listings(self, limit: int = 20) -> List[NewListing]:
        ...


async def price_hint(provider: Optional[MarketDataProvider], token_mint: str) -> Optional[float]:
    """Best-effort USD price used for trade bookkeeping; None when unavailable."""
    if provider is None:
        return None
    try:
        overview = await provider.get_token_overview(token_mint)
    except (UpstreamError, CircuitBreakerOpen, httpx.HTTPError) as exc:
        logger.debug("no price for %s: %s", token_mint, exc)
        return None
    return overview.price_usd


__all__ = ["MarketDataProvider", "price_hint"]
