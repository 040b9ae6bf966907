from __future__ import annotations

import time
from typing import Any, Dict, Optional

from strategy_engine.core.request_spec import RequestSpec

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR

TIMEFRAME_SECONDS = {
    "1m": _MINUTE,
    "3m": 3 * _MINUTE,
    "5m": 5 * _MINUTE,
    "15m": 15 * _MINUTE,
    "30m": 30 * _MINUTE,
    "1H": _HOUR,
    "2H": 2 * _HOUR,
    "4H": 4 * _HOUR,
    "6H": 6 * _HOUR,
    "8H": 8 * _HOUR,
    "12H": 12 * _HOUR,
    "1D": _DAY,
    "3D": 3 * _DAY,
    "1W": 7 * _DAY,
    "1M": 30 * _DAY,
}

MAX_OHLCV_CANDLES = 1000
MAX_PAGE = 20


class BirdeyeRequestError(ValueError):
    pass


class BirdeyeLimitError(BirdeyeRequestError):
    pass


def _page_size(limit: int, endpoint: str, maximum: int = MAX_PAGE) -> int:
    if limit <= 0:
        raise BirdeyeRequestError(f"{endpoint} limit must be positive")
    if limit > maximum:
        raise BirdeyeLimitError(f"{endpoint} limit must be between 1 and {maximum}")
    return int(limit)


class BirdeyeRequestFactory:
    """Builds GET specs for the public Birdeye endpoints this engine reads."""

    def __init__(self, api_key: str, base_url: str = "https://public-api.birdeye.so", chain: str = "solana") -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.chain = (chain or "solana").strip()

    def _get(self, path: str, query: Dict[str, Any], chain: Optional[str]) -> RequestSpec:
        chain_value = (chain or self.chain).strip()
        if not chain_value:
            raise BirdeyeRequestError("x-chain header is required")
        headers = {"X-API-KEY": self.api_key, "x-chain": chain_value}
        return RequestSpec(method="GET", base_url=self.base_url, path=path, query=query, headers=headers)

    def build_ohlcv_request(
        self,
        mint: str,
        interval: str,
        limit: int = 100,
        end_ts: Optional[int] = None,
        chain: Optional[str] = None,
    ) -> RequestSpec:
        if interval not in TIMEFRAME_SECONDS:
            raise BirdeyeRequestError(f"unsupported timeframe: {interval}")
        count = _page_size(limit, "ohlcv", MAX_OHLCV_CANDLES)
        time_to = int(time.time() if end_ts is None else end_ts)
        window = count * TIMEFRAME_SECONDS[interval]
        query = {"address": mint, "type": interval, "time_from": time_to - window, "time_to": time_to}
        return self._get("/defi/ohlcv", query, chain)

    def build_token_overview_request(self, mint: str, chain: Optional[str] = None) -> RequestSpec:
        if not mint:
            raise BirdeyeRequestError("mint is required")
        return self._get("/defi/token_overview", {"address": mint}, chain)

    def build_token_search_request(self, keyword: str, limit: int = 10, chain: Optional[str] = None) -> RequestSpec:
        term = (keyword or "").strip()
        if not term:
            raise BirdeyeRequestError("keyword is required")
        return self._get("/defi/token_search", {"keyword": term, "limit": _page_size(limit, "token_search")}, chain)

    def build_new_listing_request(
        self,
        limit: int = 20,
        meme_platform_enabled: Optional[bool] = None,
        chain: Optional[str] = None,
    ) -> RequestSpec:
        query: Dict[str, Any] = {"limit": _page_size(limit, "new_listing")}
        if meme_platform_enabled is not None:
            query["meme_platform_enabled"] = meme_platform_enabled
        return self._get("/defi/v2/tokens/new_listing", query, chain)


__all__ = ["BirdeyeLimitError", "BirdeyeRequestError", "BirdeyeRequestFactory", "TIMEFRAME_SECONDS"]
