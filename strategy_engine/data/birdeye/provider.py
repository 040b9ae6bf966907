from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from strategy_engine.core.exceptions import ProviderMisconfigured, UpstreamBadResponse
from strategy_engine.core.fixtures import fixture_dir, load_fixture
from strategy_engine.core.http import UpstreamHttpClient, live_flag
from strategy_engine.core.request_spec import RequestSpec
from strategy_engine.data.birdeye.request_factory import BirdeyeRequestFactory
from strategy_engine.data.birdeye.schemas import (
    BirdeyeNewListingItem,
    BirdeyeNewListingResponse,
    BirdeyeOhlcvResponse,
    BirdeyeSearchResponse,
    BirdeyeTokenOverviewData,
    BirdeyeTokenOverviewResponse,
)
from strategy_engine.data.market_provider import MarketDataProvider
from strategy_engine.data.market_types import Candle, NewListing, TokenOverview, TokenSearchResult

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class BirdeyeSettings:
    api_key: str
    chain: str
    base_url: str
    live: bool

    @classmethod
    def from_env(cls) -> "BirdeyeSettings":
        api_key = os.getenv("BIRDEYE_API_KEY", "").strip()
        live = live_flag(os.getenv("BIRDEYE_LIVE", "0"))
        if live and not api_key:
            raise ProviderMisconfigured("BIRDEYE_API_KEY is required when BIRDEYE_LIVE=1")
        return cls(
            api_key=api_key,
            chain=os.getenv("BIRDEYE_CHAIN", "").strip() or "solana",
            base_url=os.getenv("BIRDEYE_BASE_URL", "https://public-api.birdeye.so").strip().rstrip("/"),
            live=live,
        )


class BirdeyeHttpClient(UpstreamHttpClient):
    name = "Birdeye"


def parse_birdeye(payload: Any, model: Type[ModelT], context: str) -> ModelT:
    """Validate a Birdeye envelope; ``success: false`` bodies become ``UpstreamBadResponse``."""
    if isinstance(payload, dict) and payload.get("success") is False:
        raise UpstreamBadResponse(payload.get("message") or f"Birdeye {context} response unsuccessful")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Birdeye {context} response invalid") from exc


def candles_from_birdeye(response: BirdeyeOhlcvResponse) -> List[Candle]:
    return response.data.candles()


def token_overview_from_birdeye(token_mint: str, data: BirdeyeTokenOverviewData) -> TokenOverview:
    return data.to_overview(token_mint)


def listing_from_birdeye(item: BirdeyeNewListingItem) -> NewListing:
    return item.to_listing()


class BirdeyeProvider(MarketDataProvider):
    def __init__(self, settings: BirdeyeSettings, http_client: Optional[BirdeyeHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = BirdeyeRequestFactory(
            api_key=settings.api_key, base_url=settings.base_url, chain=settings.chain
        )
        self._client = http_client or BirdeyeHttpClient()
        self._owns_client = http_client is None

    async def __aenter__(self) -> "BirdeyeProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def _fetch(self, spec: RequestSpec, model: Type[ModelT], context: str) -> ModelT:
        return parse_birdeye(await self._client.request(spec), model, context)

    async def get_ohlcv(
        self,
        token_mint: str,
        interval: str,
        limit: int = 100,
        end_ts: Optional[int] = None,
    ) -> List[Candle]:
        spec = self.request_factory.build_ohlcv_request(token_mint, interval, limit=limit, end_ts=end_ts)
        response = await self._fetch(spec, BirdeyeOhlcvResponse, "ohlcv")
        return response.data.candles()

    async def get_token_overview(self, token_mint: str) -> TokenOverview:
        spec = self.request_factory.build_token_overview_request(token_mint)
        response = await self._fetch(spec, BirdeyeTokenOverviewResponse, "token_overview")
        return response.data.to_overview(token_mint)

    async def search_tokens(self, keyword: str, limit: int = 10) -> List[TokenSearchResult]:
        spec = self.request_factory.build_token_search_request(keyword, limit=limit)
        response = await self._fetch(spec, BirdeyeSearchResponse, "token_search")
        return [token.to_result() for token in response.data.tokens()]

    async def get_new_listings(self, limit: int = 20) -> List[NewListing]:
        spec = self.request_factory.build_new_listing_request(limit=limit)
        response = await self._fetch(spec, BirdeyeNewListingResponse, "new_listing")
        return [item.to_listing() for item in response.data.items]


class MockProvider(MarketDataProvider):
    """Serves Birdeye fixtures. Listing times are rebased so ages stay constant."""

    def __init__(self, fixture_path: Optional[Path] = None) -> None:
        self.fixture_dir = fixture_path or fixture_dir("birdeye")
        self._ohlcv = self._fixture("ohlcv_success.json", BirdeyeOhlcvResponse)
        self._overview = self._fixture("token_overview_success.json", BirdeyeTokenOverviewResponse)
        self._search = self._fixture("token_search_success.json", BirdeyeSearchResponse)
        raw_listings = load_fixture(self.fixture_dir, "new_listing_success.json")
        self._reference_ts = int(raw_listings.get("_reference_time") or 0)
        self._listings = BirdeyeNewListingResponse.model_validate(raw_listings)
        self._candles: Dict[str, List[Candle]] = {}
        self.calls: Dict[str, int] = dict.fromkeys(("ohlcv", "token_overview", "token_search", "new_listing"), 0)

    def _fixture(self, name: str, model: Type[ModelT]) -> ModelT:
        return model.model_validate(load_fixture(self.fixture_dir, name))

    def set_candles(self, token_mint: str, candles: List[Candle]) -> None:
        self._candles[token_mint] = list(candles)

    async def get_ohlcv(
        self,
        token_mint: str,
        interval: str,
        limit: int = 100,
        end_ts: Optional[int] = None,
    ) -> List[Candle]:
        self.calls["ohlcv"] += 1
        if token_mint in self._candles:
            return self._candles[token_mint][-limit:]
        return self._ohlcv.data.candles()[-limit:]

    async def get_token_overview(self, token_mint: str) -> TokenOverview:
        self.calls["token_overview"] += 1
        return self._overview.data.to_overview(token_mint)

    async def search_tokens(self, keyword: str, limit: int = 10) -> List[TokenSearchResult]:
        self.calls["token_search"] += 1
        needle = keyword.strip().lower()
        return [token.to_result() for token in self._search.data.tokens() if token.matches(needle)][:limit]

    async def get_new_listings(self, limit: int = 20) -> List[NewListing]:
        self.calls["new_listing"] += 1
        shift = int(time.time()) - self._reference_ts if self._reference_ts else 0
        listings = []
        for item in self._listings.data.items[:limit]:
            listing = item.to_listing()
            if listing.listed_at is not None and shift:
                listing = listing.model_copy(update={"listed_at": listing.listed_at + shift})
            listings.append(listing)
        return listings


def get_market_data_provider(settings: Optional[BirdeyeSettings] = None) -> MarketDataProvider:
    cfg = settings or BirdeyeSettings.from_env()
    return BirdeyeProvider(cfg) if cfg.live else MockProvider()


__all__ = [
    "BirdeyeHttpClient",
    "BirdeyeProvider",
    "BirdeyeSettings",
    "MockProvider",
    "get_market_data_provider",
    "parse_birdeye",
]
