from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from strategy_engine.data.market_types import Candle, NewListing, TokenOverview, TokenSearchResult

# listingTime above this is in milliseconds
_MILLIS_CUTOFF = 10_000_000_000


class _BirdeyeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class _Envelope(_BirdeyeModel):
    success: bool


class BirdeyeOhlcvItem(_BirdeyeModel):
    o: float
    h: float
    l: float
    c: float
    v: float
    unix_time: int = Field(alias="unixTime")
    address: Optional[str] = None
    interval: Optional[str] = Field(default=None, alias="type")

    def to_candle(self) -> Candle:
        return Candle(t=self.unix_time, o=self.o, h=self.h, l=self.l, c=self.c, v=self.v)


class BirdeyeOhlcvData(_BirdeyeModel):
    items: List[BirdeyeOhlcvItem] = Field(default_factory=list)

    def candles(self) -> List[Candle]:
        return sorted((item.to_candle() for item in self.items), key=lambda candle: candle.t)


class BirdeyeOhlcvResponse(_Envelope):
    data: BirdeyeOhlcvData


class BirdeyeTokenOverviewData(_BirdeyeModel):
    address: Optional[str] = None
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    price: Optional[float] = None
    liquidity: Optional[float] = None
    volume_24h: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("v24hUSD", "volume24h", "volume_24h")
    )
    market_cap: Optional[float] = Field(default=None, validation_alias=AliasChoices("mc", "marketCap", "market_cap"))
    last_trade_unix_time: Optional[int] = Field(default=None, alias="lastTradeUnixTime")

    def to_overview(self, token_mint: str) -> TokenOverview:
        return TokenOverview(
            token_mint=token_mint,
            symbol=self.symbol,
            name=self.name,
            decimals=self.decimals,
            price_usd=self.price,
            liquidity_usd=self.liquidity,
            volume_24h=self.volume_24h,
            market_cap_usd=self.market_cap,
            updated_at=self.last_trade_unix_time,
            source="birdeye",
        )


class BirdeyeTokenOverviewResponse(_Envelope):
    data: BirdeyeTokenOverviewData


class BirdeyeSearchToken(_BirdeyeModel):
    address: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    price: Optional[float] = None
    liquidity: Optional[float] = None
    market_cap: Optional[float] = Field(default=None, validation_alias=AliasChoices("mc", "market_cap", "marketCap"))

    def to_result(self) -> TokenSearchResult:
        return TokenSearchResult(
            address=self.address,
            symbol=self.symbol,
            name=self.name,
            decimals=self.decimals,
            price_usd=self.price,
            liquidity_usd=self.liquidity,
            market_cap_usd=self.market_cap,
        )

    def matches(self, needle: str) -> bool:
        return needle in (self.symbol or "").lower() or needle in (self.name or "").lower()


class BirdeyeSearchData(_BirdeyeModel):
    # v3 groups results as {"type": "token", "result": [...]}; older payloads are flat
    items: List[Dict[str, Any]] = Field(default_factory=list)

    def tokens(self) -> List[BirdeyeSearchToken]:
        entries: List[Dict[str, Any]] = []
        for item in self.items:
            if "result" not in item:
                entries.append(item)
            elif item.get("type", "token") == "token":
                entries.extend(item.get("result") or [])
        return [BirdeyeSearchToken.model_validate(entry) for entry in entries]


class BirdeyeSearchResponse(_Envelope):
    data: BirdeyeSearchData


class BirdeyeNewListingItem(_BirdeyeModel):
    address: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    source: Optional[str] = None
    price: Optional[float] = None
    liquidity: Optional[float] = None
    liquidity_added_at: Optional[str] = Field(default=None, alias="liquidityAddedAt")
    listing_time: Optional[int] = Field(default=None, alias="listingTime")

    @property
    def listed_at(self) -> Optional[int]:
        """Unix seconds from ``listingTime`` or, failing that, the ISO ``liquidityAddedAt``."""
        if self.listing_time is not None:
            stamp = int(self.listing_time)
            return stamp // 1000 if stamp > _MILLIS_CUTOFF else stamp
        if not self.liquidity_added_at:
            return None
        try:
            return int(datetime.fromisoformat(self.liquidity_added_at.replace("Z", "+00:00")).timestamp())
        except ValueError:
            return None

    def to_listing(self) -> NewListing:
        return NewListing(
            address=self.address,
            symbol=self.symbol or "???",
            name=self.name or "Unknown",
            decimals=self.decimals,
            price_usd=self.price,
            liquidity_usd=self.liquidity,
            listed_at=self.listed_at,
            source=self.source,
        )


class BirdeyeNewListingData(_BirdeyeModel):
    items: List[BirdeyeNewListingItem] = Field(default_factory=list)


class BirdeyeNewListingResponse(_Envelope):
    data: BirdeyeNewListingData


__all__ = [
    "BirdeyeNewListingItem",
    "BirdeyeNewListingResponse",
    "BirdeyeOhlcvItem",
    "BirdeyeOhlcvResponse",
    "BirdeyeSearchResponse",
    "BirdeyeSearchToken",
    "BirdeyeTokenOverviewData",
    "BirdeyeTokenOverviewResponse",
]
