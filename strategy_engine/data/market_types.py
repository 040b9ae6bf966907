from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class Candle(BaseModel):
    t: int
    o: float
    h: float
    l: float
    c: float
    v: float


class _TokenFacts(BaseModel):
    """Fields every market payload can carry about a token; all optional upstream."""

    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    price_usd: Optional[float] = None
    liquidity_usd: Optional[float] = None
    market_cap_usd: Optional[float] = None


class TokenOverview(_TokenFacts):
    token_mint: str
    volume_24h: Optional[float] = None
    updated_at: Optional[int] = None
    source: Optional[str] = None


class TokenSearchResult(_TokenFacts):
    address: str


class NewListing(_TokenFacts):
    address: str
    symbol: str = "???"
    name: str = "Unknown"
    volume_24h: Optional[float] = None
    listed_at: Optional[int] = None
    source: Optional[str] = None

    def age_minutes(self, now_ts: int) -> Optional[float]:
        """Minutes since listing, clamped at zero; None when the listing time is unknown."""
        if self.listed_at is None:
            return None
        return max(0.0, (now_ts - self.listed_at) / 60.0)


__all__ = ["Candle", "NewListing", "TokenOverview", "TokenSearchResult"]
