from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

import httpx

from strategy_engine.core.exceptions import CircuitBreakerOpen, TokenNotFound, UpstreamError
from strategy_engine.data.market_provider import MarketDataProvider
from strategy_engine.data.market_types import TokenSearchResult
from strategy_engine.data.solana_rpc.provider import SolanaRpc
from strategy_engine.tokens.registry import (
    DEFAULT_DECIMALS,
    is_address,
    known_decimals,
    known_mint,
    known_symbol,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


@dataclass(frozen=True)
class Asset:
    address: str
    symbol: Optional[str]
    decimals: int
    name: Optional[str] = None
    # False while the precision is the fallback guess
    decimals_verified: bool = True

    @property
    def label(self) -> str:
        return self.symbol or f"{self.address[:4]}…{self.address[-4:]}"


def _rank(candidate: TokenSearchResult, needle: str) -> tuple:
    symbol = (candidate.symbol or "").lower()
    name = (candidate.name or "").lower()
    if symbol == needle:
        tier = 0
    elif name == needle:
        tier = 1
    elif needle in symbol or needle in name:
        tier = 2
    else:
        tier = 3
    return (tier, -(candidate.liquidity_usd or 0.0), -(candidate.market_cap_usd or 0.0))


def pick_best_match(candidates: Iterable[TokenSearchResult], reference: str) -> Optional[TokenSearchResult]:
    needle = reference.strip().lower()
    ranked = sorted(
        (c for c in candidates if is_address(c.address)),
        key=lambda candidate: _rank(candidate, needle),
    )
    if not ranked:
        return None
    return ranked[0]


class TokenResolver:
    def __init__(
        self,
        market: Optional[MarketDataProvider] = None,
        rpc: Optional[SolanaRpc] = None,
        default_decimals: int = DEFAULT_DECIMALS,
    ) -> None:
        self.market = market
        self.rpc = rpc
        self.default_decimals = default_decimals
        self._assets: Dict[str, Asset] = {}
        self._symbols: Dict[str, str] = {}

    def cached(self, address: str) -> Optional[Asset]:
        return self._assets.get(address)

    async def resolve(self, reference: str) -> Asset:
        ref = (reference or "").strip()
        if not ref:
            raise TokenNotFound("empty token reference")

        if is_address(ref):
            return self._from_address(ref)

        mint = known_mint(ref)
        if mint:
            return self._from_address(mint)

        cached_mint = self._symbols.get(ref.upper())
        if cached_mint:
            return self._assets[cached_mint]

        return await self._search(ref)

    async def resolve_many(self, references: Iterable[str]) -> List[Asset]:
        return list(await asyncio.gather(*(self.resolve(ref) for ref in references)))

    async def refine(self, asset: Asset) -> Asset:
        """Replace a fallback precision with the on-chain mint decimals."""
        if asset.decimals_verified:
            return asset
        current = self._assets.get(asset.address)
        if current is not None and current.decimals_verified:
            return current
        if self.rpc is None:
            return asset
        try:
            decimals = await self.rpc.get_mint_decimals(asset.address)
        except (UpstreamError, CircuitBreakerOpen, httpx.HTTPError) as exc:
            logger.warning("decimals lookup failed for %s, keeping %d: %s", asset.address, asset.decimals, exc)
            return asset
        if decimals is None:
            return asset
        refined = replace(asset, decimals=int(decimals), decimals_verified=True)
        self._remember(refined)
        return refined

    def learn(
        self,
        address: str,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
        decimals: Optional[int] = None,
    ) -> Asset:
        """Cache metadata that arrived with a listing so later lookups skip search."""
        cached = self._assets.get(address)
        if cached is not None and (cached.symbol or not symbol):
            return cached
        known = known_decimals(address)
        if known is None:
            known = decimals
        asset = Asset(
            address=address,
            symbol=known_symbol(address) or symbol,
            name=name,
            decimals=known if known is not None else self.default_decimals,
            decimals_verified=known is not None,
        )
        self._remember(asset)
        return asset

    def _from_address(self, address: str) -> Asset:
        cached = self._assets.get(address)
        if cached is not None:
            return cached
        decimals = known_decimals(address)
        asset = Asset(
            address=address,
            symbol=known_symbol(address),
            decimals=decimals if decimals is not None else self.default_decimals,
            decimals_verified=decimals is not None,
        )
        self._remember(asset)
        return asset

    async def _search(self, reference: str) -> Asset:
        if self.market is None:
            raise TokenNotFound(f"Unknown token: {reference}")
        results = await self.market.search_tokens(reference, limit=SEARCH_LIMIT)
        best = pick_best_match(results, reference)
        if best is None:
            raise TokenNotFound(f"Unknown token: {reference}")
        existing = self._assets.get(best.address)
        if existing is not None:
            return existing
        asset = Asset(
            address=best.address,
            symbol=best.symbol,
            name=best.name,
            decimals=best.decimals if best.decimals is not None else self.default_decimals,
            decimals_verified=best.decimals is not None,
        )
        logger.info("resolved %r to %s via search", reference, asset.address)
        self._remember(asset)
        return asset

    def _remember(self, asset: Asset) -> None:
        self._assets[asset.address] = asset
        if asset.symbol:
            self._symbols.setdefault(asset.symbol.upper(), asset.address)


__all__ = ["Asset", "TokenResolver", "pick_best_match"]
