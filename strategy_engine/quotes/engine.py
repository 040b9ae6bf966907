from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from strategy_engine.core.exceptions import (
    CircuitBreakerOpen,
    InvalidAmount,
    NoRoute,
    UpstreamBadResponse,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from strategy_engine.data.aggregator import SwapAggregator
from strategy_engine.data.jupiter.request_factory import JupiterRequestError
from strategy_engine.data.jupiter.schemas import NO_ROUTE_CODES, JupiterQuoteResponse
from strategy_engine.quotes.amounts import Number, from_smallest_unit, to_smallest_unit
from strategy_engine.tokens.resolver import Asset, TokenResolver

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_TTL_SEC = 30.0
NO_ROUTE_MARKERS = tuple(code.lower() for code in NO_ROUTE_CODES) + ("no route", "could not find any route")
ROUTE_SEPARATOR = " → "


@dataclass(frozen=True)
class Quote:
    input_asset: Asset
    output_asset: Asset
    in_amount: int
    out_amount: int
    slippage_bps: int
    price_impact_pct: str
    route_label: str
    route: Dict[str, Any] = field(repr=False)
    created_at: float = field(default_factory=time.monotonic)
    ttl_sec: float = DEFAULT_QUOTE_TTL_SEC

    @property
    def input_amount(self) -> Decimal:
        return from_smallest_unit(self.in_amount, self.input_asset.decimals)

    @property
    def output_amount(self) -> Decimal:
        return from_smallest_unit(self.out_amount, self.output_asset.decimals)

    @property
    def exchange_rate(self) -> Decimal:
        if self.input_amount == 0:
            return Decimal(0)
        return self.output_amount / self.input_amount

    def is_expired(self, now: Optional[float] = None) -> bool:
        current = time.monotonic() if now is None else now
        return current - self.created_at >= self.ttl_sec

    def summary(self) -> Dict[str, Any]:
        return {
            "input_mint": self.input_asset.address,
            "input_symbol": self.input_asset.symbol,
            "input_amount": str(self.input_amount),
            "output_mint": self.output_asset.address,
            "output_symbol": self.output_asset.symbol,
            "output_amount": str(self.output_amount),
            "exchange_rate": str(self.exchange_rate),
            "price_impact_pct": self.price_impact_pct,
            "slippage_bps": self.slippage_bps,
            "route": self.route_label,
        }


def _mentions_no_route(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in NO_ROUTE_MARKERS)


class QuoteEngine:
    """Single-shot quotes. Retrying is left to callers because prices move between attempts."""

    def __init__(
        self,
        aggregator: SwapAggregator,
        resolver: Optional[TokenResolver] = None,
        ttl_sec: float = DEFAULT_QUOTE_TTL_SEC,
    ) -> None:
        self.aggregator = aggregator
        self.resolver = resolver
        self.ttl_sec = ttl_sec

    async def quote(self, input_asset: Asset, output_asset: Asset, amount: Number, slippage_bps: int) -> Quote:
        if slippage_bps < 0 or slippage_bps > 10_000:
            raise InvalidAmount("slippage_bps must be between 0 and 10000")
        if input_asset.address == output_asset.address:
            raise InvalidAmount("input and output assets must differ")
        if self.resolver is not None:
            input_asset = await self.resolver.refine(input_asset)
            output_asset = await self.resolver.refine(output_asset)
        units = to_smallest_unit(amount, input_asset.decimals)
        response = await self._fetch(input_asset, output_asset, units, slippage_bps)
        if not response.has_route:
            raise NoRoute(f"No route from {input_asset.label} to {output_asset.label}")
        quote = Quote(
            input_asset=input_asset,
            output_asset=output_asset,
            in_amount=response.in_units,
            out_amount=response.out_units,
            slippage_bps=int(response.slippage_bps),
            price_impact_pct=response.price_impact_pct,
            route_label=response.route_label(ROUTE_SEPARATOR),
            route=response.model_dump(by_alias=True, mode="json"),
            ttl_sec=self.ttl_sec,
        )
        logger.info(
            "quote %s %s -> %s %s via %s",
            quote.input_amount,
            input_asset.label,
            quote.output_amount,
            output_asset.label,
            quote.route_label,
        )
        return quote

    async def refresh(self, quote: Quote) -> Quote:
        return await self.quote(quote.input_asset, quote.output_asset, quote.input_amount, quote.slippage_bps)

    async def _fetch(
        self, input_asset: Asset, output_asset: Asset, units: int, slippage_bps: int
    ) -> JupiterQuoteResponse:
        params = {
            "input_mint": input_asset.address,
            "output_mint": output_asset.address,
            "amount": units,
            "slippage_bps": int(slippage_bps),
        }
        try:
            return await self.aggregator.get_quote(params, retries=0)
        except JupiterRequestError as exc:
            raise InvalidAmount(str(exc)) from exc
        except UpstreamRateLimited as exc:
            raise UpstreamUnavailable("Quote upstream rate limited", status_code=exc.status_code) from exc
        except UpstreamBadResponse as exc:
            status = exc.status_code
            if _mentions_no_route(str(exc)) or _mentions_no_route(exc.body):
                raise NoRoute(f"No route from {input_asset.label} to {output_asset.label}") from exc
            if status is not None and status >= 500:
                raise UpstreamUnavailable("Quote upstream unavailable", status_code=status) from exc
            if status is not None and 400 <= status < 500:
                raise NoRoute(f"Quote rejected for {input_asset.label} -> {output_asset.label}") from exc
            raise
        except (httpx.HTTPError, CircuitBreakerOpen) as exc:
            raise UpstreamUnavailable(f"Quote upstream unavailable: {exc}") from exc


__all__ = ["Quote", "QuoteEngine"]
