from __future__ import annotations

import hashlib
import random
from typing import Dict, List

import base58

from strategy_engine.tokens.registry import SOL_MINT, TOKEN_MINTS

HOUR = 3600


def mock_mint(label: str) -> str:
    return base58.b58encode(hashlib.sha256(f"mock-mint:{label}".encode("utf-8")).digest()).decode("ascii")


def _generate_candles(
    rng: random.Random,
    base_price: float,
    start_ts: int,
    interval_sec: int,
    candle_count: int,
    breakout_at: int = -1,
) -> List[Dict[str, float]]:
    candles: List[Dict[str, float]] = []
    price = base_price

    for i in range(candle_count):
        if i < candle_count // 3:
            drift = rng.uniform(-0.004, 0.004)
        elif i < 2 * candle_count // 3:
            drift = -0.003 + rng.uniform(-0.002, 0.002)
        else:
            drift = 0.002 + rng.uniform(-0.003, 0.003)
        if i == breakout_at:
            drift = 0.06

        price = max(base_price * 0.01, price * (1.0 + drift))
        open_price = candles[-1]["c"] if candles else price
        high = max(open_price, price) * (1.0 + rng.uniform(0.001, 0.01))
        low = min(open_price, price) * (1.0 - rng.uniform(0.001, 0.01))
        volume = 10_000.0 + rng.uniform(0, 5_000)
        if i == breakout_at:
            volume *= 4

        candles.append(
            {
                "t": int(start_ts + i * interval_sec),
                "o": float(open_price),
                "h": float(high),
                "l": float(low),
                "c": float(price),
                "v": float(volume),
            }
        )

    return candles


def _listed_tokens() -> List[Dict[str, object]]:
    return [
        {"symbol": "SOL", "name": "Wrapped SOL", "address": SOL_MINT, "decimals": 9, "price": 150.0, "liquidity": 5.0e8},
        {"symbol": "USDC", "name": "USD Coin", "address": TOKEN_MINTS["USDC"], "decimals": 6, "price": 1.0, "liquidity": 8.0e8},
        {"symbol": "USDT", "name": "USDT", "address": TOKEN_MINTS["USDT"], "decimals": 6, "price": 1.0, "liquidity": 3.0e8},
        {"symbol": "JUP", "name": "Jupiter", "address": TOKEN_MINTS["JUP"], "decimals": 6, "price": 0.85, "liquidity": 2.5e7},
        {"symbol": "BONK", "name": "Bonk", "address": TOKEN_MINTS["BONK"], "decimals": 5, "price": 0.000021, "liquidity": 1.2e7},
        {"symbol": "WIF", "name": "dogwifhat", "address": TOKEN_MINTS["WIF"], "decimals": 6, "price": 1.9, "liquidity": 9.0e6},
        {"symbol": "PEPEGA", "name": "Pepega Coin", "address": mock_mint("PEPEGA"), "decimals": 6, "price": 0.0042, "liquidity": 4.0e5},
    ]


def _new_listings() -> List[Dict[str, object]]:
    # ages are minutes before the moment the listing endpoint is called
    return [
        {"symbol": "FRESH", "name": "Fresh Cat", "label": "FRESH", "age_minutes": 10, "liquidity": 8_000.0, "price": 0.0009},
        {"symbol": "MOONDOG", "name": "Moon Dog", "label": "MOONDOG", "age_minutes": 25, "liquidity": 45_000.0, "price": 0.012},
        {"symbol": "THIN", "name": "Thin Pool", "label": "THIN", "age_minutes": 5, "liquidity": 900.0, "price": 0.0001},
        {"symbol": "OLDIE", "name": "Old Listing", "label": "OLDIE", "age_minutes": 40, "liquidity": 120_000.0, "price": 0.3},
        {"symbol": "NOVOL", "name": "No Liquidity Yet", "label": "NOVOL", "age_minutes": 3, "liquidity": None, "price": None},
    ]


def generate_seed(
    candle_count: int = 200,
    start_ts: int = 1735689600,
    interval_sec: int = HOUR,
) -> Dict[str, object]:
    tokens: Dict[str, Dict[str, object]] = {}
    candles_by_token: Dict[str, List[Dict[str, float]]] = {}

    for idx, entry in enumerate(_listed_tokens()):
        address = str(entry["address"])
        rng = random.Random(4200 + idx)
        stable = entry["symbol"] in {"USDC", "USDT"}
        if stable:
            candles = [
                {"t": start_ts + i * interval_sec, "o": 1.0, "h": 1.001, "l": 0.999, "c": 1.0, "v": 1.0e6}
                for i in range(candle_count)
            ]
        else:
            candles = _generate_candles(
                rng, float(entry["price"]), start_ts, interval_sec, candle_count, breakout_at=candle_count - 1
            )
        candles_by_token[address] = candles
        last_price = candles[-1]["c"]
        tokens[address] = {
            "address": address,
            "symbol": entry["symbol"],
            "name": entry["name"],
            "decimals": entry["decimals"],
            "price": float(last_price),
            "liquidity": float(entry["liquidity"]),
            "v24hUSD": float(sum(c["v"] * c["c"] for c in candles[-24:])),
            "mc": float(last_price) * 1.0e9,
            "lastTradeUnixTime": int(candles[-1]["t"]),
        }

    listings: List[Dict[str, object]] = []
    for entry in _new_listings():
        address = mock_mint(str(entry["label"]))
        listings.append(
            {
                "address": address,
                "symbol": entry["symbol"],
                "name": entry["name"],
                "decimals": 6,
                "source": "raydium",
                "price": entry["price"],
                "liquidity": entry["liquidity"],
                "age_minutes": entry["age_minutes"],
            }
        )
        if entry["price"] is not None:
            tokens[address] = {
                "address": address,
                "symbol": entry["symbol"],
                "name": entry["name"],
                "decimals": 6,
                "price": float(entry["price"]),
                "liquidity": float(entry["liquidity"] or 0.0),
                "v24hUSD": 0.0,
                "mc": float(entry["price"]) * 1.0e9,
                "lastTradeUnixTime": None,
            }

    return {
        "tokens": tokens,
        "candles": candles_by_token,
        "listings": listings,
        "symbol_index": {str(t["symbol"]).upper(): address for address, t in tokens.items()},
    }


__all__ = ["generate_seed", "mock_mint"]
