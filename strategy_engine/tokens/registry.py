from __future__ import annotations

import re
from typing import Dict, Optional

ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

DEFAULT_DECIMALS = 9

SOL_MINT = "So11111111111111111111111111111111111111112"

TOKEN_MINTS: Dict[str, str] = {
    "SOL": SOL_MINT,
    "WSOL": SOL_MINT,
    "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "USDT": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
    "BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
    "JUP": "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN",
    "RAY": "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R",
    "WIF": "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm",
    "PYTH": "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3",
    "ORCA": "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE",
    "SAMO": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
    "RENDER": "rndrizKT3MK1iimdxRdWabcF7Zg7AR5T4nud4EkHBof",
    "JITO": "jtojtomepa8beP8AuQc6eXt5FriJwfFMwQx2v2f9mCL",
    "MANGO": "MangoCzJ36AjZyKwVj3VnYU4GTonjfVEnJmvvWaxLac",
}

KNOWN_DECIMALS: Dict[str, int] = {
    SOL_MINT: 9,
    TOKEN_MINTS["USDC"]: 6,
    TOKEN_MINTS["USDT"]: 6,
    TOKEN_MINTS["BONK"]: 5,
    TOKEN_MINTS["JUP"]: 6,
    TOKEN_MINTS["RAY"]: 6,
    TOKEN_MINTS["WIF"]: 6,
}

# WSOL shares the SOL mint; report it as SOL
_SYMBOLS_BY_MINT: Dict[str, str] = {}
for _symbol, _mint in TOKEN_MINTS.items():
    _SYMBOLS_BY_MINT.setdefault(_mint, _symbol)


def is_address(value: str) -> bool:
    return bool(ADDRESS_PATTERN.match(value or ""))


def known_mint(symbol: str) -> Optional[str]:
    return TOKEN_MINTS.get((symbol or "").strip().upper())


def known_symbol(mint: str) -> Optional[str]:
    return _SYMBOLS_BY_MINT.get(mint)


def known_decimals(mint: str) -> Optional[int]:
    return KNOWN_DECIMALS.get(mint)


__all__ = [
    "ADDRESS_PATTERN",
    "DEFAULT_DECIMALS",
    "KNOWN_DECIMALS",
    "SOL_MINT",
    "TOKEN_MINTS",
    "is_address",
    "known_decimals",
    "known_mint",
    "known_symbol",
]
