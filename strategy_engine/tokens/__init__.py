from strategy_engine.tokens.registry import DEFAULT_DECIMALS, SOL_MINT, TOKEN_MINTS, is_address
from strategy_engine.tokens.resolver import Asset, TokenResolver

__all__ = ["Asset", "DEFAULT_DECIMALS", "SOL_MINT", "TOKEN_MINTS", "TokenResolver", "is_address"]
