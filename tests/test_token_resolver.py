import asyncio

import httpx
import pytest

from strategy_engine.core.exceptions import TokenNotFound
from strategy_engine.data.birdeye.provider import MockProvider
from strategy_engine.data.market_types import TokenSearchResult
from strategy_engine.data.solana_rpc.provider import MockSolanaRpcProvider
from strategy_engine.tokens.resolver import TokenResolver, pick_best_match

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
POPCAT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"


def test_known_symbols_resolve_without_network():
    market = MockProvider()
    resolver = TokenResolver(market=market)
    sol = asyncio.run(resolver.resolve("sol"))
    usdc = asyncio.run(resolver.resolve(" USDC "))
    assert (sol.address, sol.decimals) == (SOL, 9)
    assert (usdc.address, usdc.decimals) == (USDC, 6)
    assert market.calls["token_search"] == 0


def test_wsol_aliases_sol():
    resolver = TokenResolver()
    asset = asyncio.run(resolver.resolve("WSOL"))
    assert asset.address == SOL
    assert asset.symbol == "SOL"


def test_resolution_is_idempotent():
    resolver = TokenResolver(market=MockProvider())
    first = asyncio.run(resolver.resolve("popcat"))
    second = asyncio.run(resolver.resolve(first.address))
    third = asyncio.run(resolver.resolve("POPCAT"))
    assert first == second == third


def test_search_prefers_exact_symbol_with_most_liquidity():
    market = MockProvider()
    resolver = TokenResolver(market=market)
    asset = asyncio.run(resolver.resolve("popcat"))
    assert asset.address == POPCAT
    assert asset.decimals == 9
    assert market.calls["token_search"] == 1
    asyncio.run(resolver.resolve("popcat"))
    assert market.calls["token_search"] == 1


def test_pick_best_match_skips_invalid_addresses():
    candidates = [
        TokenSearchResult(address="not-an-address", symbol="ABC", liquidity_usd=10_000_000),
        TokenSearchResult(address=POPCAT, symbol="ABCD", liquidity_usd=1),
    ]
    assert pick_best_match(candidates, "abc").address == POPCAT


def test_unknown_token_raises():
    resolver = TokenResolver(market=MockProvider())
    with pytest.raises(TokenNotFound):
        asyncio.run(resolver.resolve("zzzz-not-listed"))
    with pytest.raises(TokenNotFound):
        asyncio.run(TokenResolver().resolve("popcat"))
    with pytest.raises(TokenNotFound):
        asyncio.run(resolver.resolve("   "))


def test_unknown_address_uses_fallback_then_refines_from_chain():
    address = "9nEqaUcb16sQ3Tn1psbkWqyhPdLmfHWjKGymREjsAgTE"
    resolver = TokenResolver(rpc=MockSolanaRpcProvider())
    asset = asyncio.run(resolver.resolve(address))
    assert asset.decimals == 9
    assert asset.decimals_verified is False
    refined = asyncio.run(resolver.refine(asset))
    assert refined.decimals == 6
    assert refined.decimals_verified is True
    assert asyncio.run(resolver.resolve(address)) == refined


def test_learned_listing_metadata_is_reused():
    market = MockProvider()
    resolver = TokenResolver(market=market)
    mint = "SnipeTargetAaaa1111111111111111111111111111"
    learned = resolver.learn(mint, symbol="TGT", name="Target Token", decimals=6)
    assert learned.decimals_verified
    assert asyncio.run(resolver.resolve(mint)) is learned
    assert asyncio.run(resolver.resolve("tgt")) is learned
    assert market.calls["token_search"] == 0
    # known mints keep their registry metadata
    assert resolver.learn(USDC, symbol="FAKE").symbol == "USDC"


class TimingOutRpc(MockSolanaRpcProvider):
    async def get_mint_decimals(self, mint: str):
        raise httpx.ConnectTimeout("rpc down")


def test_refine_keeps_fallback_when_rpc_times_out():
    address = "9nEqaUcb16sQ3Tn1psbkWqyhPdLmfHWjKGymREjsAgTE"
    resolver = TokenResolver(rpc=TimingOutRpc())
    asset = asyncio.run(resolver.resolve(address))
    refined = asyncio.run(resolver.refine(asset))
    assert refined == asset
    assert refined.decimals == 9
    assert refined.decimals_verified is False
