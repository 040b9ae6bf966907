import asyncio
import time
from pathlib import Path

from strategy_engine.core.fixtures import load_fixture
from strategy_engine.data.birdeye.provider import (
    MockProvider,
    candles_from_birdeye,
    get_market_data_provider,
    listing_from_birdeye,
    token_overview_from_birdeye,
)
from strategy_engine.data.birdeye.schemas import (
    BirdeyeNewListingResponse,
    BirdeyeOhlcvResponse,
    BirdeyeSearchResponse,
    BirdeyeTokenOverviewResponse,
)

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "birdeye"
JUP = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"


def test_offline_provider_selected_without_live_flag(monkeypatch):
    monkeypatch.setenv("BIRDEYE_LIVE", "0")
    monkeypatch.delenv("BIRDEYE_API_KEY", raising=False)
    assert isinstance(get_market_data_provider(), MockProvider)


def test_ohlcv_schema_and_mapping_sorted():
    response = BirdeyeOhlcvResponse.model_validate(load_fixture(FIXTURE_DIR, "ohlcv_success.json"))
    candles = candles_from_birdeye(response)
    assert len(candles) == 30
    assert [c.t for c in candles] == sorted(c.t for c in candles)


def test_token_overview_mapping():
    response = BirdeyeTokenOverviewResponse.model_validate(load_fixture(FIXTURE_DIR, "token_overview_success.json"))
    overview = token_overview_from_birdeye(JUP, response.data)
    assert overview.symbol == "JUP"
    assert overview.decimals == 6
    assert overview.volume_24h == 42100000.0
    assert overview.market_cap_usd == 1408000000.0
    assert overview.source == "birdeye"


def test_search_flattens_token_groups_only():
    response = BirdeyeSearchResponse.model_validate(load_fixture(FIXTURE_DIR, "token_search_success.json"))
    symbols = [token.symbol for token in response.data.tokens()]
    assert "POPCAT" in symbols
    assert all(token.address != "MarketPairGggg1111111111111111111111111111" for token in response.data.tokens())


def test_listing_time_mapping():
    response = BirdeyeNewListingResponse.model_validate(load_fixture(FIXTURE_DIR, "new_listing_success.json"))
    listing = listing_from_birdeye(response.data.items[0])
    assert listing.symbol == "TGT"
    assert listing.listed_at == 1735775400
    assert listing.age_minutes(1735776000) == 10.0


def test_mock_listings_keep_their_age():
    provider = MockProvider()
    listings = asyncio.run(provider.get_new_listings(limit=3))
    now = int(time.time())
    ages = {listing.symbol: listing.age_minutes(now) for listing in listings}
    assert 9.9 <= ages["TGT"] <= 10.5
    assert 39.9 <= ages["AGED"] <= 40.5
    assert provider.calls["new_listing"] == 1


def test_mock_search_filters_by_keyword():
    provider = MockProvider()
    results = asyncio.run(provider.search_tokens("popcat"))
    assert {result.symbol for result in results} == {"POPCAT"}
    assert provider.calls["token_search"] == 1
