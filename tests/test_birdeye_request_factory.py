import pytest

from strategy_engine.data.birdeye.request_factory import BirdeyeLimitError, BirdeyeRequestError, BirdeyeRequestFactory


def _factory() -> BirdeyeRequestFactory:
    return BirdeyeRequestFactory(api_key="test-key", base_url="https://public-api.birdeye.so", chain="solana")


def test_ohlcv_request_contract():
    spec = _factory().build_ohlcv_request("AAA", "1H", limit=100, end_ts=1_700_000_000)
    assert spec.method == "GET"
    assert spec.base_url == "https://public-api.birdeye.so"
    assert spec.path == "/defi/ohlcv"
    assert spec.query == {
        "address": "AAA",
        "type": "1H",
        "time_from": 1_700_000_000 - 100 * 3600,
        "time_to": 1_700_000_000,
    }
    assert spec.headers == {"X-API-KEY": "test-key", "x-chain": "solana"}


def test_token_overview_request_contract():
    spec = _factory().build_token_overview_request("AAA")
    assert spec.path == "/defi/token_overview"
    assert spec.query == {"address": "AAA"}
    assert spec.headers["x-chain"] == "solana"


def test_token_search_request_contract():
    spec = _factory().build_token_search_request("  bonk ", limit=5)
    assert spec.path == "/defi/token_search"
    assert spec.query == {"keyword": "bonk", "limit": 5}


def test_new_listing_request_contract():
    spec = _factory().build_new_listing_request(limit=20)
    assert spec.path == "/defi/v2/tokens/new_listing"
    assert spec.query == {"limit": 20}


def test_request_spec_fingerprints():
    required_headers = ["X-API-KEY", "x-chain"]
    ohlcv = _factory().build_ohlcv_request("AAA", "1m", end_ts=200, limit=2)
    assert (
        ohlcv.fingerprint(required_headers=required_headers)
        == "GET https://public-api.birdeye.so/defi/ohlcv q=address,time_from,time_to,type h=x-api-key,x-chain"
    )


def test_api_key_is_redacted_in_descriptions():
    spec = _factory().build_token_overview_request("AAA")
    assert "test-key" not in spec.to_curl()


def test_limits_enforced():
    factory = _factory()
    with pytest.raises(BirdeyeLimitError):
        factory.build_ohlcv_request("AAA", "1H", limit=1001)
    with pytest.raises(BirdeyeLimitError):
        factory.build_new_listing_request(limit=21)
    with pytest.raises(BirdeyeRequestError):
        factory.build_ohlcv_request("AAA", "7m")
    with pytest.raises(BirdeyeRequestError):
        factory.build_token_search_request("   ")
