import asyncio

import pytest

from strategy_engine.core.exceptions import ProviderMisconfigured, UpstreamBadResponse
from strategy_engine.data.birdeye.provider import BirdeyeProvider, BirdeyeSettings


class DummyClient:
    def __init__(self, payload):
        self.payload = payload

    async def request(self, spec):
        return self.payload


def _provider(payload) -> BirdeyeProvider:
    return BirdeyeProvider(
        BirdeyeSettings(api_key="test", chain="solana", base_url="https://public-api.birdeye.so", live=True),
        http_client=DummyClient(payload),
    )


def test_birdeye_error_envelope_raises():
    provider = _provider({"success": False, "message": "Bad request"})
    with pytest.raises(UpstreamBadResponse):
        asyncio.run(provider.get_token_overview("So11111111111111111111111111111111111111112"))


def test_birdeye_malformed_payload_raises():
    provider = _provider({"success": True, "data": {"items": [{"o": "x"}]}})
    with pytest.raises(UpstreamBadResponse):
        asyncio.run(provider.get_ohlcv("So11111111111111111111111111111111111111112", "1H"))


def test_live_birdeye_requires_api_key(monkeypatch):
    monkeypatch.setenv("BIRDEYE_LIVE", "1")
    monkeypatch.delenv("BIRDEYE_API_KEY", raising=False)
    with pytest.raises(ProviderMisconfigured):
        BirdeyeSettings.from_env()
