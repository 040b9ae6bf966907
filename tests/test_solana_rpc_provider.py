import asyncio

import httpx
import pytest

from strategy_engine.core.exceptions import RpcError
from strategy_engine.data.solana_rpc.provider import (
    MockSolanaRpcProvider,
    SolanaRpcHttpClient,
    SolanaRpcProvider,
    SolanaRpcSettings,
)
from strategy_engine.data.solana_rpc.request_factory import SolanaRpcRequestError, SolanaRpcRequestFactory

SIGNATURE = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"


def test_send_transaction_request_contract():
    factory = SolanaRpcRequestFactory(rpc_url="https://rpc.example.com/", api_key="secret")
    spec = factory.build_send_transaction_request(b"\x01\x02", skip_preflight=True)
    assert spec.base_url == "https://rpc.example.com"
    assert spec.body["method"] == "sendTransaction"
    encoded, options = spec.body["params"]
    assert encoded == "AQI="
    assert options["encoding"] == "base64"
    assert options["skipPreflight"] is True
    assert spec.query == {"api-key": "secret"}
    assert "secret" not in spec.to_request_spec().describe()


def test_request_ids_increment():
    factory = SolanaRpcRequestFactory()
    first = factory.build_balance_request("abc")
    second = factory.build_balance_request("abc")
    assert second.request_id == first.request_id + 1


def test_request_validation():
    factory = SolanaRpcRequestFactory()
    with pytest.raises(SolanaRpcRequestError):
        factory.build_send_transaction_request(b"")
    with pytest.raises(SolanaRpcRequestError):
        factory.build_signature_statuses_request([])
    with pytest.raises(SolanaRpcRequestError):
        factory.build_signature_statuses_request(["sig"] * 257)


def _provider(handler) -> SolanaRpcProvider:
    async_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SolanaRpcProvider(
        SolanaRpcSettings(rpc_url="https://rpc.example.com", api_key="", live=True),
        http_client=SolanaRpcHttpClient(async_client=async_client, max_retries=0),
    )


def test_rpc_error_carries_code_and_logs():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "error": {
                    "code": -32002,
                    "message": "Transaction simulation failed",
                    "data": {"logs": ["Program log: custom program error: 0x1771"]},
                },
            },
        )

    provider = _provider(handler)
    with pytest.raises(RpcError) as excinfo:
        asyncio.run(provider.send_transaction(b"\x01"))
    assert excinfo.value.code == -32002
    assert excinfo.value.logs == ["Program log: custom program error: 0x1771"]


def test_signature_statuses_parse():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "result": {
                    "context": {"slot": 10},
                    "value": [{"slot": 9, "confirmations": None, "err": None, "confirmationStatus": "finalized"}, None],
                },
            },
        )

    statuses = asyncio.run(_provider(handler).get_signature_statuses([SIGNATURE, "other"]))
    assert statuses[0].settled
    assert statuses[1] is None


def test_mock_rpc_reports_fixture_decimals_and_balance():
    rpc = MockSolanaRpcProvider()
    assert asyncio.run(rpc.get_mint_decimals("anything")) == 6
    assert asyncio.run(rpc.get_balance("anything")) == 2_500_000_000


def test_mock_rpc_rejects_garbage_transactions():
    rpc = MockSolanaRpcProvider()
    with pytest.raises(RpcError):
        asyncio.run(rpc.send_transaction(b"not a transaction"))
