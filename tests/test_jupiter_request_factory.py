import pytest

from strategy_engine.data.jupiter.request_factory import JupiterRequestError, JupiterRequestFactory

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def test_quote_request_contract():
    factory = JupiterRequestFactory(api_key="test-key", base_url="https://quote-api.jup.ag/v6")
    spec = factory.build_quote_request(input_mint=SOL, output_mint=USDC, amount=1000, slippage_bps=50)
    assert spec.method == "GET"
    assert spec.base_url == "https://quote-api.jup.ag/v6"
    assert spec.path == "/quote"
    assert spec.query == {"inputMint": SOL, "outputMint": USDC, "amount": 1000, "slippageBps": 50}
    assert spec.headers == {"X-API-KEY": "test-key"}


def test_quote_request_without_key_sends_no_headers():
    spec = JupiterRequestFactory().build_quote_request(SOL, USDC, amount=1, slippage_bps=10, only_direct_routes=True)
    assert spec.headers == {}
    assert spec.query["onlyDirectRoutes"] == "true"


def test_swap_request_contract():
    factory = JupiterRequestFactory(api_key="test-key")
    quote = {"inputMint": "AAA", "outputMint": "BBB", "inAmount": "1", "outAmount": "2"}
    spec = factory.build_swap_request(quote, user_pubkey="USER123", prioritization_fee_lamports=5000)
    assert spec.method == "POST"
    assert spec.path == "/swap"
    assert spec.json["quoteResponse"] == quote
    assert spec.json["userPublicKey"] == "USER123"
    assert spec.json["wrapAndUnwrapSol"] is True
    assert spec.json["dynamicComputeUnitLimit"] is True
    assert spec.json["prioritizationFeeLamports"] == 5000
    assert spec.headers["X-API-KEY"] == "test-key"


def test_request_spec_fingerprint():
    factory = JupiterRequestFactory(api_key="test-key")
    quote = factory.build_quote_request("AAA", "BBB", amount=1, slippage_bps=10)
    assert (
        quote.fingerprint(required_headers=["X-API-KEY"])
        == "GET https://quote-api.jup.ag/v6/quote q=amount,inputMint,outputMint,slippageBps h=x-api-key"
    )


def test_quote_request_validation():
    factory = JupiterRequestFactory()
    with pytest.raises(JupiterRequestError):
        factory.build_quote_request("", "BBB", amount=1, slippage_bps=10)
    with pytest.raises(JupiterRequestError):
        factory.build_quote_request("AAA", "AAA", amount=1, slippage_bps=10)
    with pytest.raises(JupiterRequestError):
        factory.build_quote_request("AAA", "BBB", amount=0, slippage_bps=10)
    with pytest.raises(JupiterRequestError):
        factory.build_quote_request("AAA", "BBB", amount=1, slippage_bps=-1)


def test_swap_request_rejects_unknown_fee_keyword():
    factory = JupiterRequestFactory()
    with pytest.raises(JupiterRequestError):
        factory.build_swap_request({"inAmount": "1"}, "USER", prioritization_fee_lamports="fast")
