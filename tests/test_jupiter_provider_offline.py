import base64
from pathlib import Path

import pytest
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from strategy_engine.core.exceptions import UpstreamBadResponse
from strategy_engine.core.fixtures import load_fixture
from strategy_engine.data.jupiter.provider import MockJupiterProvider, build_offline_swap_transaction
from strategy_engine.data.jupiter.schemas import JupiterQuoteResponse, JupiterSwapResponse

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "jupiter"
SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
PARAMS = {"input_mint": SOL, "output_mint": USDC, "amount": 2_000_000_000, "slippage_bps": 100}


def test_quote_schema_parses_fixture():
    quote = JupiterQuoteResponse.model_validate(load_fixture(FIXTURE_DIR, "quote_ok.json"))
    assert quote.in_amount == "1000000000"
    assert quote.route_labels() == ["Raydium", "Orca"]


def test_swap_schema_parses_fixture():
    swap = JupiterSwapResponse.model_validate(load_fixture(FIXTURE_DIR, "swap_ok.json"))
    assert swap.swap_transaction
    assert swap.prioritization_fee_lamports == 5000


def test_quote_schema_rejects_missing_fields():
    with pytest.raises(ValueError):
        JupiterQuoteResponse.model_validate({"inputMint": "AAA"})


@pytest.mark.asyncio
async def test_mock_jupiter_provider_rescales_quote():
    provider = MockJupiterProvider()
    quote = await provider.get_quote(PARAMS)
    assert quote.input_mint == SOL
    assert quote.in_amount == "2000000000"
    assert quote.out_amount == "300500000"
    assert quote.slippage_bps == 100
    assert provider.quote_calls == 1


@pytest.mark.asyncio
async def test_mock_swap_transaction_is_payable_by_user():
    keypair = Keypair()
    provider = MockJupiterProvider()
    quote = await provider.get_quote(PARAMS)
    swap = await provider.build_swap_tx(quote.model_dump(by_alias=True), str(keypair.pubkey()), {})
    tx = VersionedTransaction.from_bytes(base64.b64decode(swap.swap_transaction))
    assert tx.message.account_keys[0] == keypair.pubkey()


def test_offline_transactions_differ_per_seed():
    user = str(Keypair().pubkey())
    assert build_offline_swap_transaction(user, b"a") != build_offline_swap_transaction(user, b"b")


@pytest.mark.asyncio
async def test_mock_jupiter_provider_errors():
    quote_provider = MockJupiterProvider(error_mode="quote")
    with pytest.raises(UpstreamBadResponse) as excinfo:
        await quote_provider.get_quote(PARAMS)
    assert excinfo.value.body == "COULD_NOT_FIND_ANY_ROUTE"

    swap_provider = MockJupiterProvider(error_mode="swap")
    quote = await swap_provider.get_quote(PARAMS)
    with pytest.raises(UpstreamBadResponse):
        await swap_provider.build_swap_tx(quote.model_dump(by_alias=True), str(Keypair().pubkey()), {})
