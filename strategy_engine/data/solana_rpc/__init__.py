from strategy_engine.data.solana_rpc.provider import (
    MockSolanaRpcProvider,
    SolanaRpc,
    SolanaRpcHttpClient,
    SolanaRpcProvider,
    SolanaRpcSettings,
    get_solana_rpc_provider,
)
from strategy_engine.data.solana_rpc.request_factory import SolanaRpcRequestError, SolanaRpcRequestFactory

__all__ = [
    "MockSolanaRpcProvider",
    "SolanaRpc",
    "SolanaRpcHttpClient",
    "SolanaRpcProvider",
    "SolanaRpcRequestError",
    "SolanaRpcRequestFactory",
    "SolanaRpcSettings",
    "get_solana_rpc_provider",
]
