from strategy_engine.data.jupiter.provider import (
    JupiterHttpClient,
    JupiterProvider,
    JupiterSettings,
    MockJupiterProvider,
    get_jupiter_provider,
)
from strategy_engine.data.jupiter.request_factory import JupiterRequestError, JupiterRequestFactory

__all__ = [
    "JupiterHttpClient",
    "JupiterProvider",
    "JupiterRequestError",
    "JupiterRequestFactory",
    "JupiterSettings",
    "MockJupiterProvider",
    "get_jupiter_provider",
]
