from strategy_engine.data.birdeye.provider import (
    BirdeyeHttpClient,
    BirdeyeProvider,
    BirdeyeSettings,
    MockProvider,
    get_market_data_provider,
)
from strategy_engine.data.birdeye.request_factory import (
    BirdeyeLimitError,
    BirdeyeRequestError,
    BirdeyeRequestFactory,
)

__all__ = [
    "BirdeyeHttpClient",
    "BirdeyeLimitError",
    "BirdeyeProvider",
    "BirdeyeRequestError",
    "BirdeyeRequestFactory",
    "BirdeyeSettings",
    "MockProvider",
    "get_market_data_provider",
]
