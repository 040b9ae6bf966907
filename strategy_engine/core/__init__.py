from strategy_engine.core.exceptions import (
    ProviderMisconfigured,
    ProviderOffline,
    UpstreamBadResponse,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from strategy_engine.core.request_spec import JsonRpcSpec, RequestSpec, canonicalize_query

__all__ = [
    "JsonRpcSpec",
    "ProviderMisconfigured",
    "ProviderOffline",
    "RequestSpec",
    "UpstreamBadResponse",
    "UpstreamError",
    "UpstreamRateLimited",
    "UpstreamUnavailable",
    "canonicalize_query",
]
