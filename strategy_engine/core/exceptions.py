from __future__ import annotations

from typing import Any, List, Optional


class ProviderMisconfigured(RuntimeError):
    pass


class ProviderOffline(RuntimeError):
    pass


class CircuitBreakerOpen(RuntimeError):
    pass


class UpstreamError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UpstreamRateLimited(UpstreamError):
    pass


class UpstreamBadResponse(UpstreamError):
    pass


class UpstreamUnavailable(UpstreamError):
    pass


class RpcError(UpstreamBadResponse):
    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[Any] = None,
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.data = data
        self.logs = logs or []


class NotFound(LookupError):
    pass


class TokenNotFound(NotFound):
    pass


class StrategyNotFound(NotFound):
    pass


class InvalidStrategyConfig(ValueError):
    def __init__(self, message: str, errors: Optional[List[dict]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class InvalidStateTransition(RuntimeError):
    pass


class QuoteError(RuntimeError):
    pass


class NoRoute(QuoteError):
    pass


class InvalidAmount(QuoteError, ValueError):
    pass


class ExecutionError(RuntimeError):
    retryable = False

    def __init__(self, message: str, signature: Optional[str] = None) -> None:
        super().__init__(message)
        self.signature = signature


class SlippageExceeded(ExecutionError):
    retryable = True


class QuoteExpired(ExecutionError):
    retryable = True


class SimulationFailed(ExecutionError):
    pass


class SubmissionFailed(ExecutionError):
    pass


class ExecutionTimeout(ExecutionError):
    pass


class ExecutionCancelled(ExecutionError):
    pass


class WalletCorrupt(RuntimeError):
    pass


__all__ = [
    "CircuitBreakerOpen",
    "ExecutionCancelled",
    "ExecutionError",
    "ExecutionTimeout",
    "InvalidAmount",
    "InvalidStateTransition",
    "InvalidStrategyConfig",
    "NoRoute",
    "NotFound",
    "ProviderMisconfigured",
    "ProviderOffline",
    "QuoteError",
    "QuoteExpired",
    "RpcError",
    "SimulationFailed",
    "SlippageExceeded",
    "StrategyNotFound",
    "SubmissionFailed",
    "TokenNotFound",
    "UpstreamBadResponse",
    "UpstreamError",
    "UpstreamRateLimited",
    "UpstreamUnavailable",
    "WalletCorrupt",
]
