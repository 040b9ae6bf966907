from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional, Union

import httpx

from strategy_engine.core.exceptions import CircuitBreakerOpen, UpstreamBadResponse, UpstreamRateLimited
from strategy_engine.core.request_spec import JsonRpcSpec, RequestSpec

logger = logging.getLogger(__name__)

MAX_ERROR_BODY = 512
TRUTHY = frozenset({"1", "true", "yes"})


class TokenBucket:
    """Async token bucket; ``acquire`` sleeps until a token is available."""

    def __init__(self, rate_per_sec: float, capacity: Optional[float] = None) -> None:
        self.rate = max(rate_per_sec, 0.1)
        self.capacity = capacity or self.rate
        self._tokens = self.capacity
        self._stamp = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._stamp) * self.rate)
        self._stamp = now

    async def acquire(self, amount: float = 1.0) -> None:
        while True:
            async with self._lock:
                self._refill()
                shortfall = amount - self._tokens
                if shortfall <= 0:
                    self._tokens -= amount
                    return
            await asyncio.sleep(shortfall / self.rate)


class CircuitBreaker:
    def __init__(self, failure_threshold: int = 5, cooldown_sec: float = 30.0) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_sec = max(1.0, cooldown_sec)
        self.failures = 0
        self.open_until = 0.0

    @property
    def is_open(self) -> bool:
        return time.monotonic() < self.open_until

    def record_success(self) -> None:
        self.failures, self.open_until = 0, 0.0

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures < self.failure_threshold:
            return
        self.failures = 0
        self.open_until = time.monotonic() + self.cooldown_sec


class _Retry(Exception):
    """Internal marker: the attempt failed in a way worth repeating."""

    def __init__(self, error: BaseException, retry_after: Optional[str] = None) -> None:
        super().__init__(str(error))
        self.error = error
        self.retry_after = retry_after


def _body_text(resp: httpx.Response) -> str:
    try:
        return resp.text[:MAX_ERROR_BODY]
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""


def live_flag(value: str) -> bool:
    return value.strip().lower() in TRUTHY


class UpstreamHttpClient:
    """Rate limited, retrying JSON client shared by every upstream adapter.

    One instance per upstream so that rate limits and circuit state stay
    separate. Pass ``async_client`` to route traffic through a custom
    transport (tests use ``httpx.MockTransport`` and ``httpx.ASGITransport``).
    """

    name = "Upstream"

    def __init__(
        self,
        timeout: float = 10.0,
        rps: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base = max(0.1, backoff_base)
        self.backoff_max = max(backoff_max, self.backoff_base)
        self._client = async_client
        self._owns_client = async_client is None
        self._bucket = TokenBucket(rate_per_sec=rps)
        self._breaker = CircuitBreaker()

    async def __aenter__(self) -> "UpstreamHttpClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def request(self, spec: Union[RequestSpec, JsonRpcSpec], retries: Optional[int] = None) -> Any:
        if self._breaker.is_open:
            raise CircuitBreakerOpen(f"{self.name} circuit breaker is open")
        if isinstance(spec, JsonRpcSpec):
            spec = spec.to_request_spec()
        attempts = 1 + (self.max_retries if retries is None else max(0, retries))
        for attempt in range(attempts):
            await self._bucket.acquire()
            logger.debug("%s request %s (attempt %d/%d)", self.name, spec.describe(), attempt + 1, attempts)
            try:
                payload = await self._attempt(spec)
            except _Retry as retry:
                self._breaker.record_failure()
                if attempt + 1 >= attempts:
                    raise retry.error
                await asyncio.sleep(self._delay(attempt, retry.retry_after))
                continue
            self._breaker.record_success()
            return payload
        raise RuntimeError(f"{self.name} request made no attempts")

    async def _attempt(self, spec: RequestSpec) -> Any:
        try:
            resp = await self._ensure_client().request(
                spec.method,
                spec.url(),
                params=spec.normalized_query(),
                headers=spec.headers,
                json=spec.json,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s transport error on %s: %s", self.name, spec.describe(), exc)
            raise _Retry(exc) from exc

        status = resp.status_code
        if status == 429:
            error = UpstreamRateLimited(f"{self.name} rate limited", status_code=status, body=_body_text(resp))
            raise _Retry(error, resp.headers.get("Retry-After"))
        if status >= 500:
            error = UpstreamBadResponse(f"{self.name} upstream error", status_code=status, body=_body_text(resp))
            raise _Retry(error, resp.headers.get("Retry-After"))
        if status >= 400:
            raise UpstreamBadResponse(f"{self.name} request rejected", status_code=status, body=_body_text(resp))
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamBadResponse(f"{self.name} returned invalid JSON") from exc

    def _delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        if retry_after:
            try:
                return min(float(retry_after), self.backoff_max)
            except ValueError:
                logger.debug("%s ignoring Retry-After %r", self.name, retry_after)
        return min(self.backoff_max, self.backoff_base * (2**attempt))


__all__ = ["CircuitBreaker", "TokenBucket", "UpstreamHttpClient", "live_flag"]
