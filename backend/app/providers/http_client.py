"""
backend/app/providers/http_client.py

Purpose:
    Outbound HTTP for third-party providers: an httpx client that retries
    transient failures with exponential backoff and stops calling a provider
    that keeps failing (circuit breaker).

Dependencies:
    - httpx
"""

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("courtside.http_client")

_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
# Responses that count against the circuit even though they are not retried
_FAILURE_STATUSES = _RETRYABLE_STATUSES | {401, 403}


class CircuitOpenError(Exception):
    """Raised instead of sending a request while the circuit is open."""

    def __init__(self, name: str):
        super().__init__(f"Circuit for {name} is open.")
        self.name = name


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    Once ``recovery_timeout`` seconds have passed since the last failure a
    single trial call is let through (half-open); its outcome closes or
    re-opens the circuit.
    """

    def __init__(self, name: str, failure_threshold: int = 3, recovery_timeout: float = 300.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if time.monotonic() - self.opened_at >= self.recovery_timeout:
            return "half_open"
        return "open"

    def allow_request(self) -> bool:
        return self.state != "open"

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("[%s] Circuit closed", self.name)
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count >= self.failure_threshold:
            if self.opened_at is None:
                logger.warning("[%s] Circuit OPEN after %d failures", self.name, self.failure_count)
            self.opened_at = time.monotonic()


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _redact(url: str) -> str:
    """Drop the query string; API keys travel there."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """httpx.AsyncClient with retry/backoff and a per-provider circuit breaker.

    Returns the last response once retries are exhausted so callers can map
    status codes themselves. Network errors propagate after the last attempt.
    """

    def __init__(
        self,
        name: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.circuit = CircuitBreaker(name)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def _backoff(self, attempt: int, response: Optional[httpx.Response] = None) -> float:
        delay = _retry_after_seconds(response) if response is not None else None
        if delay is None:
            delay = self._base_delay * (2 ** attempt)
        return min(delay, self._max_delay)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.circuit.allow_request():
            raise CircuitOpenError(self.name)

        attempts = self._max_retries + 1
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                resp = await self._client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as exc:
                logger.warning(
                    "[%s] %s %s failed (attempt %d/%d): %s",
                    self.name, method, _redact(url), attempt + 1, attempts, exc,
                )
                if last_attempt:
                    self.circuit.record_failure()
                    raise
                await asyncio.sleep(self._backoff(attempt))
                continue

            if resp.status_code in _RETRYABLE_STATUSES and not last_attempt:
                logger.warning(
                    "[%s] %s %s returned %d (attempt %d/%d)",
                    self.name, method, _redact(url), resp.status_code, attempt + 1, attempts,
                )
                await asyncio.sleep(self._backoff(attempt, resp))
                continue

            if resp.status_code in _FAILURE_STATUSES:
                self.circuit.record_failure()
                logger.error(
                    "[%s] %s %s gave up with status %d",
                    self.name, method, _redact(url), resp.status_code,
                )
            else:
                self.circuit.record_success()
            return resp

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
