"""Shared async HTTP plumbing for feed and platform clients.

Maps httpx failures onto engine errors, applies retry-with-backoff and an
optional minimum interval between requests.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..config import RetryConfig
from ..errors import (
    ApiLimitError,
    AuthenticationError,
    NetworkError,
    PriceSyncError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_TIMEOUT = 30.0


def response_error_message(response: httpx.Response) -> str:
    """Best-effort human message from an error response body."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, str):
            return errors
        if isinstance(errors, list):
            return ", ".join(str(e) for e in errors)
        if isinstance(errors, dict):
            return "; ".join(
                f"{key}: {', '.join(map(str, v)) if isinstance(v, list) else v}"
                for key, v in errors.items()
            )
        for key in ("message", "error"):
            if data.get(key):
                return str(data[key])

    text = response.text.strip()
    if text and len(text) <= 200:
        return text
    return f"HTTP {response.status_code}"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(int(value.strip())))
    except ValueError:
        return None


def raise_for_response(response: httpx.Response, context: str = "") -> None:
    """Raise the engine error matching a non-2xx response."""
    status = response.status_code
    if status < 400:
        return

    message = response_error_message(response)
    prefix = f"{context}: " if context else ""
    full = f"{prefix}{message} (HTTP {status})"

    if status == 429 or "rate limit" in message.lower():
        raise ApiLimitError(
            full,
            status_code=status,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if status in (401, 403):
        raise AuthenticationError(full, status_code=status)
    if status >= 500:
        raise NetworkError(full, status_code=status)
    raise NetworkError(full, status_code=status, retryable=False)


def backoff_delay(attempt: int, policy: RetryConfig, error: PriceSyncError) -> float:
    """Delay before retry number `attempt` (1-based)."""
    delay = min(
        policy.initial_delay * policy.multiplier ** (attempt - 1), policy.max_delay
    )
    if isinstance(error, ApiLimitError):
        if error.retry_after is not None:
            delay = max(delay, error.retry_after)
        else:
            delay = max(delay, policy.rate_limit_min_delay)
    return delay


class RequestThrottle:
    """Enforces a minimum interval between consecutive requests."""

    def __init__(
        self,
        min_interval: float,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = max(0.0, min_interval)
        self._sleep = sleep
        self._clock = clock
        self._last_request_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            if self._last_request_at is not None and self.min_interval > 0:
                elapsed = self._clock() - self._last_request_at
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)
            self._last_request_at = self._clock()


class ApiClient:
    """Base for clients that talk JSON over HTTP.

    Subclasses set `name` and build `self._http` (an `httpx.AsyncClient`).
    """

    name: str = "api"

    def __init__(
        self,
        *,
        retry: Optional[RetryConfig] = None,
        retry_on: tuple[type[PriceSyncError], ...] = (NetworkError,),
        throttle: Optional[RequestThrottle] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.retry = retry
        self.retry_on = retry_on
        self.throttle = throttle
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep
        self._http: Optional[httpx.AsyncClient] = None

    def _build_http(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport, **kwargs
        )

    async def _send_once(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http is None:
            raise RuntimeError(f"{self.name} HTTP client not initialised")
        if self.throttle is not None:
            await self.throttle.wait()
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{self.name} request timed out: {method} {url}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{self.name} connection failed: {e}") from e
        raise_for_response(response, context=f"{self.name} {method} {url}")
        return response

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying retryable failures per `self.retry`."""
        attempts = self.retry.max_attempts if self.retry else 1
        attempt = 1
        while True:
            try:
                return await self._send_once(method, url, **kwargs)
            except PriceSyncError as e:
                retry = (
                    self.retry is not None
                    and e.retryable
                    and isinstance(e, self.retry_on)
                    and attempt < attempts
                )
                if not retry:
                    if attempt >= attempts > 1:
                        logger.error(
                            f"[{self.name}] Max retry attempts ({attempts}) reached"
                        )
                    raise
                delay = backoff_delay(attempt, self.retry, e)
                logger.warning(
                    f"[{self.name}] Retry attempt {attempt}/{attempts} "
                    f"after {delay:.1f}s: {e}"
                )
                await self._sleep(delay)
                attempt += 1

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


__all__ = [
    "ApiClient",
    "RequestThrottle",
    "backoff_delay",
    "parse_retry_after",
    "raise_for_response",
    "response_error_message",
]
