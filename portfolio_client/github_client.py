"""
Resilient client controller for the GitHub proxy.

Each logical request runs a small state machine:

    Idle -> Attempting -> Success
                       -> RateLimited -> Waiting -> Attempting
                       -> TransientFailure -> Backoff -> Attempting
                       -> NotFound -> Fallback
                       -> AttemptsExhausted -> Fallback

``request_or_raise`` surfaces the terminal failures as exceptions;
``request_with_retry`` turns them into a ``FallbackResult`` so callers at
the application boundary always receive a well-formed object.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from shared.config import ClientConfig
from shared.errors import (
    ClientRateLimitError,
    NotFoundError,
    ProxyError,
    TransportError,
    UpstreamRateLimitError,
    UpstreamStatusError,
)
from shared.logging import get_logger
from shared.retry import (
    AsyncioSleeper,
    CancellationToken,
    RetryCancelledError,
    RetryConfig,
    RetryError,
    Sleeper,
    calculate_delay,
)


FALLBACK_NOT_FOUND = "not_found"
FALLBACK_EXHAUSTED = "exhausted"
FALLBACK_CANCELLED = "cancelled"


@dataclass
class RetryState:
    """In-flight retry bookkeeping for one logical request."""

    attempt_index: int = 0
    last_error: Optional[BaseException] = None
    computed_delay: float = 0.0


@dataclass(frozen=True)
class FallbackResult:
    """Degraded placeholder returned instead of raising."""

    reason: str
    endpoint: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    is_fallback: bool = True


class GitHubClient:
    """Issues GitHub API reads through the proxy with retry and backoff."""

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        retry_config: Optional[RetryConfig] = None,
        sleeper: Optional[Sleeper] = None,
        clock: Callable[[], float] = time.time,
        attempt_timeout: float = 10.0,
        rate_limit_default_wait: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=1.0, max_delay=30.0)
        self.sleeper = sleeper or AsyncioSleeper()
        self.attempt_timeout = attempt_timeout
        self.rate_limit_default_wait = rate_limit_default_wait
        self._clock = clock
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=attempt_timeout)
        self.logger = get_logger("client.github")

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        sleeper: Optional[Sleeper] = None,
    ) -> "GitHubClient":
        return cls(
            config.proxy_url,
            http_client,
            retry_config=RetryConfig(
                max_attempts=config.max_attempts,
                base_delay=config.base_delay,
                max_delay=config.max_delay,
            ),
            sleeper=sleeper,
            attempt_timeout=config.attempt_timeout,
            rate_limit_default_wait=config.rate_limit_default_wait,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    def build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def backoff_delay(self, attempt_index: int) -> float:
        return calculate_delay(attempt_index, self.retry_config)

    def rate_limit_wait(self, headers: Mapping[str, str]) -> float:
        """Seconds to wait for the upstream window named by ``X-RateLimit-Reset``."""
        reset = headers.get("X-RateLimit-Reset")
        try:
            wait = float(reset) - self._clock() if reset else self.rate_limit_default_wait
        except ValueError:
            wait = self.rate_limit_default_wait
        if not math.isfinite(wait):
            wait = self.rate_limit_default_wait
        return min(max(wait, 0.0), self.retry_config.max_delay)

    @staticmethod
    def is_upstream_rate_limited(response: httpx.Response) -> bool:
        return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"

    async def request_or_raise(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Any:
        """GET ``endpoint`` and return its parsed JSON body.

        Raises:
            NotFoundError: the resource does not exist; never retried.
            RetryError: every attempt failed.
            RetryCancelledError: ``cancel_token`` fired.
        """
        url = self.build_url(endpoint)
        max_attempts = self.retry_config.max_attempts
        state = RetryState()

        for attempt_index in range(max_attempts):
            state.attempt_index = attempt_index
            state.computed_delay = 0.0
            is_last = attempt_index == max_attempts - 1

            if cancel_token is not None and cancel_token.cancelled:
                raise RetryCancelledError(f"Request to {endpoint} cancelled")

            self.logger.debug("API attempt", endpoint=endpoint, attempt=attempt_index + 1)

            try:
                response = await asyncio.wait_for(
                    self.http_client.get(url, params=params),
                    timeout=self.attempt_timeout,
                )
            except asyncio.TimeoutError as exc:
                state.last_error = TransportError("Request timed out", details={"endpoint": endpoint})
                state.last_error.__cause__ = exc
            except httpx.HTTPError as exc:
                state.last_error = TransportError(str(exc) or type(exc).__name__, details={"endpoint": endpoint})
                state.last_error.__cause__ = exc
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as exc:
                        state.last_error = exc
                elif response.status_code == 404:
                    self.logger.warning("Resource not found", endpoint=endpoint)
                    raise NotFoundError(f"Resource not found: {endpoint}", details={"endpoint": endpoint})
                elif self.is_upstream_rate_limited(response):
                    wait = self.rate_limit_wait(response.headers)
                    state.last_error = UpstreamRateLimitError(
                        reset_at=self._parse_reset(response.headers.get("X-RateLimit-Reset")),
                        details={"endpoint": endpoint},
                    )
                    if not is_last:
                        state.computed_delay = wait
                        self.logger.warning(
                            "Upstream rate limited, waiting for reset",
                            endpoint=endpoint,
                            attempt=attempt_index + 1,
                            wait_seconds=round(wait, 3),
                        )
                        await self.sleeper.sleep(wait, cancel_token)
                    continue
                elif response.status_code == 429:
                    state.last_error = ClientRateLimitError(details={"endpoint": endpoint})
                else:
                    state.last_error = UpstreamStatusError(response.status_code, details={"endpoint": endpoint})

            self.logger.warning(
                "API attempt failed",
                endpoint=endpoint,
                attempt=attempt_index + 1,
                max_attempts=max_attempts,
                error=str(state.last_error),
            )

            if not is_last:
                state.computed_delay = self.backoff_delay(attempt_index)
                self.logger.debug("Retrying after backoff", endpoint=endpoint, delay=state.computed_delay)
                await self.sleeper.sleep(state.computed_delay, cancel_token)

        self.logger.error("All API attempts failed", endpoint=endpoint, attempts=max_attempts)
        raise RetryError(
            f"Request to {endpoint} failed after {max_attempts} attempts",
            last_exception=state.last_error,
            attempts=max_attempts,
        )

    async def request_with_retry(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Any:
        """Like ``request_or_raise`` but returns a ``FallbackResult`` on failure."""
        try:
            return await self.request_or_raise(endpoint, params, cancel_token)
        except NotFoundError:
            return FallbackResult(FALLBACK_NOT_FOUND, endpoint, status_code=404)
        except RetryCancelledError as exc:
            self.logger.info("API request cancelled", endpoint=endpoint)
            return FallbackResult(FALLBACK_CANCELLED, endpoint, error=str(exc))
        except RetryError as exc:
            last = exc.last_exception
            status_code = last.status_code if isinstance(
                last, (UpstreamStatusError, UpstreamRateLimitError, ClientRateLimitError)
            ) else None
            self.logger.warning("Returning fallback result", endpoint=endpoint, error=str(exc.last_exception))
            return FallbackResult(
                FALLBACK_EXHAUSTED,
                endpoint,
                status_code=status_code,
                error=str(exc.last_exception) if exc.last_exception else None,
            )

    async def send(self, method: str, endpoint: str, json: Optional[Any] = None) -> Any:
        """Issue a single mutating request. Mutations are never retried.

        Raises:
            TransportError, NotFoundError, ClientRateLimitError, UpstreamStatusError
        """
        url = self.build_url(endpoint)
        try:
            response = await asyncio.wait_for(
                self.http_client.request(method.upper(), url, json=json),
                timeout=self.attempt_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransportError("Request timed out", details={"endpoint": endpoint}) from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or type(exc).__name__, details={"endpoint": endpoint}) from exc

        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {endpoint}", details={"endpoint": endpoint})
        if response.status_code == 429:
            raise ClientRateLimitError(details={"endpoint": endpoint})
        if not response.is_success:
            raise UpstreamStatusError(response.status_code, details={"endpoint": endpoint})

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ProxyError("invalid_response", "Response body was not JSON", {"endpoint": endpoint}) from exc

    @staticmethod
    def _parse_reset(value: Optional[str]) -> Optional[float]:
        try:
            return float(value) if value else None
        except ValueError:
            return None
