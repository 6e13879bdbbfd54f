"""
Request forwarder for the GitHub proxy.

Handles one inbound request end to end: rate-limit gate, cache lookup,
upstream call, response interpretation and cache update. The forwarder is
framework independent; the FastAPI layer adapts requests into ``forward``
calls and ``ProxyResponse`` objects back into responses.

Retries are deliberately absent here. Replaying a POST/PUT/DELETE on the
caller's behalf could execute a mutation twice, so all retry policy lives
in the client controller.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, TYPE_CHECKING
from urllib.parse import urlencode

import httpx

from shared.errors import ClientRateLimitError, TransportError
from shared.logging import get_logger
from ..caching.lru_cache import BoundedCache, CacheEntry
from ..credentials.token_validator import GitHubCredential
from ..ratelimit.sliding_window import MutationRateLimiter

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


GITHUB_MEDIA_TYPE = "application/vnd.github.v3+json"
DEFAULT_API_VERSION = "2022-11-28"
DEFAULT_CONTENT_TYPE = "application/json"

TELEMETRY_HEADERS = ("X-RateLimit-Remaining", "X-RateLimit-Limit", "X-RateLimit-Reset")

CACHE_HIT = "hit"
CACHE_REVALIDATED = "revalidated"
CACHE_STALE = "stale"
CACHE_MISS = "miss"


@dataclass
class ProxyResponse:
    """Status, headers and body to return to the caller."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def cache_status(self) -> Optional[str]:
        return self.headers.get("X-Cache")


def signature_for(method: str, target_url: str) -> str:
    """Cache key for a request."""
    return f"{method.upper()}:{target_url}"


class RequestForwarder:
    """Forwards API requests upstream through the cache and rate limiter."""

    def __init__(
        self,
        cache: BoundedCache,
        rate_limiter: MutationRateLimiter,
        http_client: httpx.AsyncClient,
        *,
        upstream_base_url: str = "https://api.github.com",
        credential: Optional[GitHubCredential] = None,
        ttl_seconds: float = 60,
        api_version: str = DEFAULT_API_VERSION,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.http_client = http_client
        self.upstream_base_url = upstream_base_url.rstrip("/")
        self.credential = credential
        self.ttl_seconds = ttl_seconds
        self.api_version = api_version
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger("proxy.forwarder")

    @property
    def has_token(self) -> bool:
        return self.credential is not None

    def build_target_url(self, path: str, query_items: Iterable[Tuple[str, str]] = ()) -> str:
        """Upstream URL for an API path whose prefix has already been stripped."""
        if not path.startswith("/"):
            path = f"/{path}"
        target = f"{self.upstream_base_url}{path}"

        pairs = list(query_items)
        if pairs:
            target = f"{target}?{urlencode(pairs)}"
        return target

    def build_upstream_headers(
        self,
        content_type: Optional[str] = None,
        existing: Optional[CacheEntry] = None,
    ) -> Dict[str, str]:
        headers = {
            "Accept": GITHUB_MEDIA_TYPE,
            "X-GitHub-Api-Version": self.api_version,
        }
        if self.credential is not None:
            headers["Authorization"] = self.credential.authorization_header
        if content_type:
            headers["Content-Type"] = content_type
        if existing is not None and existing.validator:
            headers["If-None-Match"] = existing.validator
        return headers

    async def forward(
        self,
        method: str,
        path: str,
        query_items: Iterable[Tuple[str, str]] = (),
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
        caller_id: str = "unknown",
    ) -> ProxyResponse:
        """Serve one API request from the cache or the upstream.

        Raises:
            ClientRateLimitError: the caller exhausted its mutation budget.
            TransportError: the upstream could not be reached.
        """
        method = method.upper()

        if not self.rate_limiter.check_and_record(caller_id, method):
            self._count("proxy_rate_limit_rejections_total")
            raise ClientRateLimitError(
                "Too many mutating requests",
                details=self.rate_limiter.snapshot(caller_id),
            )

        target_url = self.build_target_url(path, query_items)
        signature = signature_for(method, target_url)

        existing = self.cache.get(signature) if method == "GET" else None
        if existing is not None and existing.is_fresh(self._clock()):
            self._count("proxy_cache_lookups_total", result=CACHE_HIT)
            return ProxyResponse(
                status_code=200,
                headers={**existing.response_headers, "X-Cache": CACHE_HIT},
                body=existing.body,
            )

        headers = self.build_upstream_headers(content_type, existing)
        payload = None if self.rate_limiter.is_idempotent(method) else (body or b"")

        try:
            upstream = await self.http_client.request(method, target_url, headers=headers, content=payload)
        except httpx.HTTPError as exc:
            self._count("proxy_upstream_errors_total")
            self.logger.error(
                "Upstream request failed",
                method=method,
                target=target_url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise TransportError(details={"method": method, "target": target_url}) from exc

        self._count("proxy_upstream_requests_total", method=method, status_code=str(upstream.status_code))

        out_headers = self._select_headers(upstream)
        validator = upstream.headers.get("ETag")

        if method == "GET":
            if upstream.status_code == 304 and existing is not None:
                return self._revalidated(signature, existing, upstream, validator)

            if upstream.is_success:
                self.cache.put(signature, CacheEntry(
                    signature=signature,
                    body=upstream.content,
                    response_headers=dict(out_headers),
                    validator=validator,
                    expires_at=self._clock() + self.ttl_seconds,
                ))
                self._set_cache_gauge()

        cache_status = CACHE_STALE if existing is not None else CACHE_MISS
        self._count("proxy_cache_lookups_total", result=cache_status)
        if existing is not None:
            self.logger.debug(
                "Cached entry could not be revalidated",
                signature=signature,
                status_code=upstream.status_code,
            )

        return ProxyResponse(
            status_code=upstream.status_code,
            headers={**out_headers, "X-Cache": cache_status},
            body=upstream.content,
        )

    def _revalidated(
        self,
        signature: str,
        existing: CacheEntry,
        upstream: httpx.Response,
        validator: Optional[str],
    ) -> ProxyResponse:
        # 304 carries no body; keep the cached one and adopt fresh telemetry
        fresh_telemetry = {
            name: upstream.headers[name] for name in TELEMETRY_HEADERS if upstream.headers.get(name)
        }
        refreshed = replace(
            existing,
            response_headers={**existing.response_headers, **fresh_telemetry},
            validator=validator or existing.validator,
            expires_at=self._clock() + self.ttl_seconds,
        )
        self.cache.put(signature, refreshed)
        self._count("proxy_cache_lookups_total", result=CACHE_REVALIDATED)

        return ProxyResponse(
            status_code=200,
            headers={**refreshed.response_headers, "X-Cache": CACHE_REVALIDATED},
            body=refreshed.body,
        )

    @staticmethod
    def _select_headers(upstream: httpx.Response) -> Dict[str, str]:
        headers = {"Content-Type": upstream.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE}
        for name in TELEMETRY_HEADERS:
            headers[name] = upstream.headers.get(name, "")
        return headers

    async def rate_limit_snapshot(self) -> Optional[Dict[str, Any]]:
        """Live upstream core rate-limit figures, or None when unavailable."""
        try:
            response = await self.http_client.get(
                f"{self.upstream_base_url}/rate_limit",
                headers=self.build_upstream_headers(),
            )
        except httpx.HTTPError as exc:
            self.logger.warning("Rate limit snapshot unavailable", error=str(exc))
            return None

        if not response.is_success:
            self.logger.warning("Rate limit snapshot rejected", status_code=response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            self.logger.warning("Rate limit snapshot was not JSON")
            return None

        resources = payload.get("resources") if isinstance(payload, dict) else None
        core = resources.get("core") if isinstance(resources, dict) else None
        if not isinstance(core, dict):
            return None

        return {key: core.get(key) for key in ("used", "remaining", "limit", "reset")}

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def _set_cache_gauge(self) -> None:
        if self.metrics is not None:
            self.metrics.set_gauge("proxy_cache_entries", self.cache.size())

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)
