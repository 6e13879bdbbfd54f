"""
GitHub API proxy service.
"""

import time
from typing import Callable, Optional

import httpx
from fastapi import Request, Response

from shared.base_service import BaseService, utc_now_iso
from shared.config import ProxyConfig, get_config
from shared.logging import set_caller_context
from .caching.lru_cache import BoundedCache
from .credentials.token_validator import load_credential
from .forwarding.forwarder import RequestForwarder
from .ratelimit.sliding_window import MutationRateLimiter


PROXIED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


class ProxyService(BaseService):
    """Caching, rate-limiting proxy in front of the GitHub REST API."""

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        super().__init__("proxy", config or get_config())
        clock = clock or time.time

        self.credential = load_credential(self.config.github_token)
        self.cache = BoundedCache(
            self.config.cache_max_size,
            on_evict=lambda signature: self.metrics.increment_counter("proxy_cache_evictions_total"),
        )
        self.rate_limiter = MutationRateLimiter(
            limit=self.config.mutation_limit,
            window_seconds=self.config.mutation_window_seconds,
            clock=clock,
            max_tracked_callers=self.config.max_tracked_callers,
        )

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.upstream_timeout_seconds),
            follow_redirects=True,
        )

        self.forwarder = RequestForwarder(
            self.cache,
            self.rate_limiter,
            self.http_client,
            upstream_base_url=self.config.upstream_base_url,
            credential=self.credential,
            ttl_seconds=self.config.cache_ttl_seconds,
            api_version=self.config.github_api_version,
            clock=clock,
            metrics=self.metrics,
        )

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    async def _on_shutdown(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    def _get_client_ip(self, request: Request) -> str:
        """Extract the caller IP from standard headers."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        if request.client:
            return request.client.host
        return "unknown"

    def _get_raw_api_path(self, request: Request, path: str) -> str:
        """The proxied path as the caller encoded it, so an escaped slash stays escaped."""
        raw_path = request.scope.get("raw_path")
        if not raw_path:
            return path
        raw = raw_path.split(b"?", 1)[0].decode("latin-1")
        prefix = self.config.api_prefix.rstrip("/") + "/"
        if not raw.startswith(prefix):
            return path
        return raw[len(prefix):]

    def _setup_proxy_routes(self):
        """Set up the API health route and the catch-all proxy route."""
        prefix = self.config.api_prefix.rstrip("/")

        # Registered before the catch-all so no method on it is forwarded upstream
        @self.app.api_route(f"{prefix}/health", methods=PROXIED_METHODS)
        async def api_health():
            """Proxy status with cache utilisation and live upstream rate limit."""
            rate_limit = await self.forwarder.rate_limit_snapshot()
            self.metrics.record_health_check("ok" if rate_limit is not None else "degraded")
            return {
                "ok": True,
                "time": utc_now_iso(),
                "hasToken": self.forwarder.has_token,
                "uptimeSeconds": round(self._get_uptime(), 3),
                "cache": self.forwarder.cache_stats(),
                "rateLimit": rate_limit,
            }

        @self.app.api_route(prefix + "/{path:path}", methods=PROXIED_METHODS)
        async def proxy(path: str, request: Request):
            """Forward an API request upstream."""
            caller_id = self._get_client_ip(request)
            set_caller_context(caller_id)

            body = None
            if not self.rate_limiter.is_idempotent(request.method):
                body = await request.body()

            result = await self.forwarder.forward(
                request.method,
                self._get_raw_api_path(request, path),
                query_items=request.query_params.multi_items(),
                body=body,
                content_type=request.headers.get("Content-Type"),
                caller_id=caller_id,
            )
            return Response(
                content=result.body,
                status_code=result.status_code,
                headers=result.headers,
            )


def create_app(
    config: Optional[ProxyConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    clock: Optional[Callable[[], float]] = None,
):
    """Create FastAPI application."""
    service = ProxyService(config=config, http_client=http_client, clock=clock)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
