"""
Base service class for the portfolio GitHub proxy.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Optional
import time

from shared.config import ProxyConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ProxyError


CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET,POST,PUT,PATCH,DELETE,OPTIONS",
    "Access-Control-Expose-Headers": "X-Cache,X-RateLimit-Remaining,X-RateLimit-Limit,X-RateLimit-Reset",
}


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: Optional[ProxyConfig] = None):
        self.service_name = service_name
        self.config = config or get_config()
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        # Interactive docs stay off: every path outside the API prefix answers 404
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description="Caching, rate-limiting proxy in front of the GitHub REST API",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        yield
        await self._on_shutdown()

    async def _on_shutdown(self) -> None:
        """Release resources on shutdown. Override in subclasses."""

    def _setup_middleware(self):
        """Set up middleware."""

        # Registered first so it runs innermost, below the timing middleware
        @self.app.middleware("http")
        async def permissive_cors(request: Request, call_next):
            if request.method == "OPTIONS":
                return Response(status_code=204, headers=dict(CORS_HEADERS))

            response = await call_next(request)
            for name, value in CORS_HEADERS.items():
                response.headers[name] = value
            return response

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            try:
                response = await call_next(request)
            finally:
                clear_context()

            duration = time.time() - start_time
            response.headers["X-Request-ID"] = request_id

            self.metrics.record_http_request(
                method=request.method,
                endpoint=self._endpoint_label(request),
                status_code=response.status_code,
                duration=duration
            )

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
                request_id=request_id,
            )

            return response

    def _endpoint_label(self, request: Request) -> str:
        """Collapse request paths into a low-cardinality metrics label."""
        route = request.scope.get("route")
        return getattr(route, "path", None) or "unmatched"

    def _setup_routes(self):
        """Set up common routes."""

        async def liveness():
            """Liveness endpoint."""
            self.metrics.record_health_check("ok")
            return {"ok": True, "time": utc_now_iso()}

        self.app.add_api_route("/health", liveness, methods=["GET"])
        self.app.add_api_route("/healthz", liveness, methods=["GET"])

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(
                content=self.metrics.render_latest(),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(ProxyError)
        async def proxy_exception_handler(request: Request, exc: ProxyError):
            """Handle ProxyError."""
            self.logger.warning(
                "Proxy error",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path,
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Render framework HTTP errors in the proxy's error shape."""
            if exc.status_code == 404:
                return JSONResponse(status_code=404, content={"error": "not_found"})
            if exc.status_code == 405:
                return JSONResponse(status_code=405, content={"error": "method_not_allowed"})
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": "http_error", "message": str(exc.detail)}
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            # Raised past the middleware stack, so CORS headers are added here
            return JSONResponse(
                status_code=500,
                content={"error": "internal_error", "message": "Internal server error"},
                headers=dict(CORS_HEADERS),
            )

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
