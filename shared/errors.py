"""
Shared error handling for the portfolio GitHub proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: Dict[str, Any] = {}


class ProxyError(Exception):
    """Base exception for the proxy and its client."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(ProxyError):
    """Bad or missing configuration. Never fatal; callers degrade instead."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("configuration_error", message, details)


class ClientRateLimitError(ProxyError):
    """The proxy's own per-caller mutation ceiling was hit."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("rate_limit_exceeded", message, details)


class UpstreamRateLimitError(ProxyError):
    """The upstream API reported an exhausted rate limit."""

    status_code = 403

    def __init__(self, message: str = "Upstream rate limit exhausted",
                 reset_at: Optional[float] = None, details: Optional[Dict[str, Any]] = None):
        self.reset_at = reset_at
        super().__init__("upstream_rate_limited", message, details)


class NotFoundError(ProxyError):
    """Resource not found."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("not_found", message, details)


class TransportError(ProxyError):
    """The upstream could not be reached."""

    status_code = 502

    def __init__(self, message: str = "Upstream request failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("upstream_error", message, details)


class UpstreamStatusError(ProxyError):
    """The upstream answered with an unexpected HTTP status."""

    def __init__(self, status_code: int, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        super().__init__(
            "upstream_status",
            message or f"GitHub API error: {status_code}",
            {"status_code": status_code, **(details or {})},
        )
