"""
Shared utilities for the portfolio GitHub proxy and its client.

This package aggregates common building blocks consumed by the proxy
service and the client library:

- config: Service and client configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff calculation, cancellation and sleepers
- base_service: FastAPI service skeleton
- test_helpers: Fakes and factories shared by the test suites

Any cross-package logic should live here to avoid import cycles. Do not
import from service_proxy or portfolio_client into shared/.
"""
