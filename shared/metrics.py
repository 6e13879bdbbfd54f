"""
Shared metrics configuration for the portfolio GitHub proxy.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns its registry so several apps can coexist in one process
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        if self.service_name == "proxy":
            self._setup_proxy_metrics()

    def _setup_proxy_metrics(self):
        """Set up proxy-specific metrics."""
        self._metrics["proxy_cache_lookups_total"] = Counter(
            "proxy_cache_lookups_total",
            "Cache outcomes by X-Cache value",
            ["result"],
            registry=self.registry
        )

        self._metrics["proxy_cache_evictions_total"] = Counter(
            "proxy_cache_evictions_total",
            "Entries evicted from the bounded cache",
            registry=self.registry
        )

        self._metrics["proxy_cache_entries"] = Gauge(
            "proxy_cache_entries",
            "Entries currently held in the bounded cache",
            registry=self.registry
        )

        self._metrics["proxy_rate_limit_rejections_total"] = Counter(
            "proxy_rate_limit_rejections_total",
            "Mutating requests rejected by the local rate limiter",
            registry=self.registry
        )

        self._metrics["proxy_upstream_requests_total"] = Counter(
            "proxy_upstream_requests_total",
            "Requests sent to the upstream API",
            ["method", "status_code"],
            registry=self.registry
        )

        self._metrics["proxy_upstream_errors_total"] = Counter(
            "proxy_upstream_errors_total",
            "Upstream transport failures",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def render_latest(self) -> bytes:
        """Render the registry in Prometheus text exposition format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name not in self._metrics:
            return
        metric = self._metrics[metric_name]
        with self._lock:
            if labels:
                metric.labels(**labels).inc()
            else:
                metric.inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name not in self._metrics:
            return
        metric = self._metrics[metric_name]
        if labels:
            metric.labels(**labels).set(value)
        else:
            metric.set(value)

    def get_sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read a sample value from the registry, mostly for tests."""
        return self.registry.get_sample_value(metric_name, labels or None)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
