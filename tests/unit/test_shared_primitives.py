"""
Unit tests for shared retry, error, metrics and logging primitives.
"""

import asyncio

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_client_config
from shared.errors import ClientRateLimitError, TransportError, UpstreamStatusError
from shared.logging import mask_secret, redact_secrets
from shared.metrics import MetricsCollector
from shared.retry import (
    AsyncioSleeper,
    CancellationToken,
    RetryCancelledError,
    RetryConfig,
    calculate_delay,
)


class TestCalculateDelay:
    """Test cases for backoff delays."""

    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=30.0)

        assert [calculate_delay(index, config) for index in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]

    def test_monotone_under_cap(self):
        config = RetryConfig(base_delay=0.5, max_delay=5.0)
        delays = [calculate_delay(index, config) for index in range(10)]

        assert delays == sorted(delays)
        assert max(delays) == 5.0

    def test_jitter_stays_near_delay(self):
        config = RetryConfig(base_delay=1.0, max_delay=30.0, jitter=True)

        for _ in range(20):
            assert 0.9 <= calculate_delay(0, config) <= 1.1

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    def test_single_backoff_strategy(self):
        with pytest.raises(TypeError):
            RetryConfig(backoff_strategy="linear")


class TestCancellationToken:
    """Test cases for CancellationToken."""

    def test_created_outside_event_loop(self):
        token = CancellationToken()

        async def cancel_while_sleeping():
            asyncio.get_running_loop().call_later(0.01, token.cancel)
            await AsyncioSleeper().sleep(10, token)

        with pytest.raises(RetryCancelledError):
            asyncio.run(cancel_while_sleeping())
        assert token.cancelled is True

    def test_cancelled_before_first_wait(self):
        token = CancellationToken()
        token.cancel()

        asyncio.run(asyncio.wait_for(token.wait(), timeout=1))

        assert token.cancelled is True


class TestAsyncioSleeper:
    """Test cases for the cancellable sleeper."""

    @pytest.mark.asyncio
    async def test_sleeps_without_token(self):
        await AsyncioSleeper().sleep(0)

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RetryCancelledError):
            await AsyncioSleeper().sleep(10, token)

    @pytest.mark.asyncio
    async def test_wakes_early_on_cancel(self):
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        started = loop.time()

        with pytest.raises(RetryCancelledError):
            await AsyncioSleeper().sleep(10, token)

        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_completes_when_not_cancelled(self):
        await AsyncioSleeper().sleep(0.01, CancellationToken())


class TestErrors:
    """Test cases for the error taxonomy."""

    def test_response_shapes(self):
        error = ClientRateLimitError(details={"limit": 10})

        assert error.status_code == 429
        assert error.to_response().model_dump() == {
            "error": "rate_limit_exceeded",
            "message": "Rate limit exceeded",
            "details": {"limit": 10},
        }

    def test_transport_error_is_bad_gateway(self):
        assert TransportError().status_code == 502

    def test_upstream_status_carries_code(self):
        error = UpstreamStatusError(503, details={"endpoint": "/x"})

        assert error.status_code == 503
        assert error.message == "GitHub API error: 503"
        assert error.details == {"status_code": 503, "endpoint": "/x"}


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_collectors_are_isolated(self):
        first = MetricsCollector("proxy")
        second = MetricsCollector("proxy")

        first.increment_counter("proxy_cache_lookups_total", result="hit")

        assert first.get_sample("proxy_cache_lookups_total", result="hit") == 1.0
        assert second.get_sample("proxy_cache_lookups_total", result="hit") is None

    def test_unknown_metric_ignored(self):
        collector = MetricsCollector("client")

        collector.increment_counter("proxy_cache_evictions_total")

        assert collector.get_metric("proxy_cache_evictions_total") is None

    def test_render_latest(self):
        collector = MetricsCollector("proxy")
        collector.set_gauge("proxy_cache_entries", 3)

        assert b"proxy_cache_entries 3.0" in collector.render_latest()


class TestClientConfig:
    """Test cases for client configuration."""

    def test_proxy_url_alias(self, monkeypatch):
        monkeypatch.setenv("PORTFOLIO_PROXY_URL", "http://proxy.internal/api")
        monkeypatch.setenv("PORTFOLIO_MANAGER_REPO", "acme/manager")

        config = get_client_config(_env_file=None)

        assert config.proxy_url == "http://proxy.internal/api"
        assert config.manager_repo == "acme/manager"
        assert config.max_attempts == 3


class TestSecretRedaction:
    """Test cases for credential masking in log events."""

    def test_tokens_masked_in_messages(self):
        message = "Sending token ghp_" + "a" * 36 + " upstream"

        assert mask_secret(message) == "Sending token ghp_*** upstream"

    def test_fine_grained_token_masked(self):
        assert mask_secret("github_pat_" + "B" * 84) == "gith***"

    def test_plain_text_untouched(self):
        message = "No GitHub token configured; proxying unauthenticated"

        assert mask_secret(message) == message

    def test_secret_keys_masked(self):
        event = redact_secrets(None, "info", {"event": "Auth", "authorization": "Bearer abcdefgh", "count": 3})

        assert event == {"event": "Auth", "authorization": "Bear***", "count": 3}
