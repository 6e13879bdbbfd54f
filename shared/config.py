"""
Shared configuration management for the portfolio GitHub proxy.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=AliasChoices("env", "PROXY_ENV"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("log_level", "PROXY_LOG_LEVEL"))


class ProxyConfig(BaseConfig):
    """Configuration for the caching/rate-limiting proxy service."""

    service_name: str = "proxy"
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("host", "PROXY_HOST"))
    port: int = Field(default=4000, validation_alias=AliasChoices("port", "PROXY_PORT", "PORT"))

    # Upstream
    github_token: str = Field(
        default="",
        validation_alias=AliasChoices("github_token", "PROXY_GITHUB_TOKEN", "GITHUB_TOKEN"),
    )
    upstream_base_url: str = Field(
        default="https://api.github.com",
        validation_alias=AliasChoices("upstream_base_url", "PROXY_UPSTREAM_BASE_URL"),
    )
    github_api_version: str = Field(
        default="2022-11-28",
        validation_alias=AliasChoices("github_api_version", "PROXY_GITHUB_API_VERSION"),
    )
    upstream_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("upstream_timeout_seconds", "PROXY_UPSTREAM_TIMEOUT_SECONDS"),
    )
    api_prefix: str = Field(default="/api", validation_alias=AliasChoices("api_prefix", "PROXY_API_PREFIX"))

    # Cache
    cache_ttl_seconds: int = Field(
        default=60,
        validation_alias=AliasChoices("cache_ttl_seconds", "PROXY_CACHE_TTL_SECONDS", "CACHE_TTL_SECONDS"),
    )
    cache_max_size: int = Field(
        default=100,
        validation_alias=AliasChoices("cache_max_size", "PROXY_CACHE_MAX_SIZE"),
    )

    # Rate limiting
    mutation_limit: int = Field(
        default=10,
        validation_alias=AliasChoices("mutation_limit", "PROXY_MUTATION_LIMIT"),
    )
    mutation_window_seconds: float = Field(
        default=60.0,
        validation_alias=AliasChoices("mutation_window_seconds", "PROXY_MUTATION_WINDOW_SECONDS"),
    )
    max_tracked_callers: int = Field(
        default=10000,
        validation_alias=AliasChoices("max_tracked_callers", "PROXY_MAX_TRACKED_CALLERS"),
    )


class ClientConfig(BaseConfig):
    """Configuration for the resilient client controller."""

    proxy_url: str = Field(
        default="http://localhost:4000/api",
        validation_alias=AliasChoices("proxy_url", "PORTFOLIO_PROXY_URL"),
    )
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    attempt_timeout: float = 10.0
    rate_limit_default_wait: float = 60.0

    manager_repo: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("manager_repo", "PORTFOLIO_MANAGER_REPO"),
    )
    tasks_branch: str = "main"


def get_config(**overrides) -> ProxyConfig:
    """Get configuration for the proxy service."""
    return ProxyConfig(**overrides)


def get_client_config(**overrides) -> ClientConfig:
    """Get configuration for the client controller."""
    return ClientConfig(**overrides)
