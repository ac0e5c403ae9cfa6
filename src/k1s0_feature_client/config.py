"""Feature client configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import ConfigurationError
from .models import FeatureContext, FeaturesWithFallbacks

if TYPE_CHECKING:
    from .plugins.base import Plugin

DEFAULT_FEATURES_URL = "https://edge.supaship.com/v1/features"


@dataclass(frozen=True)
class RetryConfig:
    """Network-level retry policy (exponential backoff)."""

    enabled: bool = True
    max_attempts: int = 3
    backoff: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"retry.max_attempts must be >= 1, got {self.max_attempts}"
            )
        if self.backoff < 0:
            raise ConfigurationError(f"retry.backoff must be >= 0, got {self.backoff}")


@dataclass(frozen=True)
class NetworkConfig:
    """Endpoint and transport settings."""

    features_url: str | None = None
    retry: RetryConfig = field(default_factory=RetryConfig)
    request_timeout: float = 10.0


@dataclass(frozen=True)
class CacheConfig:
    """Client-side result cache. Durations are seconds."""

    enabled: bool = True
    stale_time: float = 300.0
    cache_time: float = 600.0

    def __post_init__(self) -> None:
        if self.stale_time < 0 or self.cache_time < 0:
            raise ConfigurationError("cache durations must be >= 0")


@dataclass
class FeatureClientConfig:
    """Configuration for FeatureClient."""

    api_key: str
    environment: str
    base_url: str | None = None
    context: FeatureContext | None = None
    features: FeaturesWithFallbacks = field(default_factory=dict)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    coerce_string_values: bool = False
    plugins: list[Plugin] = field(default_factory=list)

    def validate(self) -> None:
        """必須項目を検証する。不足していれば ConfigurationError。"""
        if not self.api_key:
            raise ConfigurationError("api_key is required")
        if not self.environment:
            raise ConfigurationError("environment is required")

    @property
    def features_url(self) -> str:
        if self.network.features_url:
            return self.network.features_url
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/features"
        return DEFAULT_FEATURES_URL
