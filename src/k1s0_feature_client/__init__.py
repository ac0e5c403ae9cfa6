"""k1s0 feature_client library."""

from .adapters import feature_query, features_query
from .client import FeatureClient
from .config import CacheConfig, FeatureClientConfig, NetworkConfig, RetryConfig
from .exceptions import (
    ConfigurationError,
    FeatureClientError,
    FeatureClientErrorCodes,
    ParseError,
    PluginError,
    TransportError,
    TypeMismatchError,
)
from .helpers import create_features
from .hooks import PluginHookChain
from .loader import load_config
from .log import new_logger
from .memory import InMemoryFeatureTransport
from .models import FeatureContext, FeaturesWithFallbacks, FeatureValue, FetchTiming
from .plugins import (
    FeaturePlugin,
    LocalOverridePlugin,
    LoggingPlugin,
    ObservabilityPlugin,
    Plugin,
)
from .query import (
    CacheEvent,
    QueryCache,
    QueryEngine,
    QueryObserver,
    QueryOptions,
    QueryState,
    QueryStatus,
    make_query_key,
)
from .retry import retry
from .transport import FeatureTransport, HttpFeatureTransport
from .typed import ResolutionDetails, ResolutionReason, TypedFeatureResolver

__all__ = [
    "FeatureClient",
    "FeatureClientConfig",
    "NetworkConfig",
    "RetryConfig",
    "CacheConfig",
    "load_config",
    "FeatureValue",
    "FeatureContext",
    "FeaturesWithFallbacks",
    "FetchTiming",
    "create_features",
    "FeatureTransport",
    "HttpFeatureTransport",
    "InMemoryFeatureTransport",
    "PluginHookChain",
    "Plugin",
    "FeaturePlugin",
    "LoggingPlugin",
    "LocalOverridePlugin",
    "ObservabilityPlugin",
    "retry",
    "QueryCache",
    "QueryEngine",
    "QueryObserver",
    "QueryOptions",
    "QueryState",
    "QueryStatus",
    "CacheEvent",
    "make_query_key",
    "feature_query",
    "features_query",
    "TypedFeatureResolver",
    "ResolutionDetails",
    "ResolutionReason",
    "new_logger",
    "FeatureClientError",
    "FeatureClientErrorCodes",
    "TransportError",
    "ParseError",
    "TypeMismatchError",
    "ConfigurationError",
    "PluginError",
]
