"""組み込みプラグイン。"""

from .base import HOOK_NAMES, LIFECYCLE_HOOKS, FeaturePlugin, Plugin
from .local_override import LocalOverridePlugin
from .logging_plugin import LoggingPlugin
from .observability import ObservabilityPlugin

__all__ = [
    "FeaturePlugin",
    "HOOK_NAMES",
    "LIFECYCLE_HOOKS",
    "LocalOverridePlugin",
    "LoggingPlugin",
    "ObservabilityPlugin",
    "Plugin",
]
