"""フィーチャー定義ヘルパー"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .exceptions import ConfigurationError
from .models import FeaturesWithFallbacks, FeatureValue

_SCALARS = (bool, int, float, str)


def _is_feature_value(value: Any) -> bool:
    if value is None or isinstance(value, _SCALARS):
        return True
    if isinstance(value, list):
        return all(_is_feature_value(v) for v in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_feature_value(v) for k, v in value.items())
    return False


def create_features(features: Mapping[str, FeatureValue]) -> FeaturesWithFallbacks:
    """フィーチャー名とフォールバック値の定義を検証して返す。

    Example::

        features = create_features({
            "dark-mode": False,
            "ui-config": {"theme": "light", "max_users": 100},
            "allowed-features": ["feature-a", "feature-b"],
            "disabled-feature": None,
        })
    """
    for name, value in features.items():
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"feature name must be a non-empty string: {name!r}")
        if not _is_feature_value(value):
            raise ConfigurationError(
                f"unsupported fallback type for {name!r}: {type(value).__name__}"
            )
    return dict(features)
