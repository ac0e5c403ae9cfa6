"""設定ファイル読み込み"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .config import CacheConfig, FeatureClientConfig, NetworkConfig, RetryConfig
from .exceptions import ConfigurationError
from .plugins.base import Plugin

API_KEY_ENV = "K1S0_FEATURE_CLIENT_API_KEY"


class RetrySettings(BaseModel):
    """ネットワークリトライ設定。"""

    enabled: bool = True
    max_attempts: int = Field(default=3, ge=1)
    backoff: float = Field(default=1.0, ge=0)


class NetworkSettings(BaseModel):
    """エンドポイント設定。"""

    features_url: str | None = None
    retry: RetrySettings = Field(default_factory=RetrySettings)
    request_timeout: float = Field(default=10.0, gt=0)


class CacheSettings(BaseModel):
    """評価結果キャッシュ設定。"""

    enabled: bool = True
    stale_time: float = Field(default=300.0, ge=0)
    cache_time: float = Field(default=600.0, ge=0)


class FeatureClientSettings(BaseModel):
    """feature_client 設定ファイルのスキーマ。"""

    api_key: str = ""
    environment: str
    base_url: str | None = None
    context: dict[str, Any] | None = None
    features: dict[str, Any] = Field(default_factory=dict)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    coerce_string_values: bool = False

    def to_config(self, plugins: Sequence[Plugin] = ()) -> FeatureClientConfig:
        return FeatureClientConfig(
            api_key=self.api_key,
            environment=self.environment,
            base_url=self.base_url,
            context=self.context,
            features=dict(self.features),
            network=NetworkConfig(
                features_url=self.network.features_url,
                retry=RetryConfig(**self.network.retry.model_dump()),
                request_timeout=self.network.request_timeout,
            ),
            cache=CacheConfig(**self.cache.model_dump()),
            coerce_string_values=self.coerce_string_values,
            plugins=list(plugins),
        )


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """base と override をディープマージして新しい辞書を返す。

    override の値が優先される。リストは置換（マージしない）。
    """
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file: {path}", cause=e) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {path}", cause=e) from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {path}")
    return data


def load_config(
    base_path: Path,
    env_path: Path | None = None,
    plugins: Sequence[Plugin] = (),
) -> FeatureClientConfig:
    """設定ファイルを読み込んで FeatureClientConfig を返す。

    base_path: ベース設定ファイルパス（必須）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    api_key が未設定の場合は環境変数 K1S0_FEATURE_CLIENT_API_KEY を使う。
    """
    data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        data = deep_merge(data, _read_yaml(env_path))
    if not data.get("api_key") and os.environ.get(API_KEY_ENV):
        data["api_key"] = os.environ[API_KEY_ENV]
    try:
        settings = FeatureClientSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Config validation failed: {e}", cause=e) from e
    config = settings.to_config(plugins)
    config.validate()
    return config
