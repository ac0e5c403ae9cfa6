"""例外型・設定モデルのユニットテスト"""

import pytest
from k1s0_feature_client.config import (
    DEFAULT_FEATURES_URL,
    CacheConfig,
    FeatureClientConfig,
    NetworkConfig,
    RetryConfig,
)
from k1s0_feature_client.exceptions import (
    ConfigurationError,
    FeatureClientError,
    FeatureClientErrorCodes,
    ParseError,
    PluginError,
    TransportError,
    TypeMismatchError,
)
from k1s0_feature_client.models import merge_context


def test_error_str_includes_code() -> None:
    """str() が "code: message" 形式であること。"""
    error = FeatureClientError("SOME_CODE", "something failed")
    assert str(error) == "SOME_CODE: something failed"


def test_error_subclasses_carry_codes() -> None:
    """各サブクラスが対応するコードを持つこと。"""
    assert TransportError("x", status_code=502).status_code == 502
    assert TransportError("x").code == FeatureClientErrorCodes.TRANSPORT_ERROR
    assert ParseError("x").code == FeatureClientErrorCodes.PARSE_ERROR
    assert TypeMismatchError("x").code == FeatureClientErrorCodes.TYPE_MISMATCH
    assert ConfigurationError("x").code == FeatureClientErrorCodes.CONFIG_ERROR


def test_error_cause_is_chained() -> None:
    """cause が __cause__ に設定されること。"""
    cause = ValueError("bad json")
    assert ParseError("x", cause=cause).__cause__ is cause


def test_plugin_error_message() -> None:
    """PluginError がプラグイン名とフック名を含むこと。"""
    error = PluginError("logging", "before_request", RuntimeError("boom"))
    assert error.code == FeatureClientErrorCodes.PLUGIN_ERROR
    assert str(error) == "PLUGIN_ERROR: plugin 'logging' failed in before_request: boom"


def test_config_defaults() -> None:
    """設定のデフォルト値。"""
    config = FeatureClientConfig(api_key="k", environment="dev")
    assert config.network.retry == RetryConfig(enabled=True, max_attempts=3, backoff=1.0)
    assert config.network.request_timeout == 10.0
    assert config.cache == CacheConfig(enabled=True, stale_time=300.0, cache_time=600.0)
    assert config.features == {}
    assert config.coerce_string_values is False


def test_features_url_resolution() -> None:
    """features_url > base_url > 既定値 の順で解決されること。"""
    assert FeatureClientConfig(api_key="k", environment="e").features_url == DEFAULT_FEATURES_URL
    assert (
        FeatureClientConfig(api_key="k", environment="e", base_url="http://x/v1/").features_url
        == "http://x/v1/features"
    )
    config = FeatureClientConfig(
        api_key="k",
        environment="e",
        base_url="http://x",
        network=NetworkConfig(features_url="http://y/eval"),
    )
    assert config.features_url == "http://y/eval"


def test_invalid_config_values() -> None:
    """不正な値で ConfigurationError が発生すること。"""
    with pytest.raises(ConfigurationError):
        RetryConfig(max_attempts=0)
    with pytest.raises(ConfigurationError):
        RetryConfig(backoff=-1.0)
    with pytest.raises(ConfigurationError):
        CacheConfig(stale_time=-1.0)
    with pytest.raises(ConfigurationError):
        FeatureClientConfig(api_key="k", environment="").validate()


def test_merge_context() -> None:
    """上書きコンテキストが優先されること。"""
    assert merge_context({"x": 1, "y": 1}, {"y": 2}) == {"x": 1, "y": 2}
    assert merge_context(None, None) == {}
    default = {"x": 1}
    merge_context(default, {"x": 2})
    assert default == {"x": 1}
