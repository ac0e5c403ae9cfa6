"""TypedFeatureResolver のユニットテスト"""

from typing import Any

import pytest
from k1s0_feature_client.client import FeatureClient
from k1s0_feature_client.config import FeatureClientConfig, NetworkConfig, RetryConfig
from k1s0_feature_client.exceptions import TypeMismatchError
from k1s0_feature_client.memory import InMemoryFeatureTransport
from k1s0_feature_client.typed import (
    ResolutionErrorCode,
    ResolutionReason,
    TypedFeatureResolver,
)


def make_resolver(transport: InMemoryFeatureTransport) -> TypedFeatureResolver:
    config = FeatureClientConfig(
        api_key="test-key",
        environment="test",
        network=NetworkConfig(retry=RetryConfig(enabled=False)),
    )
    return TypedFeatureResolver(FeatureClient(config, transport=transport))


async def test_resolve_each_type() -> None:
    """各型の値が STATIC として解決されること。"""
    resolver = make_resolver(
        InMemoryFeatureTransport(
            {"flag": False, "color": "blue", "limit": 10, "ratio": 0.5, "ui": {"theme": "dark"}}
        )
    )
    boolean = await resolver.resolve_boolean("flag", True)
    assert boolean.value is False
    assert boolean.reason is ResolutionReason.STATIC
    assert (await resolver.resolve_string("color", "red")).value == "blue"
    assert (await resolver.resolve_number("limit", 0)).value == 10
    assert (await resolver.resolve_number("ratio", 0)).value == 0.5
    assert (await resolver.resolve_object("ui", {})).value == {"theme": "dark"}


@pytest.mark.parametrize(
    ("method", "value", "default"),
    [
        ("resolve_boolean", "yes", False),
        ("resolve_string", 1, ""),
        ("resolve_number", True, 0),
        ("resolve_object", "[]", {}),
    ],
)
async def test_type_mismatch_raises(method: str, value: Any, default: Any) -> None:
    """型が一致しない場合は TypeMismatchError が送出されること。"""
    resolver = make_resolver(InMemoryFeatureTransport({"flag": value}))
    with pytest.raises(TypeMismatchError):
        await getattr(resolver, method)("flag", default)


async def test_list_is_an_object() -> None:
    """リストは object として解決されること。"""
    resolver = make_resolver(InMemoryFeatureTransport({"items": ["a", "b"]}))
    assert (await resolver.resolve_object("items", [])).value == ["a", "b"]


async def test_failure_returns_default_with_error_reason() -> None:
    """評価失敗時はデフォルト値を reason=ERROR で返すこと。"""
    transport = InMemoryFeatureTransport({"flag": True})
    transport.fail_next(503)
    resolver = make_resolver(transport)
    details = await resolver.resolve_boolean("flag", False)
    assert details.value is False
    assert details.reason is ResolutionReason.ERROR
    assert details.error_code is ResolutionErrorCode.GENERAL
    assert details.error_message is not None and "TRANSPORT_ERROR" in details.error_message
