"""プラグインインターフェース"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

HOOK_NAMES: tuple[str, ...] = (
    "before_get_features",
    "after_get_features",
    "on_error",
    "before_request",
    "after_response",
    "on_context_update",
    "on_retry_attempt",
    "on_fallback_used",
)
"""評価ライフサイクルのフックポイント。"""

LIFECYCLE_HOOKS: tuple[str, ...] = ("initialize", "cleanup")


@runtime_checkable
class Plugin(Protocol):
    """プラグインプロトコル。

    name 以外のフックはすべて任意で、実装されたものだけが呼ばれる::

        async def initialize(self) -> None
        async def cleanup(self) -> None
        async def before_get_features(self, feature_names, context) -> None
        async def after_get_features(self, results, context) -> None   # results を書き換えてよい
        async def on_error(self, error, context) -> None
        async def before_request(self, url, body, headers) -> None
        async def after_response(self, response, timing) -> None
        async def on_context_update(self, old_context, new_context, source) -> None
        async def on_retry_attempt(self, attempt, error, will_retry) -> None
        async def on_fallback_used(self, feature_name, fallback_value, reason) -> None
    """

    name: str


class FeaturePlugin:
    """組み込みプラグインの基底クラス。フックは持たない。"""

    name: str = "plugin"

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, enabled={self.enabled})"
