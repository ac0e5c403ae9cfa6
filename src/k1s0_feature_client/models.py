"""feature_client データモデル"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias

FeatureValue: TypeAlias = bool | int | float | str | dict[str, Any] | list[Any] | None
"""サーバーが返すバリエーション値。"""

FeatureContext: TypeAlias = dict[str, Any]
"""評価対象（ユーザー、セッションなど）を表すキーバリュー。"""

FeaturesWithFallbacks: TypeAlias = dict[str, FeatureValue]
"""フィーチャー名からフォールバック値へのマッピング。"""


@dataclass(frozen=True)
class FetchTiming:
    """after_response フックへ渡すリクエスト所要時間。"""

    duration: float


def merge_context(
    default: FeatureContext | None, override: FeatureContext | None
) -> FeatureContext:
    """デフォルトコンテキストに上書きコンテキストをシャローマージする。

    キーが衝突した場合は override の値が優先される。
    """
    merged: FeatureContext = dict(default or {})
    if override:
        merged.update(override)
    return merged
