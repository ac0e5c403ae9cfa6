"""フレームワークバインディング向けのクエリヘルパー

UI アダプターは FeatureClient の get_feature / get_features を
QueryEngine のオブザーバーで包んで購読する。キーは FeatureClient.invalidate
の対象になる形式（"features", ソート済みの名前, マージ済みコンテキスト, ...）
で作る。
"""

from __future__ import annotations

from collections.abc import Mapping

from .client import FeatureClient
from .models import FeatureContext, FeatureValue, merge_context
from .query import QueryObserver, QueryOptions, make_query_key

STALE_TIME = 5 * 60.0
CACHE_TIME = 10 * 60.0


def _binding_options(enabled: bool) -> QueryOptions:
    # フィーチャーフラグはフォーカス復帰で再取得しない
    return QueryOptions(
        enabled=enabled,
        stale_time=STALE_TIME,
        cache_time=CACHE_TIME,
        refetch_on_window_focus=False,
    )


def feature_query(
    client: FeatureClient,
    name: str,
    *,
    fallback: FeatureValue = None,
    context: FeatureContext | None = None,
    enabled: bool = True,
) -> QueryObserver:
    """単一フィーチャーのオブザーバーを作成する。

    取得に失敗した場合はエラー状態にせず fallback（なければ None）を
    データとして公開する。
    """
    merged = merge_context(client.get_context(), context)
    key = make_query_key("features", [name], merged, "feature")

    async def query() -> FeatureValue:
        try:
            value = await client.get_feature(name, context=context)
        except Exception:
            return fallback
        return value if value is not None else fallback

    return client.query_engine.use_query(key, query, _binding_options(enabled))


def features_query(
    client: FeatureClient,
    features: Mapping[str, FeatureValue],
    *,
    context: FeatureContext | None = None,
    enabled: bool = True,
) -> QueryObserver:
    """複数フィーチャーのオブザーバーを作成する。

    null の結果はフォールバックで埋める。
    """
    fallbacks = dict(features)
    merged = merge_context(client.get_context(), context)
    key = make_query_key("features", sorted(fallbacks), merged, "features")

    async def query() -> dict[str, FeatureValue]:
        try:
            result = await client.get_features(fallbacks, context=context)
        except Exception:
            return dict(fallbacks)
        return {
            name: result.get(name) if result.get(name) is not None else fallback
            for name, fallback in fallbacks.items()
        }

    return client.query_engine.use_query(key, query, _binding_options(enabled))
