"""FeatureClient: フィーチャーフラグ評価クライアント"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from functools import partial
from types import TracebackType
from typing import Any

import httpx

from .config import FeatureClientConfig
from .exceptions import ConfigurationError, TransportError, TypeMismatchError
from .hooks import PluginHookChain
from .models import (
    FeatureContext,
    FeaturesWithFallbacks,
    FeatureValue,
    FetchTiming,
    merge_context,
)
from .parsing import parse_features_response, resolve_variation
from .plugins.base import Plugin
from .query import QueryEngine, QueryOptions, make_query_key, query_key_prefix
from .retry import retry
from .transport import FeatureTransport, HttpFeatureTransport

logger = logging.getLogger(__name__)

_FEATURES_QUERY = "features"

# フォールバックで握りつぶさない契約違反エラー
_CONTRACT_ERRORS = (ConfigurationError, TypeMismatchError)


class FeatureClient:
    """リモート評価サービスからフィーチャーの値を解決するクライアント。

    コンテキストのマージ、プラグインフックの実行、リトライ付きの
    ネットワーク呼び出し、結果のキャッシュ、失敗時のフォールバックを行う。

    Example::

        client = FeatureClient(FeatureClientConfig(api_key="...", environment="production"))
        dark_mode = await client.get_feature("dark-mode", fallback=False)
    """

    def __init__(
        self,
        config: FeatureClientConfig,
        *,
        transport: FeatureTransport | None = None,
        query_engine: QueryEngine | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._default_context: FeatureContext | None = (
            dict(config.context) if config.context is not None else None
        )
        self._hooks = PluginHookChain(config.plugins)
        self._owns_transport = transport is None
        self._transport = transport or HttpFeatureTransport(
            timeout_seconds=config.network.request_timeout
        )
        self._owns_engine = query_engine is None
        self._query_engine = query_engine or QueryEngine()
        self._query_options = QueryOptions(
            retry=0,
            cache_time=config.cache.cache_time,
            refetch_on_window_focus=False,
        )

    @property
    def config(self) -> FeatureClientConfig:
        return self._config

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return self._hooks.plugins

    @property
    def query_engine(self) -> QueryEngine:
        """リアクティブ層へ渡すクエリエンジン。"""
        return self._query_engine

    async def __aenter__(self) -> FeatureClient:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.cleanup()

    async def initialize(self) -> None:
        """プラグインの initialize フックを実行する。"""
        await self._hooks.run("initialize")

    async def cleanup(self) -> None:
        """プラグインの cleanup フックを実行し、保持リソースを解放する。"""
        await self._hooks.run_safely("cleanup")
        if self._owns_engine:
            await self._query_engine.aclose()
        if self._owns_transport:
            await self._transport.aclose()

    def get_context(self) -> FeatureContext | None:
        """現在のデフォルトコンテキストを返す。"""
        return self._default_context

    async def update_context(
        self, context: FeatureContext, merge_with_existing: bool = True
    ) -> None:
        """デフォルトコンテキストを置換またはマージする。

        Args:
            context: 新しいコンテキスト
            merge_with_existing: True なら既存の値にマージ、False なら置換
        """
        old_context = self._default_context
        if merge_with_existing and old_context is not None:
            new_context = {**old_context, **context}
        else:
            new_context = dict(context)
        self._default_context = new_context
        await self._hooks.run_safely(
            "on_context_update", old_context, new_context, "update_context"
        )

    async def get_feature(
        self,
        name: str,
        *,
        fallback: FeatureValue = None,
        context: FeatureContext | None = None,
    ) -> FeatureValue:
        """単一のフィーチャーを解決する。

        失敗時は fallback が指定されていればそれを返し、
        指定されていなければ例外を送出する。
        """
        merged = merge_context(self._default_context, context)
        try:
            result = await self._resolve({name: fallback}, merged, context)
        except _CONTRACT_ERRORS:
            raise
        except Exception as e:
            await self._hooks.run_safely("on_error", e, merged)
            if fallback is None:
                raise
            logger.warning(
                "Feature evaluation failed, using fallback",
                extra={"feature": name, "error": str(e)},
            )
            await self._hooks.run_safely("on_fallback_used", name, fallback, e)
            return fallback
        return resolve_variation(result.get(name), fallback)

    async def get_fallback(
        self,
        name: str,
        fallback: FeatureValue,
        *,
        context: FeatureContext | None = None,
    ) -> FeatureValue:
        """フォールバック値を位置引数で渡す get_feature の簡易版。"""
        return await self.get_feature(name, fallback=fallback, context=context)

    async def get_features(
        self,
        features: Mapping[str, FeatureValue] | None = None,
        *,
        context: FeatureContext | None = None,
    ) -> dict[str, FeatureValue]:
        """複数のフィーチャーを 1 リクエストで解決する。

        Args:
            features: フィーチャー名とフォールバック値。省略時は設定の features
            context: このリクエストだけに適用する上書きコンテキスト

        Returns:
            フィーチャー名と解決値の辞書。評価全体が失敗した場合は
            features をそのまま返す。features が空なら例外を送出する。
        """
        fallbacks: FeaturesWithFallbacks = dict(
            self._config.features if features is None else features
        )
        merged = merge_context(self._default_context, context)
        try:
            return await self._resolve(fallbacks, merged, context)
        except _CONTRACT_ERRORS:
            raise
        except Exception as e:
            await self._hooks.run_safely("on_error", e, merged)
            if not fallbacks:
                raise
            logger.warning(
                "Feature evaluation failed, using fallbacks",
                extra={"features": list(fallbacks), "error": str(e)},
            )
            for name, fallback in fallbacks.items():
                await self._hooks.run_safely("on_fallback_used", name, fallback, e)
            return fallbacks

    def invalidate(self, name: str | None = None) -> int:
        """キャッシュ済みの評価結果を無効化する。

        name を指定した場合はそのフィーチャーを含むエントリのみ。
        購読中のオブザーバーは自動的に再フェッチする。
        """
        prefix = query_key_prefix(_FEATURES_QUERY)
        if name is None:
            return self._query_engine.invalidate_by_prefix(prefix)

        def contains_feature(key: str) -> bool:
            if not key.startswith(prefix):
                return False
            parts = json.loads(key)
            return len(parts) > 1 and name in parts[1]

        return self._query_engine.cache.invalidate_where(contains_feature)

    async def _resolve(
        self,
        fallbacks: FeaturesWithFallbacks,
        merged: FeatureContext,
        call_context: FeatureContext | None,
    ) -> dict[str, FeatureValue]:
        names = list(fallbacks)
        if call_context is not None:
            await self._hooks.run(
                "on_context_update", self._default_context, merged, "request"
            )
        await self._hooks.run("before_get_features", names, merged)

        values = await self._cached_values(names, merged)
        # キャッシュには None のまま保存し、フォールバックは呼び出し側ごとに適用する
        return {
            name: resolve_variation(values.get(name), fallback)
            for name, fallback in fallbacks.items()
        }

    async def _cached_values(
        self, names: list[str], merged: FeatureContext
    ) -> dict[str, FeatureValue]:
        fetch = partial(self._fetch_features, names, merged)
        if not self._config.cache.enabled:
            return await fetch()

        engine = self._query_engine
        key = make_query_key(_FEATURES_QUERY, sorted(names), merged)
        entry = engine.cache.get(key)
        if entry is not None:
            if engine.cache.is_stale(key, self._config.cache.stale_time) and not engine.is_fetching(key):
                engine.prefetch(key, fetch, self._query_options)
            return entry.value
        return await engine.fetch(key, fetch, self._query_options)

    async def _fetch_features(
        self, names: list[str], merged: FeatureContext
    ) -> dict[str, FeatureValue]:
        url = self._config.features_url
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }
        body: dict[str, Any] = {
            "features": names,
            "environment": self._config.environment,
            "context": merged,
        }

        async def send_once() -> httpx.Response:
            await self._hooks.run("before_request", url, body, headers)
            started = time.monotonic()
            response = await self._transport.send(url, body, headers)
            timing = FetchTiming(duration=time.monotonic() - started)
            await self._hooks.run("after_response", response, timing)
            if not response.is_success:
                raise TransportError(
                    f"Failed to fetch features: {response.reason_phrase}",
                    status_code=response.status_code,
                )
            return response

        retry_config = self._config.network.retry
        if retry_config.enabled:
            response = await retry(
                send_once,
                retry_config.max_attempts,
                retry_config.backoff,
                on_retry=self._on_retry_attempt,
            )
        else:
            response = await send_once()

        result = parse_features_response(
            response, names, {}, self._config.coerce_string_values
        )
        await self._hooks.run_sequential("after_get_features", result, merged)
        return result

    async def _on_retry_attempt(self, attempt: int, error: Exception, will_retry: bool) -> None:
        logger.info(
            "Feature request attempt failed",
            extra={"attempt": attempt, "will_retry": will_retry, "error": str(error)},
        )
        await self._hooks.run_safely("on_retry_attempt", attempt, error, will_retry)
