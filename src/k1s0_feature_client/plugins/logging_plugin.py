"""structlog で評価ライフサイクルを記録するプラグイン"""

from __future__ import annotations

from typing import Any

import structlog

from ..models import FeatureContext, FeatureValue, FetchTiming
from .base import FeaturePlugin


class LoggingPlugin(FeaturePlugin):
    """評価の各フェーズを構造化ログとして出力する。"""

    name = "logging"

    def __init__(self, enabled: bool = True, logger: Any = None) -> None:
        super().__init__(enabled)
        self._logger = logger or structlog.get_logger("k1s0_feature_client.plugins.logging")

    async def before_get_features(
        self, feature_names: list[str], context: FeatureContext | None
    ) -> None:
        if self.enabled:
            self._logger.debug("getting_features", feature_names=feature_names, context=context)

    async def after_get_features(
        self, results: dict[str, FeatureValue], context: FeatureContext | None
    ) -> None:
        if self.enabled:
            self._logger.debug("got_features", results=dict(results), context=context)

    async def after_response(self, response: Any, timing: FetchTiming) -> None:
        if self.enabled:
            self._logger.debug(
                "features_response",
                status_code=getattr(response, "status_code", None),
                duration=timing.duration,
            )

    async def on_error(self, error: Exception, context: FeatureContext | None) -> None:
        if self.enabled:
            self._logger.error("feature_evaluation_failed", error=str(error), context=context)

    async def on_retry_attempt(self, attempt: int, error: Exception, will_retry: bool) -> None:
        if self.enabled:
            self._logger.warning(
                "feature_request_retry", attempt=attempt, error=str(error), will_retry=will_retry
            )

    async def on_fallback_used(
        self, feature_name: str, fallback_value: FeatureValue, reason: Exception
    ) -> None:
        if self.enabled:
            self._logger.warning(
                "feature_fallback_used",
                feature=feature_name,
                fallback=fallback_value,
                reason=str(reason),
            )

    async def on_context_update(
        self,
        old_context: FeatureContext | None,
        new_context: FeatureContext,
        source: str,
    ) -> None:
        if self.enabled:
            self._logger.debug(
                "context_updated", old_context=old_context, new_context=new_context, source=source
            )
