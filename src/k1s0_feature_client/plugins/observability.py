"""OpenTelemetry メトリクスを記録するプラグイン"""

from __future__ import annotations

from typing import Any

from opentelemetry import metrics

from ..models import FeatureContext, FeatureValue, FetchTiming
from .base import FeaturePlugin


class ObservabilityPlugin(FeaturePlugin):
    """リクエスト数、所要時間、エラー、リトライ、フォールバックを計測する。"""

    name = "observability"

    def __init__(self, enabled: bool = True, meter: metrics.Meter | None = None) -> None:
        super().__init__(enabled)
        meter = meter or metrics.get_meter("k1s0_feature_client", version="0.1.0")
        self.evaluations_total = meter.create_counter(
            name="feature_evaluations_total",
            description="Total number of features requested",
            unit="1",
        )
        self.requests_total = meter.create_counter(
            name="feature_requests_total",
            description="Total number of feature evaluation requests",
            unit="1",
        )
        self.request_duration_seconds = meter.create_histogram(
            name="feature_request_duration_seconds",
            description="Feature evaluation request duration in seconds",
            unit="s",
        )
        self.errors_total = meter.create_counter(
            name="feature_errors_total",
            description="Total number of feature evaluation errors",
            unit="1",
        )
        self.retries_total = meter.create_counter(
            name="feature_retries_total",
            description="Total number of failed request attempts",
            unit="1",
        )
        self.fallbacks_total = meter.create_counter(
            name="feature_fallbacks_total",
            description="Total number of fallback values served",
            unit="1",
        )
        self.context_updates_total = meter.create_counter(
            name="feature_context_updates_total",
            description="Total number of evaluation context updates",
            unit="1",
        )

    async def before_get_features(
        self, feature_names: list[str], context: FeatureContext | None
    ) -> None:
        if self.enabled:
            self.evaluations_total.add(len(feature_names))

    async def before_request(self, url: str, body: Any, headers: dict[str, str]) -> None:
        if self.enabled:
            self.requests_total.add(1, {"url": url})

    async def after_response(self, response: Any, timing: FetchTiming) -> None:
        if self.enabled:
            self.request_duration_seconds.record(
                timing.duration, {"status_code": getattr(response, "status_code", 0)}
            )

    async def on_error(self, error: Exception, context: FeatureContext | None) -> None:
        if self.enabled:
            self.errors_total.add(1, {"error_type": type(error).__name__})

    async def on_retry_attempt(self, attempt: int, error: Exception, will_retry: bool) -> None:
        if self.enabled:
            self.retries_total.add(1, {"will_retry": will_retry})

    async def on_fallback_used(
        self, feature_name: str, fallback_value: FeatureValue, reason: Exception
    ) -> None:
        if self.enabled:
            self.fallbacks_total.add(1, {"feature": feature_name})

    async def on_context_update(
        self,
        old_context: FeatureContext | None,
        new_context: FeatureContext,
        source: str,
    ) -> None:
        if self.enabled:
            self.context_updates_total.add(1, {"source": source})
