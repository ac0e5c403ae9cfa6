"""InMemoryFeatureTransport 実装"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import httpx

from .models import FeatureValue
from .transport import FeatureTransport


@dataclass
class RecordedRequest:
    """送信されたリクエストの記録。"""

    url: str
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


class InMemoryFeatureTransport(FeatureTransport):
    """テスト・オフライン用インメモリトランスポート。

    set_variation で登録した値をサーバー応答として返す。fail_next で
    次回以降の応答を失敗させられる。
    """

    def __init__(
        self,
        variations: dict[str, FeatureValue] | None = None,
        latency: float = 0.0,
    ) -> None:
        self._variations: dict[str, FeatureValue] = dict(variations or {})
        self._failures: deque[Exception | int] = deque()
        self._latency = latency
        self.requests: list[RecordedRequest] = []

    def set_variation(self, name: str, value: FeatureValue) -> None:
        """バリエーションを設定する。"""
        self._variations[name] = value

    def remove_variation(self, name: str) -> None:
        self._variations.pop(name, None)

    def fail_next(self, failure: Exception | int = 503, times: int = 1) -> None:
        """次の times 回の send を失敗させる。

        failure が int の場合はそのステータスコードの応答を返し、
        例外の場合は送出する。
        """
        for _ in range(times):
            self._failures.append(failure)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def send(
        self, url: str, body: dict[str, Any], headers: dict[str, str]
    ) -> httpx.Response:
        self.requests.append(RecordedRequest(url=url, body=body, headers=dict(headers)))
        if self._latency:
            await asyncio.sleep(self._latency)
        request = httpx.Request("POST", url)
        if self._failures:
            failure = self._failures.popleft()
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure, request=request)
        features = {
            name: {"variation": self._variations[name]}
            for name in body.get("features", [])
            if name in self._variations
        }
        return httpx.Response(200, json={"features": features}, request=request)
