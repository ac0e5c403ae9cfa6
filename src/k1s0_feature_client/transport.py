"""フィーチャー評価 API のトランスポート"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx

from .exceptions import TransportError


class FeatureTransport(ABC):
    """評価 API へリクエストを送るトランスポート抽象基底クラス。"""

    @abstractmethod
    async def send(
        self, url: str, body: dict[str, Any], headers: dict[str, str]
    ) -> httpx.Response:
        """POST リクエストを送信してレスポンスを返す。

        ステータスコードの検査は呼び出し側が行う。接続障害や
        タイムアウトは TransportError として送出する。
        """
        ...

    async def aclose(self) -> None:
        """保持しているリソースを解放する。"""


class HttpFeatureTransport(FeatureTransport):
    """httpx を使った HTTP トランスポート。"""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._client = client

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout)

    async def send(
        self, url: str, body: dict[str, Any], headers: dict[str, str]
    ) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.post(url, json=body, headers=headers)
            async with self._make_client() as client:
                return await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request timed out after {self._timeout}s", cause=e
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch features: {e}", cause=e) from e
