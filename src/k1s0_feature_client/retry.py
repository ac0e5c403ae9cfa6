"""リトライ実行エンジン（指数バックオフ）"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .exceptions import ConfigurationError

T = TypeVar("T")

OnRetry = Callable[[int, Exception, bool], Any]

logger = logging.getLogger(__name__)


def compute_backoff(backoff: float, attempt: int) -> float:
    """attempt 回目（1 始まり）の失敗後に待機する秒数。"""
    return backoff * (2 ** (attempt - 1))


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff: float = 1.0,
    on_retry: OnRetry | None = None,
) -> T:
    """非同期関数を指数バックオフ付きで実行する。

    Args:
        operation: 実行する非同期関数
        max_attempts: 最大試行回数（1 以上）
        backoff: 初回リトライまでの待機秒数。以降は 2 倍ずつ増える
        on_retry: 失敗ごとに (attempt, error, will_retry) で呼ばれる。
            awaitable を返した場合は待機前に await する

    Returns:
        operation の戻り値

    Raises:
        最後の試行で発生した例外
    """
    if max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")
    if backoff < 0:
        raise ConfigurationError(f"backoff must be >= 0, got {backoff}")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            will_retry = attempt < max_attempts
            logger.debug(
                "Attempt %d/%d failed: %s", attempt, max_attempts, e
            )
            if on_retry is not None:
                result = on_retry(attempt, e, will_retry)
                if inspect.isawaitable(result):
                    await result
            if not will_retry:
                raise
        await asyncio.sleep(compute_backoff(backoff, attempt))
