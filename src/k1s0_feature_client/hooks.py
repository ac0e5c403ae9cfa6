"""プラグインフックの呼び出しチェーン"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from typing import Any

from .exceptions import PluginError
from .plugins.base import Plugin

logger = logging.getLogger(__name__)


class PluginHookChain:
    """順序付きプラグインリストに対してフックをファンアウトする。

    同じフェーズのフックは全プラグインで同一の引数を受け取る。
    フックを実装していないプラグインはスキップされる。
    """

    def __init__(self, plugins: Iterable[Plugin] = ()) -> None:
        self._plugins: list[Plugin] = list(plugins)

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return tuple(self._plugins)

    def add(self, plugin: Plugin) -> None:
        """末尾にプラグインを追加する。"""
        self._plugins.append(plugin)

    def __len__(self) -> int:
        return len(self._plugins)

    def _handlers(self, hook: str) -> list[tuple[Plugin, Callable[..., Any]]]:
        handlers = []
        for plugin in self._plugins:
            fn = getattr(plugin, hook, None)
            if callable(fn):
                handlers.append((plugin, fn))
        return handlers

    @staticmethod
    async def _invoke(fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        result = fn(*args)
        if inspect.isawaitable(result):
            await result

    async def _gather(
        self, hook: str, args: tuple[Any, ...]
    ) -> list[tuple[Plugin, Exception]]:
        handlers = self._handlers(hook)
        if not handlers:
            return []
        results = await asyncio.gather(
            *(self._invoke(fn, args) for _, fn in handlers),
            return_exceptions=True,
        )
        failures = []
        for (plugin, _), result in zip(handlers, results):
            if isinstance(result, Exception):
                failures.append((plugin, result))
            elif isinstance(result, BaseException):
                raise result
        return failures

    async def run(self, hook: str, *args: Any) -> None:
        """全プラグインのフックを同時に開始し、すべて完了するまで待つ。

        いずれかが失敗した場合、全フックの完了後に最初の失敗を
        PluginError として送出する。
        """
        failures = await self._gather(hook, args)
        if failures:
            plugin, error = failures[0]
            raise PluginError(plugin.name, hook, error) from error

    async def run_sequential(self, hook: str, *args: Any) -> None:
        """リスト順に 1 つずつフックを実行する。

        共有オブジェクトを書き換えるフェーズ（after_get_features）で使う。
        同じキーを書き換えた場合はリスト後方のプラグインが勝つ。
        """
        for plugin, fn in self._handlers(hook):
            try:
                await self._invoke(fn, args)
            except Exception as e:
                raise PluginError(plugin.name, hook, e) from e

    async def run_safely(self, hook: str, *args: Any) -> None:
        """run と同様だが、失敗はログに記録して握りつぶす。"""
        for plugin, error in await self._gather(hook, args):
            logger.warning(
                "Plugin hook failed",
                extra={"plugin": plugin.name, "hook": hook, "error": str(error)},
            )
