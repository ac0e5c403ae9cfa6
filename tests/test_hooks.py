"""PluginHookChain のユニットテスト"""

import asyncio
import logging
from typing import Any

import pytest
from k1s0_feature_client.exceptions import FeatureClientErrorCodes, PluginError
from k1s0_feature_client.hooks import PluginHookChain


class RecordingPlugin:
    def __init__(self, name: str, log: list[tuple[str, Any]]) -> None:
        self.name = name
        self.log = log

    async def before_get_features(self, feature_names: list[str], context: Any) -> None:
        self.log.append((self.name, (feature_names, context)))


class NamedPlugin:
    def __init__(self, name: str) -> None:
        self.name = name


class FailingPlugin:
    name = "failing"

    async def before_get_features(self, feature_names: list[str], context: Any) -> None:
        raise RuntimeError("hook failed")


async def test_run_invokes_every_plugin_with_same_arguments() -> None:
    """全プラグインのフックが同一の引数で呼ばれること。"""
    log: list[tuple[str, Any]] = []
    chain = PluginHookChain([RecordingPlugin("a", log), RecordingPlugin("b", log)])
    await chain.run("before_get_features", ["x"], {"user": 1})
    assert sorted(name for name, _ in log) == ["a", "b"]
    assert all(args == (["x"], {"user": 1}) for _, args in log)


async def test_run_skips_plugins_without_hook() -> None:
    """フック未実装のプラグインはスキップされること。"""
    log: list[tuple[str, Any]] = []
    chain = PluginHookChain([NamedPlugin("empty"), RecordingPlugin("a", log)])
    await chain.run("before_get_features", [], None)
    await chain.run("on_error", RuntimeError("x"), None)
    assert [name for name, _ in log] == ["a"]


async def test_run_executes_hooks_concurrently() -> None:
    """同一フェーズのフックが並行に実行されること。"""
    event = asyncio.Event()

    class Waiter:
        name = "waiter"

        async def initialize(self) -> None:
            await event.wait()

    class Setter:
        name = "setter"

        async def initialize(self) -> None:
            event.set()

    chain = PluginHookChain([Waiter(), Setter()])
    await asyncio.wait_for(chain.run("initialize"), timeout=1.0)


async def test_run_raises_plugin_error_after_all_hooks_complete() -> None:
    """失敗があっても他のフックは完了し、その後 PluginError が送出されること。"""
    log: list[tuple[str, Any]] = []

    class SlowPlugin:
        name = "slow"

        async def before_get_features(self, feature_names: list[str], context: Any) -> None:
            await asyncio.sleep(0.01)
            log.append(("slow", None))

    chain = PluginHookChain([FailingPlugin(), SlowPlugin()])
    with pytest.raises(PluginError) as exc_info:
        await chain.run("before_get_features", [], None)
    assert log == [("slow", None)]
    assert exc_info.value.code == FeatureClientErrorCodes.PLUGIN_ERROR
    assert exc_info.value.plugin_name == "failing"
    assert exc_info.value.hook == "before_get_features"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


async def test_run_propagates_base_exceptions() -> None:
    """Exception 以外の BaseException は PluginError に包まず送出されること。"""

    class Abort(BaseException):
        pass

    class Aborting:
        name = "aborting"

        async def initialize(self) -> None:
            raise Abort()

    with pytest.raises(Abort):
        await PluginHookChain([Aborting()]).run("initialize")


async def test_run_supports_sync_hooks() -> None:
    """同期関数のフックも呼べること。"""
    called: list[str] = []

    class SyncPlugin:
        name = "sync"

        def cleanup(self) -> None:
            called.append("cleanup")

    await PluginHookChain([SyncPlugin()]).run("cleanup")
    assert called == ["cleanup"]


async def test_run_sequential_last_plugin_wins() -> None:
    """after_get_features はリスト順に実行され、後方のプラグインの書き込みが残ること。"""
    order: list[str] = []

    class Writer:
        def __init__(self, name: str, value: Any) -> None:
            self.name = name
            self.value = value

        async def after_get_features(self, results: dict[str, Any], context: Any) -> None:
            order.append(self.name)
            results["flag"] = self.value

    results: dict[str, Any] = {"flag": None}
    chain = PluginHookChain([Writer("first", 1), Writer("second", 2)])
    await chain.run_sequential("after_get_features", results, None)
    assert results == {"flag": 2}
    assert order == ["first", "second"]


async def test_run_sequential_wraps_failure() -> None:
    """run_sequential の失敗は PluginError に包まれること。"""

    class Broken:
        name = "broken"

        async def after_get_features(self, results: dict[str, Any], context: Any) -> None:
            raise KeyError("missing")

    with pytest.raises(PluginError) as exc_info:
        await PluginHookChain([Broken()]).run_sequential("after_get_features", {}, None)
    assert exc_info.value.plugin_name == "broken"


async def test_run_safely_logs_and_continues(caplog: pytest.LogCaptureFixture) -> None:
    """run_safely は失敗を記録し、他のフックは実行されること。"""
    log: list[tuple[str, Any]] = []
    chain = PluginHookChain([FailingPlugin(), RecordingPlugin("a", log)])
    with caplog.at_level(logging.WARNING, logger="k1s0_feature_client.hooks"):
        await chain.run_safely("before_get_features", [], None)
    assert [name for name, _ in log] == ["a"]
    assert any(r.message == "Plugin hook failed" for r in caplog.records)


def test_add_and_len() -> None:
    """add でプラグインが末尾に追加されること。"""
    chain = PluginHookChain()
    chain.add(NamedPlugin("a"))
    chain.add(NamedPlugin("b"))
    assert len(chain) == 2
    assert [p.name for p in chain.plugins] == ["a", "b"]
