"""非同期クエリキャッシュとリアクティブなクエリエンジン

QueryCache は stale-while-revalidate 方式のキャッシュで、購読者へ
更新・無効化を通知する。QueryEngine は同一キーの同時フェッチを
1 つにまとめ、QueryObserver を通してフレームワークアダプターへ
状態を公開する。
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import Any

logger = logging.getLogger(__name__)

QueryFn = Callable[[], Awaitable[Any]]


def make_query_key(*parts: Any) -> str:
    """クエリキーを安定した文字列にシリアライズする。

    dict のキー順には依存しない。リストの順序は保持されるため、
    フィーチャー名のリストは呼び出し側でソートしておくこと。
    """
    return json.dumps(list(parts), sort_keys=True, separators=(",", ":"), default=str)


def query_key_prefix(*parts: Any) -> str:
    """make_query_key(*parts, ...) で始まるキーに一致するプレフィックス。"""
    return make_query_key(*parts)[:-1]


class QueryStatus(StrEnum):
    """クエリの状態。"""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class QueryState:
    """QueryObserver が公開する状態のスナップショット。"""

    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: Exception | None = None
    is_loading: bool = False
    is_success: bool = False
    is_error: bool = False
    is_idle: bool = True
    is_fetching: bool = False
    data_updated_at: float = 0.0

    @classmethod
    def initial(cls, data: Any = None) -> QueryState:
        if data is None:
            return cls()
        return cls(
            status=QueryStatus.SUCCESS,
            data=data,
            is_success=True,
            is_idle=False,
            data_updated_at=time.time(),
        )

    def fetch_start(self) -> QueryState:
        has_data = self.data is not None
        return dataclasses.replace(
            self,
            status=self.status if has_data else QueryStatus.LOADING,
            is_loading=not has_data,
            is_idle=False,
            is_fetching=True,
        )

    def fetch_success(self, data: Any) -> QueryState:
        return dataclasses.replace(
            self,
            status=QueryStatus.SUCCESS,
            data=data,
            error=None,
            is_loading=False,
            is_success=True,
            is_error=False,
            is_idle=False,
            is_fetching=False,
            data_updated_at=time.time(),
        )

    def fetch_error(self, error: Exception) -> QueryState:
        return dataclasses.replace(
            self,
            status=QueryStatus.ERROR,
            error=error,
            is_loading=False,
            is_success=self.data is not None,
            is_error=True,
            is_idle=False,
            is_fetching=False,
        )


@dataclass
class QueryOptions:
    """クエリの振る舞い。時間はすべて秒。"""

    enabled: bool = True
    retry: int | bool = 3
    retry_delay: float = 1.0
    stale_time: float = 0.0
    cache_time: float = 300.0
    refetch_on_window_focus: bool = True
    initial_data: Any = None
    on_success: Callable[[Any], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_settled: Callable[[Any, Exception | None], None] | None = None

    @property
    def max_retries(self) -> int:
        if isinstance(self.retry, bool):
            return 3 if self.retry else 0
        return max(self.retry, 0)


class CacheEvent(StrEnum):
    """購読者へ通知されるキャッシュイベント。"""

    UPDATED = "updated"
    INVALIDATED = "invalidated"


@dataclass
class QueryCacheEntry:
    """キャッシュエントリ。"""

    key: str
    value: Any
    timestamp: float
    expires_at: float | None = None


CacheListener = Callable[[CacheEvent, QueryCacheEntry | None], None]


class QueryCache:
    """クライアントインスタンスごとのインメモリクエリキャッシュ。

    エントリは最後の書き込みから cache_time 秒で失効する（読み込みでは
    延長しない）。フェッチ中のキーは失効させない。失効済みエントリは
    読み込み時と書き込みのたびに削除される。
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, QueryCacheEntry] = {}
        self._listeners: dict[str, list[CacheListener]] = {}
        self._fetching: set[str] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def keys(self) -> list[str]:
        return list(self._entries)

    def _is_expired(self, entry: QueryCacheEntry) -> bool:
        if entry.key in self._fetching or entry.expires_at is None:
            return False
        return self._clock() >= entry.expires_at

    def get(self, key: str) -> QueryCacheEntry | None:
        """キーのエントリを返す。存在しないか失効していれば None。"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            return None
        return entry

    def get_data(self, key: str) -> Any:
        entry = self.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, cache_time: float | None = 300.0) -> QueryCacheEntry:
        """値を書き込み、失効タイマーをリセットして購読者へ通知する。"""
        self.purge_expired()
        now = self._clock()
        entry = QueryCacheEntry(
            key=key,
            value=value,
            timestamp=now,
            expires_at=now + cache_time if cache_time is not None else None,
        )
        self._entries[key] = entry
        self._notify(key, CacheEvent.UPDATED, entry)
        return entry

    def is_stale(self, key: str, stale_time: float) -> bool:
        entry = self.get(key)
        if entry is None:
            return True
        return self._clock() - entry.timestamp > stale_time

    def invalidate(self, key: str) -> bool:
        """エントリを削除し、購読者に再フェッチを促す。"""
        removed = self._entries.pop(key, None) is not None
        self._notify(key, CacheEvent.INVALIDATED, None)
        return removed

    def invalidate_by_prefix(self, prefix: str) -> int:
        return self.invalidate_where(lambda key: key.startswith(prefix))

    def invalidate_where(self, predicate: Callable[[str], bool]) -> int:
        """predicate に一致するキーをすべて無効化する。削除件数を返す。"""
        keys = {k for k in (*self._entries, *self._listeners) if predicate(k)}
        removed = 0
        for key in sorted(keys):
            if self.invalidate(key):
                removed += 1
        return removed

    def clear(self) -> None:
        """全エントリを通知なしで削除する。"""
        self._entries.clear()

    def purge_expired(self) -> int:
        """失効済みエントリを削除して件数を返す。"""
        expired = [k for k, e in self._entries.items() if self._is_expired(e)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def begin_fetch(self, key: str) -> None:
        self._fetching.add(key)

    def end_fetch(self, key: str) -> None:
        self._fetching.discard(key)

    def subscribe(self, key: str, listener: CacheListener) -> Callable[[], None]:
        """キーのイベントを購読する。戻り値を呼ぶと購読解除。"""
        self._listeners.setdefault(key, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[key]

        return unsubscribe

    def subscriber_count(self, key: str) -> int:
        return len(self._listeners.get(key, ()))

    def _notify(self, key: str, event: CacheEvent, entry: QueryCacheEntry | None) -> None:
        for listener in list(self._listeners.get(key, ())):
            try:
                listener(event, entry)
            except Exception as e:
                logger.error(
                    "Cache listener failed",
                    extra={"key": key, "event": str(event), "error": str(e)},
                )


class QueryEngine:
    """QueryCache を所有し、フェッチの重複排除とオブザーバー管理を行う。"""

    def __init__(self, cache: QueryCache | None = None) -> None:
        self.cache = cache if cache is not None else QueryCache()
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._background: set[asyncio.Future[Any]] = set()
        self._observers: set[QueryObserver] = set()

    def is_fetching(self, key: str) -> bool:
        return key in self._in_flight

    async def fetch(self, key: str, fn: QueryFn, options: QueryOptions | None = None) -> Any:
        """キーのデータを取得してキャッシュに書き込む。

        同じキーのフェッチが進行中であればそれを共有する。待機側の
        キャンセルは共有フェッチ自体をキャンセルしない。
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fn, options or QueryOptions()))
            self._in_flight[key] = task
            self.cache.begin_fetch(key)
            task.add_done_callback(partial(self._on_fetch_done, key))
        return await asyncio.shield(task)

    def _on_fetch_done(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
            self.cache.end_fetch(key)
        if not task.cancelled():
            # 全待機者がキャンセル済みでも例外を回収済みにする
            task.exception()

    async def _run(self, key: str, fn: QueryFn, options: QueryOptions) -> Any:
        attempt = 0
        while True:
            try:
                data = await fn()
            except Exception as e:
                if attempt >= options.max_retries:
                    raise
                attempt += 1
                logger.debug(
                    "Query %s failed, retry %d/%d: %s", key, attempt, options.max_retries, e
                )
                await asyncio.sleep(options.retry_delay)
                continue
            self.cache.set(key, data, options.cache_time)
            return data

    def prefetch(
        self, key: str, fn: QueryFn, options: QueryOptions | None = None
    ) -> asyncio.Future[Any]:
        """バックグラウンドでフェッチする。失敗はログに記録する。"""
        task = asyncio.ensure_future(self.fetch(key, fn, options))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Future[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background refetch failed", extra={"error": str(error)})

    def use_query(
        self, key: str, fn: QueryFn, options: QueryOptions | None = None
    ) -> QueryObserver:
        """キーに対するオブザーバーを作成してマウントする。

        実行中のイベントループ内で呼ぶこと。
        """
        observer = QueryObserver(self, key, fn, options or QueryOptions())
        self._observers.add(observer)
        observer._mount()
        return observer

    def notify_focus(self) -> None:
        """フォアグラウンド復帰を通知する。古いクエリは再フェッチされる。"""
        for observer in list(self._observers):
            observer._on_focus()

    def invalidate(self, key: str) -> bool:
        return self.cache.invalidate(key)

    def invalidate_by_prefix(self, prefix: str) -> int:
        return self.cache.invalidate_by_prefix(prefix)

    def _detach(self, observer: QueryObserver) -> None:
        self._observers.discard(observer)

    async def aclose(self) -> None:
        """オブザーバーを閉じ、バックグラウンド処理を止め、キャッシュを空にする。"""
        for observer in list(self._observers):
            observer.close()
        pending = [*self._background, *self._in_flight.values()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._in_flight.clear()
        self.cache.clear()


class QueryObserver:
    """単一キーのクエリ状態を保持するリアクティブなオブザーバー。

    キャッシュの UPDATED で data を更新し、INVALIDATED で自動的に
    再フェッチする。QueryEngine.use_query から生成する。
    """

    def __init__(
        self, engine: QueryEngine, key: str, fn: QueryFn, options: QueryOptions
    ) -> None:
        self.engine = engine
        self.key = key
        self.fn = fn
        self.options = options
        self._listeners: list[Callable[[QueryState], None]] = []
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        cached = engine.cache.get(key)
        data = cached.value if cached is not None else options.initial_data
        self._state = QueryState.initial(data)
        self._unsubscribe = engine.cache.subscribe(key, self._on_cache_event)

    @property
    def state(self) -> QueryState:
        return self._state

    @property
    def status(self) -> QueryStatus:
        return self._state.status

    @property
    def data(self) -> Any:
        return self._state.data

    @property
    def error(self) -> Exception | None:
        return self._state.error

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_success(self) -> bool:
        return self._state.is_success

    @property
    def is_error(self) -> bool:
        return self._state.is_error

    @property
    def is_idle(self) -> bool:
        return self._state.is_idle

    @property
    def is_fetching(self) -> bool:
        return self._state.is_fetching

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Callable[[QueryState], None]) -> Callable[[], None]:
        """状態変化を購読する。戻り値を呼ぶと購読解除。"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refetch(self) -> QueryState:
        """再フェッチして完了後の状態を返す。"""
        task = self._schedule(force=True)
        if task is not None:
            await asyncio.wait({task})
        return self._state

    async def wait(self) -> QueryState:
        """進行中のフェッチが終わるまで待つ。"""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._state

    def close(self) -> None:
        """購読を解除する。進行中のフェッチ結果はこのオブザーバーに反映されない。"""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._listeners.clear()
        self.engine._detach(self)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _set_state(self, state: QueryState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(
                    "Query listener failed", extra={"key": self.key, "error": str(e)}
                )

    def _mount(self) -> None:
        if not self.options.enabled:
            return
        cache = self.engine.cache
        if cache.get(self.key) is not None and not cache.is_stale(
            self.key, self.options.stale_time
        ):
            return
        self._schedule()

    def _schedule(self, force: bool = False) -> asyncio.Task[None] | None:
        if self._closed or not (self.options.enabled or force):
            return None
        if self._task is not None and not self._task.done():
            return self._task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; fetch skipped", extra={"key": self.key})
            return None
        if not self._state.is_fetching:
            self._set_state(self._state.fetch_start())
        self._task = loop.create_task(self._execute())
        return self._task

    async def _execute(self) -> None:
        try:
            data = await self.engine.fetch(self.key, self.fn, self.options)
        except Exception as e:
            if self._closed:
                return
            self._set_state(self._state.fetch_error(e))
            if self.options.on_error is not None:
                self.options.on_error(e)
            if self.options.on_settled is not None:
                self.options.on_settled(None, e)
            return
        if self._closed:
            return
        if not (self._state.is_success and self._state.data is data and not self._state.is_fetching):
            self._set_state(self._state.fetch_success(data))
        if self.options.on_success is not None:
            self.options.on_success(data)
        if self.options.on_settled is not None:
            self.options.on_settled(data, None)

    def _on_cache_event(self, event: CacheEvent, entry: QueryCacheEntry | None) -> None:
        if self._closed:
            return
        if event is CacheEvent.UPDATED and entry is not None:
            if not (self._state.is_success and self._state.data is entry.value):
                self._set_state(self._state.fetch_success(entry.value))
        elif event is CacheEvent.INVALIDATED:
            self._schedule()

    def _on_focus(self) -> None:
        if not (self.options.enabled and self.options.refetch_on_window_focus):
            return
        if self.engine.cache.is_stale(self.key, self.options.stale_time):
            self._schedule()
