"""ローカル JSON ファイルの値でフィーチャーを上書きするプラグイン"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..models import FeatureContext, FeatureValue
from .base import FeaturePlugin

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = (".k1s0-features.json", "k1s0-features.config.json")


def find_config_file(cwd: Path | None = None) -> Path:
    """カレントディレクトリの設定ファイルを探す。なければ既定のパス。"""
    base = cwd or Path.cwd()
    for name in CONFIG_FILE_NAMES:
        candidate = base / name
        if candidate.exists():
            return candidate
    return base / CONFIG_FILE_NAMES[0]


class LocalOverridePlugin(FeaturePlugin):
    """開発用のローカル上書き。

    設定ファイルの形式::

        {"overrides": {...}, "features": {...}, "disabled": false}

    優先順位は overrides > features > fallback_features。features と
    fallback_features は解決値が None のキーにだけ適用される。ファイルの
    mtime が変わると次の評価前に再読み込みする。
    """

    name = "local-override"

    def __init__(
        self,
        config_path: Path | str | None = None,
        *,
        enabled: bool = True,
        fallback_features: dict[str, FeatureValue] | None = None,
        on_change: Callable[[str | None], Any] | None = None,
    ) -> None:
        super().__init__(enabled)
        self.config_path = Path(config_path) if config_path else find_config_file()
        self._fallback_features = dict(fallback_features or {})
        self._on_change = on_change
        self._config: dict[str, Any] = {}
        self._mtime: float | None = None
        self._load()

    @property
    def overrides(self) -> dict[str, FeatureValue]:
        return dict(self._config.get("overrides") or {})

    @property
    def disabled(self) -> bool:
        return bool(self._config.get("disabled"))

    async def initialize(self) -> None:
        self._load(force=True)

    async def before_get_features(
        self, feature_names: list[str], context: FeatureContext | None
    ) -> None:
        if self.enabled and self._load():
            self._changed(None)

    async def after_get_features(
        self, results: dict[str, FeatureValue], context: FeatureContext | None
    ) -> None:
        if not self.enabled or self.disabled:
            return
        for name, value in (self._config.get("overrides") or {}).items():
            if name in results:
                results[name] = value
        for source in (self._config.get("features") or {}, self._fallback_features):
            for name, value in source.items():
                if name in results and results[name] is None:
                    results[name] = value

    def set_override(self, feature_name: str, value: FeatureValue) -> None:
        self._config.setdefault("overrides", {})[feature_name] = value
        self._save()
        self._changed(feature_name)

    def remove_override(self, feature_name: str) -> None:
        overrides = self._config.get("overrides")
        if overrides and feature_name in overrides:
            del overrides[feature_name]
            self._save()
            self._changed(feature_name)

    def clear_overrides(self) -> None:
        self._config["overrides"] = {}
        self._save()
        self._changed(None)

    def set_feature(self, feature_name: str, value: FeatureValue) -> None:
        self._config.setdefault("features", {})[feature_name] = value
        self._save()
        self._changed(feature_name)

    def _changed(self, feature_name: str | None) -> None:
        if self._on_change is not None:
            self._on_change(feature_name)

    def _load(self, force: bool = False) -> bool:
        """ファイルが変更されていれば読み込み、変更の有無を返す。"""
        try:
            mtime = self.config_path.stat().st_mtime
        except FileNotFoundError:
            changed = self._mtime is not None
            self._config = {}
            self._mtime = None
            return changed
        if not force and self._mtime is not None and mtime <= self._mtime:
            return False
        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(
                "Failed to load local feature config",
                extra={"path": str(self.config_path), "error": str(e)},
            )
            data = {}
        self._config = data if isinstance(data, dict) else {}
        self._mtime = mtime
        return True

    def _save(self) -> None:
        self.config_path.write_text(
            json.dumps(self._config, indent=2, sort_keys=True), encoding="utf-8"
        )
        self._mtime = self.config_path.stat().st_mtime
