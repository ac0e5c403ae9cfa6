"""feature_client ライブラリの例外型定義"""

from __future__ import annotations


class FeatureClientError(Exception):
    """feature_client ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class FeatureClientErrorCodes:
    """FeatureClientError のエラーコード定数。"""

    TRANSPORT_ERROR: str = "TRANSPORT_ERROR"
    PARSE_ERROR: str = "PARSE_ERROR"
    TYPE_MISMATCH: str = "TYPE_MISMATCH"
    CONFIG_ERROR: str = "CONFIG_ERROR"
    PLUGIN_ERROR: str = "PLUGIN_ERROR"


class TransportError(FeatureClientError):
    """HTTP 非 2xx 応答またはネットワーク障害。リトライ対象。"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(FeatureClientErrorCodes.TRANSPORT_ERROR, message, cause)
        self.status_code = status_code


class ParseError(FeatureClientError):
    """レスポンスボディの形式不正。リトライしない。"""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(FeatureClientErrorCodes.PARSE_ERROR, message, cause)


class TypeMismatchError(FeatureClientError):
    """解決値の型が呼び出し側の期待と異なる。フォールバックで抑制しない。"""

    def __init__(self, message: str) -> None:
        super().__init__(FeatureClientErrorCodes.TYPE_MISMATCH, message)


class ConfigurationError(FeatureClientError):
    """設定不備。構築時に即座に失敗する。"""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(FeatureClientErrorCodes.CONFIG_ERROR, message, cause)


class PluginError(FeatureClientError):
    """プラグインのフックが失敗した。"""

    def __init__(self, plugin_name: str, hook: str, cause: Exception) -> None:
        super().__init__(
            FeatureClientErrorCodes.PLUGIN_ERROR,
            f"plugin '{plugin_name}' failed in {hook}: {cause}",
            cause,
        )
        self.plugin_name = plugin_name
        self.hook = hook
