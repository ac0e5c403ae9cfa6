"""型付きフィーチャー解決レイヤー"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from .client import FeatureClient
from .exceptions import TypeMismatchError
from .models import FeatureContext, FeatureValue

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ResolutionReason(StrEnum):
    """解決理由。"""

    STATIC = "STATIC"
    ERROR = "ERROR"


class ResolutionErrorCode(StrEnum):
    """解決エラーコード。"""

    GENERAL = "GENERAL"


@dataclass(frozen=True)
class ResolutionDetails(Generic[T]):
    """型付き解決の結果。"""

    value: T
    reason: ResolutionReason = ResolutionReason.STATIC
    error_code: ResolutionErrorCode | None = None
    error_message: str | None = None


def _matches(value: FeatureValue, expected: str) -> bool:
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        # bool は int のサブクラスなので除外する
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "object":
        return isinstance(value, (dict, list))
    return False


class TypedFeatureResolver:
    """期待する型を検証しながらフィーチャーを解決する。

    型が一致しない場合は TypeMismatchError を送出する。これは呼び出し側の
    契約違反なのでデフォルト値で抑制しない。それ以外の失敗では
    デフォルト値を reason=ERROR で返す。
    """

    def __init__(self, client: FeatureClient) -> None:
        self._client = client

    async def resolve_boolean(
        self, flag_key: str, default_value: bool, context: FeatureContext | None = None
    ) -> ResolutionDetails[bool]:
        return await self._resolve(flag_key, default_value, context, "boolean")

    async def resolve_string(
        self, flag_key: str, default_value: str, context: FeatureContext | None = None
    ) -> ResolutionDetails[str]:
        return await self._resolve(flag_key, default_value, context, "string")

    async def resolve_number(
        self, flag_key: str, default_value: float, context: FeatureContext | None = None
    ) -> ResolutionDetails[float]:
        return await self._resolve(flag_key, default_value, context, "number")

    async def resolve_object(
        self,
        flag_key: str,
        default_value: dict[str, Any] | list[Any],
        context: FeatureContext | None = None,
    ) -> ResolutionDetails[Any]:
        return await self._resolve(flag_key, default_value, context, "object")

    async def _resolve(
        self, flag_key: str, default_value: Any, context: FeatureContext | None, expected: str
    ) -> ResolutionDetails[Any]:
        try:
            value = await self._client.get_feature(flag_key, context=context)
            if not _matches(value, expected):
                raise TypeMismatchError(
                    f'Feature "{flag_key}" is not a {expected}. Got {type(value).__name__}'
                )
            return ResolutionDetails(value=value)
        except TypeMismatchError:
            raise
        except Exception as e:
            logger.error(
                "Error evaluating flag", extra={"flag_key": flag_key, "error": str(e)}
            )
            return ResolutionDetails(
                value=default_value,
                reason=ResolutionReason.ERROR,
                error_code=ResolutionErrorCode.GENERAL,
                error_message=str(e),
            )
