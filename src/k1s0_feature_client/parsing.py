"""評価 API レスポンスの解析"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

import httpx

from .exceptions import ParseError
from .models import FeatureValue


def parse_wire_value(value: str) -> FeatureValue:
    """ワイヤ上の文字列を型変換する。

    "true"/"false" は bool、数値文字列は int または float、
    それ以外は文字列のまま返す。
    """
    if value == "true":
        return True
    if value == "false":
        return False
    text = value.strip()
    if not text:
        return value
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return value
    if math.isnan(number) or math.isinf(number):
        return value
    return number


def resolve_variation(variation: FeatureValue, fallback: FeatureValue) -> FeatureValue:
    # False / 0 / 空コンテナは有効な値。None のみフォールバックする
    if variation is not None:
        return variation
    return fallback


def parse_features_response(
    response: httpx.Response,
    feature_names: Iterable[str],
    fallbacks: Mapping[str, FeatureValue],
    coerce_string_values: bool = False,
) -> dict[str, FeatureValue]:
    """レスポンスから要求したフィーチャーの値を取り出す。

    Raises:
        ParseError: ボディが JSON でない、または features を含まない場合
    """
    try:
        data = response.json()
    except ValueError as e:
        raise ParseError(f"Malformed response body: {e}", cause=e) from e
    if not isinstance(data, dict) or not isinstance(data.get("features"), dict):
        raise ParseError("Response body has no 'features' object")

    features = data["features"]
    result: dict[str, FeatureValue] = {}
    for name in feature_names:
        entry = features.get(name)
        variation = entry.get("variation") if isinstance(entry, dict) else None
        if coerce_string_values and isinstance(variation, str):
            variation = parse_wire_value(variation)
        result[name] = resolve_variation(variation, fallbacks.get(name))
    return result
