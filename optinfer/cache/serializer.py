"""入力値を決定的なキャッシュキー文字列へ変換するシリアライザ.

等しい入力は常に同じキーになるよう, 正規化した JSON を生成する.
整数値の float は int と同じ表現になり, dict はキーの型を保ったまま
キー順序に依存しない形へ変換する. 循環参照や未対応の型は KeySerializationError.
"""

import dataclasses
import json
from enum import Enum
from typing import Any, Callable, List

import numpy as np
import torch
from pydantic import BaseModel

from optinfer.errors import KeySerializationError

KeySerializer = Callable[[Any], str]


def _canonical(normalized: Any) -> str:
    """正規化済みの値を比較用の JSON 文字列にする."""
    return _canonical(normalized)


def _normalize(value: Any, active: List[int]) -> Any:
    """値を JSON 化可能な正規形へ再帰的に変換する.

    Args:
        value: 変換対象.
        active: 現在たどっているコンテナの id 列 (循環検出用).

    Returns:
        json.dumps に渡せる値.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        # NaN/inf は JSON 非準拠なので文字列表現に寄せる
        if value != value or value in (float("inf"), float("-inf")):
            return {"__float__": repr(value)}
        # 1 == 1.0 なので同じキーにする
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, Enum):
        return {"__enum__": f"{type(value).__name__}.{value.name}"}
    if isinstance(value, bytes):
        return {"__bytes__": value.hex()}
    if isinstance(value, torch.Tensor):
        return {
            "__tensor__": str(value.dtype),
            "shape": list(value.shape),
            "data": _normalize(value.detach().cpu().tolist(), active),
        }
    if isinstance(value, np.ndarray):
        return {
            "__ndarray__": str(value.dtype),
            "shape": list(value.shape),
            "data": _normalize(value.tolist(), active),
        }
    if isinstance(value, np.generic):
        return _normalize(value.item(), active)

    marker = id(value)
    if marker in active:
        raise KeySerializationError(
            f"循環参照を含む入力はキーに変換できません: {type(value).__name__}"
        )
    active.append(marker)
    try:
        if isinstance(value, BaseModel):
            return {
                "__model__": type(value).__name__,
                "fields": _normalize(value.model_dump(), active),
            }
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            fields = {
                field.name: getattr(value, field.name)
                for field in dataclasses.fields(value)
            }
            return {
                "__dataclass__": type(value).__name__,
                "fields": _normalize(fields, active),
            }
        if isinstance(value, dict):
            # {1: v} と {"1": v} を区別するため, キーも正規化して組で持つ
            pairs = [
                [_normalize(k, active), _normalize(v, active)] for k, v in value.items()
            ]
            pairs.sort(key=lambda pair: (_canonical(pair[0]), _canonical(pair[1])))
            return {"__dict__": pairs}
        if isinstance(value, (list, tuple)):
            return [_normalize(item, active) for item in value]
        if isinstance(value, (set, frozenset)):
            items = [_canonical(_normalize(item, active)) for item in value]
            return {"__set__": sorted(items)}
    finally:
        active.pop()

    raise KeySerializationError(
        f"キャッシュキーに変換できない型です: {type(value).__name__}"
    )


def serialize_key(value: Any) -> str:
    """入力値から決定的なキャッシュキーを生成する.

    Args:
        value: 推論入力. JSON スカラー, dict, list/tuple, set, dataclass,
            pydantic モデル, numpy 配列, torch テンソルを組み合わせたもの.

    Returns:
        キー順序と数値表現を正規化した JSON 文字列.

    Raises:
        KeySerializationError: 循環参照や未対応の型を含む場合.

    Examples:
        >>> serialize_key({"b": 1, "a": [1, 2]}) == serialize_key({"a": [1, 2], "b": 1})
        True
    """
    normalized = _normalize(value, [])
    return _canonical(normalized)
