"""計測結果をJSONで保存するためのユーティリティ."""

import dataclasses
import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np


def _json_default(value: Any) -> Any:
    """json が直接扱えない値を変換する."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"JSONへ変換できない型です: {type(value).__name__}")


def to_json_text(payload: Any, *, indent: int = 2) -> str:
    """numpy スカラー・Enum・Path・dataclass を含むデータをJSON文字列にする."""
    return json.dumps(payload, ensure_ascii=False, indent=indent, default=_json_default)


def write_json_file(output_path: Path, payload: Any, *, indent: int = 2) -> Path:
    """to_json_text の結果をファイルへ書き出す. 親ディレクトリは作成する.

    Args:
        output_path: 出力先ファイルパス.
        payload: 保存するデータ.
        indent: インデント幅.

    Returns:
        保存したファイルパス.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(to_json_text(payload, indent=indent) + "\n", encoding="utf-8")
    return output_path


def now_iso_timestamp() -> str:
    """ローカルタイムゾーン付きの現在時刻を ISO 8601 形式で返す."""
    return datetime.now().astimezone().isoformat(timespec="seconds")
