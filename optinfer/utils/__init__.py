"""
optinfer.utils: ユーティリティモジュール.

設定ファイル読み込みやJSON出力などの汎用機能を提供
"""

from .config_loader import ConfigLoader
from .json_utils import now_iso_timestamp, to_json_text, write_json_file

__all__ = ["ConfigLoader", "now_iso_timestamp", "to_json_text", "write_json_file"]
