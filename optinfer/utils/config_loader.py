"""設定ファイル読み込みユーティリティ."""

import importlib.util
import types
from pathlib import Path
from typing import Any, Dict, Union


class ConfigLoader:
    """Python形式の設定ファイルを読み込むクラス."""

    @staticmethod
    def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
        """設定ファイル(Python形式)を読み込む.

        モジュール直下の `_` で始まらない名前のうち, 関数・クラス・モジュール以外を
        設定値とする.

        Args:
            config_path: 設定ファイルのパス

        Returns:
            設定辞書

        Raises:
            FileNotFoundError: 設定ファイルが存在しない場合
            RuntimeError: 設定ファイルの読み込みに失敗した場合
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"設定ファイルが見つかりません: {config_path}")

        spec = importlib.util.spec_from_file_location("optinfer_user_config", path)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"設定ファイルの読み込みに失敗しました: {config_path}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        return {
            key: getattr(module, key)
            for key in dir(module)
            if not key.startswith("_")
            and not callable(getattr(module, key))
            and not isinstance(getattr(module, key), types.ModuleType)
        }
