"""optinfer.errors: 推論エンジンが送出する例外の定義.

呼び出し側が次の3種類を区別できるように階層化している.

- 構築時の設定ミス (ConfigurationError): 生成時に即座に失敗し, 再試行しない.
- 呼び出し単位の失敗 (StageError 系): エンジンは READY のまま再利用できる.
- バッチ全体の失敗 (BatchError): 部分結果は返さない.
"""

from typing import Optional


class OptInferError(Exception):
    """optinfer の全例外の基底クラス."""


class ConfigurationError(OptInferError, ValueError):
    """設定値が不正な場合の例外."""


class KeySerializationError(OptInferError, TypeError):
    """入力をキャッシュキーへ変換できない場合の例外."""


class UninitializedError(OptInferError, RuntimeError):
    """initialize() 成功前に推論が呼ばれた場合の例外."""


class EngineDisposedError(OptInferError, RuntimeError):
    """dispose() 済みのエンジンが操作された場合の例外."""


class ModelLoadError(OptInferError, RuntimeError):
    """モデル読み込みに失敗した場合の例外.

    エンジンは UNINITIALIZED に戻るため, initialize() を再試行できる.
    """

    def __init__(self, model_path: str, message: str) -> None:
        """例外を初期化する.

        Args:
            model_path: 読み込もうとしたモデルのパス.
            message: 失敗内容.
        """
        super().__init__(f"モデルの読み込みに失敗しました: {model_path}: {message}")
        self.model_path = model_path


class StageError(OptInferError, RuntimeError):
    """推論ステージ内の失敗を表す基底例外."""

    stage = "unknown"

    def __init__(self, message: str) -> None:
        """例外を初期化する.

        Args:
            message: 元例外のメッセージ.
        """
        super().__init__(f"{self.stage} に失敗しました: {message}")


class PreprocessError(StageError):
    """前処理の失敗."""

    stage = "preprocess"


class ExecutionError(StageError):
    """モデル実行の失敗."""

    stage = "run"


class PostprocessError(StageError):
    """後処理の失敗."""

    stage = "postprocess"


class BatchError(OptInferError, RuntimeError):
    """バッチ推論中にチャンクが失敗した場合の例外."""

    def __init__(
        self,
        message: str,
        chunk_index: int,
        item_index: Optional[int] = None,
    ) -> None:
        """例外を初期化する.

        Args:
            message: 失敗内容.
            chunk_index: 失敗したチャンクの番号 (0始まり).
            item_index: 失敗した入力の元リスト上の位置. 不明ならNone.
        """
        location = f"chunk={chunk_index}"
        if item_index is not None:
            location += f" item={item_index}"
        super().__init__(f"バッチ推論に失敗しました ({location}): {message}")
        self.chunk_index = chunk_index
        self.item_index = item_index
