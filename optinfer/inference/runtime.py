"""推論エンジンが依存するモデル実行ランタイムの抽象.

IModelRuntime と IModelHandle は `typing.Protocol` を採用する.
テストで Fake / Stub を差し替える際に明示的な継承が不要になる.
"""

import logging
from types import TracebackType
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

logger = logging.getLogger("optinfer.runtime")

T = TypeVar("T")


class IModelHandle(Protocol):
    """読み込み済みモデルへのハンドル."""

    @property
    def device_type(self) -> str:
        """推論を実行するデバイス種別 (例: "cpu", "cuda")."""
        ...

    def run(self, model_input: Any) -> Any:
        """前処理済み入力でモデルを1回実行する.

        Args:
            model_input: 前処理済みの入力.

        Returns:
            モデル出力.
        """
        ...

    def dispose(self) -> None:
        """モデルが保持する資源を解放する."""
        ...


class IModelRuntime(Protocol):
    """モデルを読み込んでハンドルを返す実行エンジン."""

    def load_model(self, path: str, options: Dict[str, Any]) -> IModelHandle:
        """モデルを読み込む.

        Args:
            path: モデルファイルのパス.
            options: `use_gpu`, `quantization_bits` などの素通しオプション.

        Returns:
            読み込み済みモデルのハンドル.
        """
        ...


def release_resource(resource: Any) -> None:
    """中間資源を解放する.

    `dispose()` または `close()` を持つオブジェクトはそれを呼ぶ.
    list/tuple/dict は要素ごとに解放する.
    """
    if isinstance(resource, (list, tuple)):
        for item in resource:
            release_resource(item)
    elif isinstance(resource, dict):
        for item in resource.values():
            release_resource(item)
    elif hasattr(resource, "dispose"):
        resource.dispose()
    elif hasattr(resource, "close"):
        resource.close()


class ResourceScope:
    """推論1回分の中間資源を追跡し, 抜けるときに必ず解放するスコープ.

    Examples:
        >>> with ResourceScope() as scope:
        ...     tensor = scope.track(preprocess(x))
        ...     output = scope.track(handle.run(tensor))
    """

    def __init__(self) -> None:
        """スコープを初期化."""
        self._resources: List[Any] = []
        self.closed = False

    def track(self, resource: T) -> T:
        """資源をスコープに登録して, そのまま返す."""
        if resource is not None:
            self._resources.append(resource)
        return resource

    @property
    def tracked_count(self) -> int:
        """未解放の資源数."""
        return len(self._resources)

    def close(self) -> None:
        """登録された資源を登録の逆順で解放する.

        解放中の例外はすべての資源を処理した後で最初のものを送出する.
        """
        first_error: Optional[BaseException] = None
        while self._resources:
            resource = self._resources.pop()
            try:
                release_resource(resource)
            except Exception as exc:
                logger.error("中間資源の解放に失敗しました: %s", exc)
                if first_error is None:
                    first_error = exc
        self.closed = True
        if first_error is not None:
            raise first_error

    def __enter__(self) -> "ResourceScope":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            self.close()
            return
        # 本来の例外を優先し, 解放失敗はログのみに留める
        try:
            self.close()
        except Exception:
            logger.exception("例外処理中の中間資源解放に失敗しました")
