"""ロジットを出力するモデル向けの分類エンジン."""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from optinfer.config import InferenceConfig

from .engine import InferenceEngine
from .runtime import IModelRuntime

ClassifierInput = Union[Sequence[float], np.ndarray, torch.Tensor]


@dataclass(frozen=True)
class ClassPrediction:
    """1クラス分の予測."""

    label: str
    confidence: float


@dataclass(frozen=True)
class Classification:
    """分類結果."""

    label: str
    confidence: float
    top_classes: List[ClassPrediction] = field(default_factory=list)
    raw_logits: List[float] = field(default_factory=list)


class TensorClassifier(InferenceEngine[ClassifierInput, Classification]):
    """
    1サンプルの特徴ベクトルを受け取り, softmax + top-k で分類するエンジン.

    Args:
        config (InferenceConfig): 推論設定
        labels (Sequence[str]): クラスラベル. 出力次元より短い場合は "class_{i}"
        top_k (int): top_classes に含める件数
        input_shape (Tuple[int, ...], optional): 1サンプルの形状.
            指定時はウォームアップにゼロ入力を使う
        runtime (IModelRuntime, optional): モデル実行エンジン
    """

    def __init__(
        self,
        config: InferenceConfig,
        labels: Sequence[str] = (),
        top_k: int = 5,
        input_shape: Optional[Tuple[int, ...]] = None,
        runtime: Optional[IModelRuntime] = None,
        **kwargs: Any,
    ) -> None:
        """分類エンジンを初期化."""
        super().__init__(config, runtime, **kwargs)
        self.labels = list(labels)
        self.top_k = max(1, top_k)
        self.input_shape = input_shape

    def warmup_input(self) -> Optional[ClassifierInput]:
        """input_shape 指定時はゼロ入力でウォームアップする."""
        if self.input_shape is None:
            return None
        return np.zeros(self.input_shape, dtype=np.float32)

    def _label(self, index: int) -> str:
        if index < len(self.labels):
            return self.labels[index]
        return f"class_{index}"

    async def preprocess(self, item: ClassifierInput) -> torch.Tensor:
        """入力を float32 テンソルにしてバッチ軸を付け, 推論デバイスへ送る."""
        tensor = torch.as_tensor(np.asarray(item, dtype=np.float32))
        tensor = tensor.unsqueeze(0)
        to_device = getattr(self.handle, "to_device", None)
        if to_device is not None:
            tensor = to_device(tensor)
        return tensor

    async def postprocess(self, output: Any) -> Classification:
        """ロジットを確率へ変換し, 上位クラスを返す."""
        logits = torch.as_tensor(output).detach().float().cpu().reshape(-1)
        if logits.numel() == 0:
            raise ValueError("モデル出力が空です")

        probabilities = torch.softmax(logits, dim=0)
        k = min(self.top_k, probabilities.numel())
        values, indices = torch.topk(probabilities, k)
        top_classes = [
            ClassPrediction(label=self._label(int(i)), confidence=float(v))
            for v, i in zip(values.tolist(), indices.tolist())
        ]
        return Classification(
            label=top_classes[0].label,
            confidence=top_classes[0].confidence,
            top_classes=top_classes,
            raw_logits=logits.tolist(),
        )
