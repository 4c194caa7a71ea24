"""推論エンジンで共有するデータ型."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

ResultT = TypeVar("ResultT")


class EngineState(Enum):
    """推論エンジンのライフサイクル状態."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class InferenceMetrics:
    """1回の推論呼び出しの計測値 (ミリ秒).

    キャッシュヒット時は各ステージを実行していないため,
    ステージ時間は None, total_time_ms はキャッシュ参照時間になる.
    計算した場合は total_time_ms >= 3ステージの合計 が常に成り立つ.
    """

    total_time_ms: float
    batch_size: int
    device_type: str
    cached: bool = False
    preprocessing_time_ms: Optional[float] = None
    inference_time_ms: Optional[float] = None
    postprocessing_time_ms: Optional[float] = None

    @property
    def stage_time_ms(self) -> float:
        """3ステージの合計時間. キャッシュヒット時は0.0."""
        return sum(
            t
            for t in (
                self.preprocessing_time_ms,
                self.inference_time_ms,
                self.postprocessing_time_ms,
            )
            if t is not None
        )

    def as_cached(self, lookup_time_ms: float) -> "InferenceMetrics":
        """キャッシュヒットとして返すための計測値を作る.

        Args:
            lookup_time_ms: キャッシュ参照にかかった時間.

        Returns:
            ステージ時間を持たない新しい計測値.
        """
        return InferenceMetrics(
            total_time_ms=lookup_time_ms,
            batch_size=self.batch_size,
            device_type=self.device_type,
            cached=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式へ変換する."""
        return asdict(self)


@dataclass(frozen=True)
class InferenceResult(Generic[ResultT]):
    """推論結果と計測値の組."""

    result: ResultT
    metrics: InferenceMetrics

    @property
    def cached(self) -> bool:
        """キャッシュから返された結果かどうか."""
        return self.metrics.cached
