"""推論性能の計測値を蓄積し, 統計とアラートを提供するモニター."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional

import numpy as np

from optinfer.config import AlertConfig
from optinfer.errors import ConfigurationError
from optinfer.telemetry import get_gpu_memory_usage_mb, get_memory_usage_mb
from optinfer.utils import now_iso_timestamp, to_json_text, write_json_file

if TYPE_CHECKING:
    from optinfer.inference.types import InferenceMetrics

logger = logging.getLogger("optinfer.monitoring")

AlertHandler = Callable[["PerformanceAlert"], None]


class AlertType(Enum):
    """アラート種別."""

    INFERENCE_TIME = "inference_time"
    TOTAL_TIME = "total_time"
    MEMORY_USAGE = "memory_usage"
    GPU_MEMORY_USAGE = "gpu_memory_usage"
    THROUGHPUT = "throughput"


@dataclass(frozen=True)
class MetricsRecord:
    """タイムスタンプとメモリ使用量を付与した計測値."""

    timestamp_ms: float
    inference_time_ms: float
    preprocessing_time_ms: float
    postprocessing_time_ms: float
    total_time_ms: float
    batch_size: int
    device_type: str
    memory_usage_mb: float
    gpu_memory_usage_mb: Optional[float] = None

    @property
    def throughput_items_per_sec(self) -> float:
        """この計測のスループット (items/sec)."""
        if self.total_time_ms <= 0:
            return 0.0
        return self.batch_size * 1000.0 / self.total_time_ms


@dataclass(frozen=True)
class PerformanceAlert:
    """閾値超過を表すアラート."""

    timestamp_ms: float
    type: AlertType
    threshold: float
    actual_value: float
    record: MetricsRecord

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式へ変換する."""
        return {
            "timestamp_ms": self.timestamp_ms,
            "type": self.type.value,
            "threshold": self.threshold,
            "actual_value": self.actual_value,
            "record": asdict(self.record),
        }


@dataclass(frozen=True)
class PerformanceStatistics:
    """蓄積された計測値の統計."""

    count: int
    avg_inference_time_ms: float
    min_inference_time_ms: float
    max_inference_time_ms: float
    p95_inference_time_ms: float
    p99_inference_time_ms: float
    avg_total_time_ms: float
    avg_preprocessing_time_ms: float
    avg_postprocessing_time_ms: float
    avg_throughput_items_per_sec: float
    avg_memory_usage_mb: float
    avg_gpu_memory_usage_mb: Optional[float]
    start_ms: float
    end_ms: float

    @property
    def duration_ms(self) -> float:
        """最初と最後の計測の間隔."""
        return self.end_ms - self.start_ms

    @classmethod
    def empty(cls) -> "PerformanceStatistics":
        """計測値が無い場合の統計 (全て0)."""
        return cls(
            count=0,
            avg_inference_time_ms=0.0,
            min_inference_time_ms=0.0,
            max_inference_time_ms=0.0,
            p95_inference_time_ms=0.0,
            p99_inference_time_ms=0.0,
            avg_total_time_ms=0.0,
            avg_preprocessing_time_ms=0.0,
            avg_postprocessing_time_ms=0.0,
            avg_throughput_items_per_sec=0.0,
            avg_memory_usage_mb=0.0,
            avg_gpu_memory_usage_mb=None,
            start_ms=0.0,
            end_ms=0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式へ変換する."""
        payload = asdict(self)
        payload["duration_ms"] = self.duration_ms
        return payload


class PerformanceMonitor:
    """推論計測値を最大 max_metrics_count 件まで保持するモニター.

    Args:
        max_metrics_count: 保持する計測値とアラートそれぞれの上限. 超えた分は古いものから捨てる.
        alert_config: アラート閾値.
        clock_ms: 現在時刻 (ミリ秒) を返す関数. テスト用に差し替え可能.
    """

    def __init__(
        self,
        max_metrics_count: int = 1000,
        alert_config: Optional[AlertConfig] = None,
        clock_ms: Optional[Callable[[], float]] = None,
    ) -> None:
        """モニターを初期化."""
        if max_metrics_count < 1:
            raise ConfigurationError(
                f"max_metrics_count は1以上である必要があります (値: {max_metrics_count})"
            )
        self.alert_config = alert_config or AlertConfig()
        self._records: Deque[MetricsRecord] = deque(maxlen=max_metrics_count)
        self._alerts: Deque[PerformanceAlert] = deque(maxlen=max_metrics_count)
        self._handlers: List[AlertHandler] = []
        self._clock_ms = clock_ms or (lambda: time.time() * 1000)

    def record_metrics(self, metrics: "InferenceMetrics") -> Optional[MetricsRecord]:
        """計測値にタイムスタンプとメモリ使用量を付けて記録する.

        キャッシュヒット (cached=True) の計測値は記録しない.

        Args:
            metrics: エンジンが返した計測値.

        Returns:
            記録した値. キャッシュヒットの場合はNone.
        """
        if metrics.cached:
            return None

        record = MetricsRecord(
            timestamp_ms=self._clock_ms(),
            inference_time_ms=metrics.inference_time_ms or 0.0,
            preprocessing_time_ms=metrics.preprocessing_time_ms or 0.0,
            postprocessing_time_ms=metrics.postprocessing_time_ms or 0.0,
            total_time_ms=metrics.total_time_ms,
            batch_size=metrics.batch_size,
            device_type=metrics.device_type,
            memory_usage_mb=get_memory_usage_mb(),
            gpu_memory_usage_mb=get_gpu_memory_usage_mb(),
        )
        self._records.append(record)
        self._check_alerts(record)
        return record

    def _check_alerts(self, record: MetricsRecord) -> None:
        """閾値を超えた項目ごとにアラートを発行する."""
        config = self.alert_config
        checks = [
            (AlertType.INFERENCE_TIME, config.max_inference_time_ms, record.inference_time_ms),
            (AlertType.TOTAL_TIME, config.max_total_time_ms, record.total_time_ms),
            (AlertType.MEMORY_USAGE, config.max_memory_usage_mb, record.memory_usage_mb),
            (
                AlertType.GPU_MEMORY_USAGE,
                config.max_gpu_memory_usage_mb,
                record.gpu_memory_usage_mb,
            ),
        ]
        for alert_type, threshold, actual in checks:
            if threshold is not None and actual is not None and actual > threshold:
                self._trigger(alert_type, threshold, actual, record)

        min_throughput = config.min_throughput_items_per_sec
        throughput = record.throughput_items_per_sec
        if min_throughput is not None and throughput < min_throughput:
            self._trigger(AlertType.THROUGHPUT, min_throughput, throughput, record)

    def _trigger(
        self,
        alert_type: AlertType,
        threshold: float,
        actual: float,
        record: MetricsRecord,
    ) -> None:
        alert = PerformanceAlert(
            timestamp_ms=self._clock_ms(),
            type=alert_type,
            threshold=threshold,
            actual_value=actual,
            record=record,
        )
        self._alerts.append(alert)
        logger.warning(
            "性能アラート: %s が閾値 (%s) を超えました: %.3f",
            alert_type.value,
            threshold,
            actual,
        )
        for handler in list(self._handlers):
            try:
                handler(alert)
            except Exception:
                # 1つのハンドラーの失敗で他の通知を止めない
                logger.exception("アラートハンドラーでエラーが発生しました")

    def on_alert(self, handler: AlertHandler) -> Callable[[], None]:
        """アラートハンドラーを登録する.

        Args:
            handler: アラートを受け取る関数.

        Returns:
            登録を解除する関数.
        """
        self._handlers.append(handler)

        def remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return remove

    def get_metrics(self) -> List[MetricsRecord]:
        """記録済みの計測値 (古い順) のコピーを返す."""
        return list(self._records)

    def get_alerts(self) -> List[PerformanceAlert]:
        """発行済みアラートのコピーを返す."""
        return list(self._alerts)

    def calculate_statistics(
        self, time_range_ms: Optional[float] = None
    ) -> PerformanceStatistics:
        """記録済み計測値の統計を計算する.

        Args:
            time_range_ms: 指定時は現在から遡ってこの範囲の計測値のみ使う.

        Returns:
            統計値. 対象が無い場合は全て0.
        """
        records = list(self._records)
        if time_range_ms is not None:
            since = self._clock_ms() - time_range_ms
            records = [r for r in records if r.timestamp_ms >= since]
        if not records:
            return PerformanceStatistics.empty()

        inference = np.array([r.inference_time_ms for r in records])
        timestamps = [r.timestamp_ms for r in records]
        gpu_memory = [
            r.gpu_memory_usage_mb for r in records if r.gpu_memory_usage_mb is not None
        ]

        # 元データの要素から選ぶ percentile (補間しない)
        sorted_inference = np.sort(inference)
        count = len(records)
        p95 = sorted_inference[min(int(count * 0.95), count - 1)]
        p99 = sorted_inference[min(int(count * 0.99), count - 1)]

        return PerformanceStatistics(
            count=count,
            avg_inference_time_ms=float(inference.mean()),
            min_inference_time_ms=float(inference.min()),
            max_inference_time_ms=float(inference.max()),
            p95_inference_time_ms=float(p95),
            p99_inference_time_ms=float(p99),
            avg_total_time_ms=float(np.mean([r.total_time_ms for r in records])),
            avg_preprocessing_time_ms=float(
                np.mean([r.preprocessing_time_ms for r in records])
            ),
            avg_postprocessing_time_ms=float(
                np.mean([r.postprocessing_time_ms for r in records])
            ),
            avg_throughput_items_per_sec=float(
                np.mean([r.throughput_items_per_sec for r in records])
            ),
            avg_memory_usage_mb=float(np.mean([r.memory_usage_mb for r in records])),
            avg_gpu_memory_usage_mb=float(np.mean(gpu_memory)) if gpu_memory else None,
            start_ms=min(timestamps),
            end_ms=max(timestamps),
        )

    def clear(self) -> None:
        """計測値とアラートを全て削除する."""
        self._records.clear()
        self._alerts.clear()

    def to_dict(self) -> Dict[str, Any]:
        """計測値, アラート, 統計をまとめた辞書を返す."""
        return {
            "metrics": [asdict(r) for r in self._records],
            "alerts": [a.to_dict() for a in self._alerts],
            "statistics": self.calculate_statistics().to_dict(),
            "timestamp": now_iso_timestamp(),
        }

    def export_as_json(self) -> str:
        """to_dict() の内容をJSON文字列で返す."""
        return to_json_text(self.to_dict())

    def save_to_file(self, path: Path) -> Path:
        """to_dict() の内容をJSONファイルへ保存する.

        Args:
            path: 出力先ファイルパス.

        Returns:
            保存したファイルパス.
        """
        saved = write_json_file(Path(path), self.to_dict())
        logger.info("性能データを保存しました: %s", saved)
        return saved
