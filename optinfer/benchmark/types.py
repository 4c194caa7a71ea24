"""ベンチマーク設定と結果の型定義."""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BENCHMARK_SUMMARY_FILENAME = "benchmark_summary.json"


class BenchmarkConfig(BaseModel):
    """ベンチマーク実行設定."""

    model_config = ConfigDict(frozen=True)

    model_path: str
    iterations: int = Field(default=20, gt=0)
    warmup_iterations: int = Field(default=3, ge=0)
    batch_sizes: List[int] = Field(default_factory=lambda: [1, 8, 16, 32])
    use_gpu: bool = True
    quantization_bits: Optional[Literal[8, 16, 32]] = None
    cache_enabled: bool = False
    cache_size: int = Field(default=100, gt=0)

    @field_validator("batch_sizes")
    @classmethod
    def batch_sizes_must_be_positive(cls, v: List[int]) -> List[int]:
        """バッチサイズが1つ以上あり, 全て正であることを検証する."""
        if not v:
            raise ValueError("batch_sizes は空にできません")
        for size in v:
            if size <= 0:
                raise ValueError(f"batch_sizes は正の値である必要があります (値: {size})")
        return v


@dataclass(frozen=True)
class BenchmarkResult:
    """1つのバッチサイズに対する計測結果."""

    batch_size: int
    avg_time_ms: float
    min_time_ms: float
    max_time_ms: float
    std_dev_ms: float
    throughput_items_per_sec: float
    memory_usage_mb: float
    backend_type: str
    gpu_memory_usage_mb: Optional[float] = None
    quantization_bits: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式へ変換する."""
        return {
            "batch_size": self.batch_size,
            "avg_time_ms": self.avg_time_ms,
            "min_time_ms": self.min_time_ms,
            "max_time_ms": self.max_time_ms,
            "std_dev_ms": self.std_dev_ms,
            "throughput_items_per_sec": self.throughput_items_per_sec,
            "memory_usage_mb": self.memory_usage_mb,
            "gpu_memory_usage_mb": self.gpu_memory_usage_mb,
            "quantization_bits": self.quantization_bits,
            "backend_type": self.backend_type,
        }


@dataclass(frozen=True)
class BenchmarkSummary:
    """ベンチマーク全体のまとめ."""

    model_path: str
    iterations: int
    warmup_iterations: int
    use_gpu: bool
    best: BenchmarkResult
    results: List[BenchmarkResult]
    timestamp: str
    device_info: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式へ変換する."""
        return {
            "model_path": self.model_path,
            "iterations": self.iterations,
            "warmup_iterations": self.warmup_iterations,
            "use_gpu": self.use_gpu,
            "best_configuration": {
                "batch_size": self.best.batch_size,
                "throughput_items_per_sec": self.best.throughput_items_per_sec,
                "avg_time_ms": self.best.avg_time_ms,
                "quantization_bits": self.best.quantization_bits,
            },
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp,
            "device_info": self.device_info,
        }
