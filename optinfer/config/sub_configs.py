"""optinfer.config.sub_configs: ネスト設定用モデル定義."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuantizationConfig(BaseModel):
    """量子化設定.

    実際の数値表現への変換は実行エンジン側の責務で, ここでは要求値のみ保持する.
    """

    model_config = ConfigDict(frozen=True)

    bits: Literal[8, 16, 32] = 8
    quantize_weights: bool = True
    quantize_activations: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QuantizationConfig":
        """Dict から設定を作成."""
        return cls.model_validate(data or {})


class SystemTuningConfig(BaseModel):
    """推論前に適用するプロセス全体のチューニング指定."""

    model_config = ConfigDict(frozen=True)

    num_threads: Optional[int] = Field(default=None, gt=0)
    cudnn_benchmark: bool = True
    matmul_precision: Literal["highest", "high", "medium"] = "high"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SystemTuningConfig":
        """Dict から設定を作成."""
        return cls.model_validate(data or {})


class AlertConfig(BaseModel):
    """性能アラートの閾値設定. 未指定(None)の項目は判定しない."""

    model_config = ConfigDict(frozen=True)

    max_inference_time_ms: Optional[float] = Field(default=None, gt=0)
    max_total_time_ms: Optional[float] = Field(default=None, gt=0)
    max_memory_usage_mb: Optional[float] = Field(default=None, gt=0)
    max_gpu_memory_usage_mb: Optional[float] = Field(default=None, gt=0)
    min_throughput_items_per_sec: Optional[float] = Field(default=None, gt=0)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AlertConfig":
        """Dict から設定を作成."""
        return cls.model_validate(data or {})
