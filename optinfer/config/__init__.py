"""optinfer.config: 型付き設定のエントリーポイント."""

from .inference_config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CACHE_SIZE,
    InferenceConfig,
    format_validation_error,
)
from .sub_configs import AlertConfig, QuantizationConfig, SystemTuningConfig

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CACHE_SIZE",
    "InferenceConfig",
    "AlertConfig",
    "QuantizationConfig",
    "SystemTuningConfig",
    "format_validation_error",
]
