"""
optinfer: キャッシュとチャンク実行で推論呼び出しを包む小さな推論エンジン.

Example:
    >>> from optinfer import InferenceConfig, TensorClassifier
    >>> config = InferenceConfig.create(model_path="model.pt", batch_size=8)
    >>> async with TensorClassifier(config, labels=["cat", "dog"]) as engine:
    ...     result = await engine.predict([0.1, 0.2, 0.3])
    ...     results = await engine.predict_batch([[0.1, 0.2, 0.3]] * 20)
"""

from .batching import iter_chunks, run_batched
from .cache import CacheStats, PredictionCache, serialize_key
from .config import AlertConfig, InferenceConfig, QuantizationConfig, SystemTuningConfig
from .errors import (
    BatchError,
    ConfigurationError,
    EngineDisposedError,
    ExecutionError,
    KeySerializationError,
    ModelLoadError,
    OptInferError,
    PostprocessError,
    PreprocessError,
    StageError,
    UninitializedError,
)
from .inference import (
    Classification,
    EngineState,
    InferenceEngine,
    InferenceMetrics,
    InferenceResult,
    TensorClassifier,
    TorchModelRuntime,
)
from .monitoring import PerformanceMonitor

__version__ = "0.1.0"

__all__ = [
    "AlertConfig",
    "BatchError",
    "CacheStats",
    "Classification",
    "ConfigurationError",
    "EngineDisposedError",
    "EngineState",
    "ExecutionError",
    "InferenceConfig",
    "InferenceEngine",
    "InferenceMetrics",
    "InferenceResult",
    "KeySerializationError",
    "ModelLoadError",
    "OptInferError",
    "PerformanceMonitor",
    "PostprocessError",
    "PredictionCache",
    "PreprocessError",
    "QuantizationConfig",
    "StageError",
    "SystemTuningConfig",
    "TensorClassifier",
    "TorchModelRuntime",
    "UninitializedError",
    "iter_chunks",
    "run_batched",
    "serialize_key",
]
