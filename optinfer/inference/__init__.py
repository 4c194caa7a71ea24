"""
optinfer.inference: 推論エンジン.

キャッシュ付き・チャンク実行の推論ファサードと, PyTorch ランタイムを提供します.
"""

from .classifier import ClassPrediction, Classification, TensorClassifier
from .engine import InferenceEngine
from .runtime import IModelHandle, IModelRuntime, ResourceScope, release_resource
from .system_tuning import SystemTuner
from .torch_runtime import TorchModelHandle, TorchModelRuntime, resolve_device
from .types import EngineState, InferenceMetrics, InferenceResult

__all__ = [
    "ClassPrediction",
    "Classification",
    "EngineState",
    "IModelHandle",
    "IModelRuntime",
    "InferenceEngine",
    "InferenceMetrics",
    "InferenceResult",
    "ResourceScope",
    "SystemTuner",
    "TensorClassifier",
    "TorchModelHandle",
    "TorchModelRuntime",
    "release_resource",
    "resolve_device",
]
