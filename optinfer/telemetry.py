"""プロセス・デバイスのメモリ使用量を取得するプローブ.

取得値はメトリクスの注記にのみ使い, 制御フローには影響させない.
"""

import os
import platform
from typing import Any, Dict, Optional

import psutil
import torch

_MB = 1024 * 1024


def get_memory_usage_mb() -> float:
    """現在のプロセスの常駐メモリ量(RSS)をMB単位で返す."""
    return float(psutil.Process(os.getpid()).memory_info().rss) / _MB


def get_gpu_memory_usage_mb() -> Optional[float]:
    """CUDAで確保中のメモリ量をMB単位で返す.

    Returns:
        CUDAが利用できない場合はNone.
    """
    if not torch.cuda.is_available():
        return None
    return float(torch.cuda.memory_allocated()) / _MB


def get_device_info() -> Dict[str, Any]:
    """実行環境の情報を返す.

    Returns:
        `platform`, `cpu_cores`, `memory_mb`, `gpu_info` を持つ辞書.
    """
    info: Dict[str, Any] = {
        "platform": f"{platform.system()}-{platform.machine()}",
        "cpu_cores": os.cpu_count(),
        "memory_mb": float(psutil.virtual_memory().total) / _MB,
        "gpu_info": None,
    }
    if torch.cuda.is_available():
        info["gpu_info"] = torch.cuda.get_device_name(0)
    return info
