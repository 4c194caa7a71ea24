"""推論前に適用するプロセス全体のチューニング."""

import logging
from typing import Any, Dict

import torch

from optinfer.config import SystemTuningConfig

logger = logging.getLogger("optinfer.engine")


class SystemTuner:
    """SystemTuningConfig を torch のグローバル設定へ反映する.

    反映は initialize() から明示的に1回だけ呼ばれる.
    """

    def apply(self, config: SystemTuningConfig) -> Dict[str, Any]:
        """チューニングを適用する.

        Args:
            config: 適用する設定.

        Returns:
            実際に適用した設定項目と値.
        """
        applied: Dict[str, Any] = {}

        if config.num_threads is not None:
            torch.set_num_threads(config.num_threads)
            applied["num_threads"] = config.num_threads

        torch.backends.cudnn.benchmark = config.cudnn_benchmark
        applied["cudnn_benchmark"] = config.cudnn_benchmark

        torch.set_float32_matmul_precision(config.matmul_precision)
        applied["matmul_precision"] = config.matmul_precision

        logger.info(
            "システムチューニングを適用しました: %s",
            ", ".join(f"{k}={v}" for k, v in applied.items()),
        )
        return applied
