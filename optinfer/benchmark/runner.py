"""バッチサイズごとに推論エンジンを計測するベンチマーク処理."""

from __future__ import annotations

import gc
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from optinfer.config import InferenceConfig
from optinfer.inference import InferenceEngine
from optinfer.telemetry import (
    get_device_info,
    get_gpu_memory_usage_mb,
    get_memory_usage_mb,
)
from optinfer.utils import now_iso_timestamp, write_json_file

from .types import (
    BENCHMARK_SUMMARY_FILENAME,
    BenchmarkConfig,
    BenchmarkResult,
    BenchmarkSummary,
)

LOGGER = logging.getLogger("optinfer.benchmark")

EngineFactory = Callable[[InferenceConfig], InferenceEngine[Any, Any]]


def build_inference_config(config: BenchmarkConfig, batch_size: int) -> InferenceConfig:
    """ベンチ設定から1ケース分の推論設定を作る.

    quantization_bits 未指定時は量子化しない (32bit) として扱う.

    Args:
        config: ベンチマーク設定.
        batch_size: このケースのバッチサイズ.

    Returns:
        推論設定.
    """
    bits = config.quantization_bits or 32
    return InferenceConfig.from_dict(
        {
            "model_path": config.model_path,
            "use_gpu": config.use_gpu,
            "batch_size": batch_size,
            "cache_enabled": config.cache_enabled,
            "cache_size": config.cache_size,
            "quantization": {"bits": bits, "quantize_weights": bits != 32},
        }
    )


def summarize_times(
    times_ms: Sequence[float],
    batch_size: int,
) -> Dict[str, float]:
    """計測時間列から統計値を計算する.

    Args:
        times_ms: 1イテレーションあたりの所要時間 (ms) の列.
        batch_size: 1イテレーションで処理した件数.

    Returns:
        `avg`, `min`, `max`, `std`, `throughput` を持つ辞書.
    """
    if not times_ms:
        return {"avg": 0.0, "min": 0.0, "max": 0.0, "std": 0.0, "throughput": 0.0}
    values = np.asarray(times_ms, dtype=np.float64)
    avg = float(values.mean())
    return {
        "avg": avg,
        "min": float(values.min()),
        "max": float(values.max()),
        "std": float(values.std()),
        "throughput": batch_size * 1000.0 / avg if avg > 0 else 0.0,
    }


def _memory_delta(before: Optional[float], after: Optional[float]) -> Optional[float]:
    if before is None or after is None:
        return None
    return after - before


async def _benchmark_batch_size(
    engine: InferenceEngine[Any, Any],
    sample_input: Any,
    config: BenchmarkConfig,
    batch_size: int,
) -> BenchmarkResult:
    """1つのバッチサイズを計測する."""
    await engine.initialize()
    batch = [sample_input] * batch_size

    LOGGER.info("ウォームアップ %d 回", config.warmup_iterations)
    for _ in range(config.warmup_iterations):
        await engine.predict_batch(batch)

    memory_before = get_memory_usage_mb()
    gpu_memory_before = get_gpu_memory_usage_mb()

    times_ms: List[float] = []
    for i in range(config.iterations):
        start = time.perf_counter()
        await engine.predict_batch(batch)
        times_ms.append((time.perf_counter() - start) * 1000)
        if (i + 1) % 10 == 0 or i == config.iterations - 1:
            LOGGER.debug("計測 %d/%d 回完了", i + 1, config.iterations)

    memory_after = get_memory_usage_mb()
    gpu_memory_after = get_gpu_memory_usage_mb()

    stats = summarize_times(times_ms, batch_size)
    result = BenchmarkResult(
        batch_size=batch_size,
        avg_time_ms=stats["avg"],
        min_time_ms=stats["min"],
        max_time_ms=stats["max"],
        std_dev_ms=stats["std"],
        throughput_items_per_sec=stats["throughput"],
        memory_usage_mb=memory_after - memory_before,
        gpu_memory_usage_mb=_memory_delta(gpu_memory_before, gpu_memory_after),
        quantization_bits=config.quantization_bits,
        backend_type=engine.device_type,
    )
    LOGGER.info(
        "batch_size=%d avg=%.2fms min=%.2fms max=%.2fms std=%.2fms throughput=%.2f items/s",
        batch_size,
        result.avg_time_ms,
        result.min_time_ms,
        result.max_time_ms,
        result.std_dev_ms,
        result.throughput_items_per_sec,
    )
    return result


async def run_benchmark(
    engine_factory: EngineFactory,
    sample_input: Any,
    config: BenchmarkConfig,
) -> BenchmarkSummary:
    """バッチサイズごとにエンジンを作って計測し, 最良の構成を選ぶ.

    各ケースのエンジンは計測後に必ず dispose() する.

    Args:
        engine_factory: 推論設定からエンジンを生成する関数.
        sample_input: 全ケースで使う入力. バッチはこの入力の複製で構成する.
        config: ベンチマーク設定.

    Returns:
        全ケースの結果と最良構成 (スループット最大) のまとめ.
    """
    LOGGER.info("ベンチマークを開始します: %s", config.model_path)
    results: List[BenchmarkResult] = []

    for batch_size in config.batch_sizes:
        LOGGER.info("batch_size=%d を計測します", batch_size)
        engine = engine_factory(build_inference_config(config, batch_size))
        try:
            results.append(
                await _benchmark_batch_size(engine, sample_input, config, batch_size)
            )
        finally:
            engine.dispose()
            gc.collect()

    best = max(results, key=lambda r: r.throughput_items_per_sec)
    LOGGER.info(
        "最良構成: batch_size=%d throughput=%.2f items/s",
        best.batch_size,
        best.throughput_items_per_sec,
    )
    return BenchmarkSummary(
        model_path=config.model_path,
        iterations=config.iterations,
        warmup_iterations=config.warmup_iterations,
        use_gpu=config.use_gpu,
        best=best,
        results=results,
        timestamp=now_iso_timestamp(),
        device_info=get_device_info(),
    )


def write_benchmark_summary(summary: BenchmarkSummary, output_dir: Path) -> Path:
    """ベンチマークのまとめをJSONで保存する.

    Args:
        summary: 保存するまとめ.
        output_dir: 出力ディレクトリ.

    Returns:
        保存したファイルパス.
    """
    return write_json_file(Path(output_dir) / BENCHMARK_SUMMARY_FILENAME, summary.to_dict())
