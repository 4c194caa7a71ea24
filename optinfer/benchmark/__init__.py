"""optinfer.benchmark: 推論エンジンのベンチマーク."""

from .runner import (
    build_inference_config,
    run_benchmark,
    summarize_times,
    write_benchmark_summary,
)
from .types import (
    BENCHMARK_SUMMARY_FILENAME,
    BenchmarkConfig,
    BenchmarkResult,
    BenchmarkSummary,
)

__all__ = [
    "BENCHMARK_SUMMARY_FILENAME",
    "BenchmarkConfig",
    "BenchmarkResult",
    "BenchmarkSummary",
    "build_inference_config",
    "run_benchmark",
    "summarize_times",
    "write_benchmark_summary",
]
