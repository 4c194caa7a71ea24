"""推論エンジンのベンチマーク CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from pydantic import ValidationError

from optinfer.benchmark import BenchmarkConfig, run_benchmark, write_benchmark_summary
from optinfer.config import InferenceConfig, format_validation_error
from optinfer.errors import OptInferError
from optinfer.inference import TensorClassifier
from optinfer.logging import LoggerManager, LogLevel
from optinfer.utils import ConfigLoader

LOGGER_NAME = "optinfer.benchmark"
LOGGER = logging.getLogger(LOGGER_NAME)
DEFAULT_OUTPUT_DIR = Path("benchmark_runs")


def configure_logger(debug: bool = False) -> logging.Logger:
    """ベンチマーク用ロガーを初期化して返す.

    Args:
        debug: デバッグログを有効化するかどうか.

    Returns:
        構成済みロガー.
    """
    manager = LoggerManager()
    level = LogLevel.DEBUG if debug else LogLevel.INFO
    manager.set_default_level(level)
    for name in ("optinfer.engine", "optinfer.runtime", "optinfer.cache"):
        manager.get_logger(name, level=level)
    manager.set_logger_level(LOGGER_NAME, level)
    return manager.get_logger(LOGGER_NAME, level=level)


def _parse_int_list(value: str) -> List[int]:
    """`1,8,16` 形式の文字列を整数リストへ変換する."""
    try:
        return [int(v) for v in value.split(",") if v.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"整数のカンマ区切りで指定してください: {value}") from exc


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """CLI 引数を解析する.

    Args:
        argv: 解析対象引数. 省略時は `sys.argv`.

    Returns:
        解析済み引数.
    """
    parser = argparse.ArgumentParser(
        description="TensorClassifier の推論ベンチマーク",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("model_path", nargs="?", default=None, help="モデルファイルパス")
    parser.add_argument("--config", default=None, help="設定ファイル (Python形式)")
    parser.add_argument(
        "--input-shape",
        type=_parse_int_list,
        default=None,
        help="1サンプルの入力形状 (例: 16 または 3,32,32)",
    )
    parser.add_argument("--batch-sizes", type=_parse_int_list, default=None)
    parser.add_argument("--iterations", type=int, default=None)
    parser.add_argument("--warmup-iterations", type=int, default=None)
    parser.add_argument(
        "--bits", type=int, choices=[8, 16, 32], default=None, help="量子化ビット数"
    )
    parser.add_argument("--cpu", action="store_true", help="GPUを使わない")
    parser.add_argument("--cache", action="store_true", help="予測キャッシュを有効化する")
    parser.add_argument(
        "--output", default=None, help="結果JSONの出力ディレクトリ"
    )
    parser.add_argument("--debug", action="store_true", help="デバッグログを有効化する")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """設定ファイルとCLI引数を統合する. CLI引数が優先される.

    Args:
        args: 解析済み引数.

    Returns:
        統合済みの設定辞書.
    """
    settings: Dict[str, Any] = {}
    if args.config:
        settings.update(ConfigLoader.load_config(args.config))

    overrides = {
        "model_path": args.model_path,
        "input_shape": args.input_shape,
        "batch_sizes": args.batch_sizes,
        "iterations": args.iterations,
        "warmup_iterations": args.warmup_iterations,
        "quantization_bits": args.bits,
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})
    if args.cpu:
        settings["use_gpu"] = False
    if args.cache:
        settings["cache_enabled"] = True
    return settings


def main(argv: Optional[Sequence[str]] = None) -> int:
    """エントリポイント.

    Args:
        argv: 解析対象引数. 省略時は `sys.argv`.

    Returns:
        終了コード.
    """
    args = parse_args(argv)
    configure_logger(args.debug)

    try:
        settings = build_settings(args)
    except (FileNotFoundError, RuntimeError) as exc:
        LOGGER.error("設定ファイルの読み込みに失敗しました: %s", exc)
        return 1

    if not settings.get("model_path"):
        LOGGER.error("model_path を引数か設定ファイルで指定してください.")
        return 1
    if not settings.get("input_shape"):
        LOGGER.error("--input-shape を引数か設定ファイルで指定してください.")
        return 1

    try:
        bench_config = BenchmarkConfig.model_validate(
            {k: v for k, v in settings.items() if k in BenchmarkConfig.model_fields}
        )
    except ValidationError as exc:
        LOGGER.error("ベンチマーク設定が不正です: %s", format_validation_error(exc))
        return 1

    input_shape = tuple(settings["input_shape"])
    labels = list(settings.get("labels", []))
    top_k = int(settings.get("top_k", 5))

    def engine_factory(config: InferenceConfig) -> TensorClassifier:
        return TensorClassifier(
            config, labels=labels, top_k=top_k, input_shape=input_shape
        )

    sample_input = np.zeros(input_shape, dtype=np.float32)

    try:
        summary = asyncio.run(run_benchmark(engine_factory, sample_input, bench_config))
    except OptInferError as exc:
        LOGGER.error("ベンチマークに失敗しました: %s", exc)
        return 1

    output_dir = Path(args.output) if args.output else DEFAULT_OUTPUT_DIR
    summary_path = write_benchmark_summary(summary, output_dir)
    LOGGER.info("summary json: %s", summary_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
