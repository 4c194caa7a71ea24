"""
optinfer.inference.engine: 推論エンジンのメインモジュール.

前処理 → モデル実行 → 後処理 の3ステージを, 上限付きキャッシュと
チャンク単位のバッチ実行で包むファサードを提供します.
サブクラスは preprocess / postprocess (必要なら run_model) を実装します.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from optinfer.batching import run_batched
from optinfer.cache import KeySerializer, PredictionCache, serialize_key
from optinfer.config import InferenceConfig, SystemTuningConfig
from optinfer.errors import (
    BatchError,
    ConfigurationError,
    EngineDisposedError,
    ExecutionError,
    ModelLoadError,
    PostprocessError,
    PreprocessError,
    StageError,
    UninitializedError,
)
from optinfer.monitoring import PerformanceMonitor

from .runtime import IModelHandle, IModelRuntime, ResourceScope
from .system_tuning import SystemTuner
from .torch_runtime import TorchModelRuntime
from .types import EngineState, InferenceMetrics, InferenceResult

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

logger = logging.getLogger("optinfer.engine")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class InferenceEngine(ABC, Generic[InputT, OutputT]):
    """
    キャッシュとバッチ実行を備えた推論エンジンの基底クラス.

    ライフサイクルは UNINITIALIZED → INITIALIZING → READY → DISPOSED.
    initialize() が失敗した場合は UNINITIALIZED に戻り, 再試行できる.
    DISPOSED は終端状態で, dispose() の再呼び出しのみ許可される.

    Args:
        config (InferenceConfig): 推論設定
        runtime (IModelRuntime, optional): モデル実行エンジン. 省略時は PyTorch
        serializer (KeySerializer, optional): 入力からキャッシュキーを作る関数
        monitor (PerformanceMonitor, optional): 計算した推論の計測値の記録先
        tuner (SystemTuner, optional): システムチューニングの適用役
    """

    def __init__(
        self,
        config: InferenceConfig,
        runtime: Optional[IModelRuntime] = None,
        *,
        serializer: KeySerializer = serialize_key,
        monitor: Optional[PerformanceMonitor] = None,
        tuner: Optional[SystemTuner] = None,
    ) -> None:
        """推論エンジンを初期化 (モデルはまだ読み込まない)."""
        if not isinstance(config, InferenceConfig):
            raise ConfigurationError(
                f"config は InferenceConfig である必要があります: {type(config).__name__}"
            )
        self.config = config
        self.monitor = monitor
        self._runtime: IModelRuntime = runtime or TorchModelRuntime()
        self._tuner = tuner or SystemTuner()
        self._cache: PredictionCache[InputT, InferenceResult[OutputT]] = (
            PredictionCache(config.cache_size, serializer)
        )
        self._handle: Optional[IModelHandle] = None
        self._state = EngineState.UNINITIALIZED
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # サブクラスが実装するフック
    # ------------------------------------------------------------------

    @abstractmethod
    async def preprocess(self, item: InputT) -> Any:
        """入力をモデル入力へ変換する."""

    async def run_model(self, model_input: Any) -> Any:
        """モデルを実行する. 既定ではハンドルへ委譲する."""
        return self.handle.run(model_input)

    @abstractmethod
    async def postprocess(self, output: Any) -> OutputT:
        """モデル出力を結果へ変換する.

        output と preprocess の戻り値はこのメソッドが返った直後に解放される
        (dispose/close を持つ場合). 戻り値はキャッシュされ呼び出し側へ渡るため,
        output そのものや output が保持するリソースを返してはならない.
        テンソルなら値を取り出した Python オブジェクトや複製を返すこと.
        """

    def warmup_input(self) -> Optional[InputT]:
        """ウォームアップに使うサンプル入力. None ならウォームアップしない."""
        return None

    # ------------------------------------------------------------------
    # 状態
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        """現在のライフサイクル状態."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """推論可能な状態かどうか."""
        return self._state is EngineState.READY

    @property
    def cache(self) -> PredictionCache[InputT, InferenceResult[OutputT]]:
        """予測キャッシュ."""
        return self._cache

    @property
    def handle(self) -> IModelHandle:
        """読み込み済みモデルのハンドル.

        Raises:
            UninitializedError: モデルが読み込まれていない場合.
        """
        if self._handle is None:
            raise UninitializedError("モデルが読み込まれていません")
        return self._handle

    @property
    def device_type(self) -> str:
        """推論デバイス種別. 未初期化時は "unknown"."""
        if self._handle is None:
            return "unknown"
        return self._handle.device_type

    def _ensure_ready(self) -> None:
        if self._state is EngineState.DISPOSED:
            raise EngineDisposedError("推論エンジンは既に破棄されています")
        if self._state is not EngineState.READY:
            raise UninitializedError(
                "推論エンジンが初期化されていません. initialize() を先に呼んでください"
            )

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------

    async def initialize(self, tuning: Optional[SystemTuningConfig] = None) -> bool:
        """モデルを読み込んで推論可能な状態にする.

        Args:
            tuning: 適用するシステムチューニング. 省略時は
                config.optimize_system が True なら config.system を使う.

        Returns:
            成功時 True. READY で再度呼んだ場合も True.

        Raises:
            EngineDisposedError: dispose() 済みの場合.
            ModelLoadError: 読み込みまたはウォームアップに失敗した場合.
        """
        async with self._init_lock:
            if self._state is EngineState.DISPOSED:
                raise EngineDisposedError("破棄済みのエンジンは初期化できません")
            if self._state is EngineState.READY:
                return True

            self._state = EngineState.INITIALIZING
            logger.info("推論エンジンを初期化します: %s", self.config.model_path)

            try:
                if tuning is not None:
                    self._tuner.apply(tuning)
                elif self.config.optimize_system:
                    self._tuner.apply(self.config.system)
                handle = self._runtime.load_model(
                    self.config.model_path, self.config.to_runtime_options()
                )
            except Exception as exc:
                self._state = EngineState.UNINITIALIZED
                logger.error("モデルの読み込みに失敗しました: %s", exc)
                raise ModelLoadError(self.config.model_path, str(exc)) from exc

            self._handle = handle
            try:
                await self._warmup()
            except Exception as exc:
                if self._handle is handle:
                    self._handle = None
                    handle.dispose()
                if self._state is EngineState.DISPOSED:
                    raise EngineDisposedError("初期化中にエンジンが破棄されました") from exc
                self._state = EngineState.UNINITIALIZED
                logger.error("ウォームアップに失敗しました: %s", exc)
                raise ModelLoadError(
                    self.config.model_path, f"warmup failed: {exc}"
                ) from exc

            if self._state is EngineState.DISPOSED:
                # 初期化中に dispose() された. ハンドルは dispose() 側で解放済み
                raise EngineDisposedError("初期化中にエンジンが破棄されました")

            self._state = EngineState.READY
            logger.info("推論エンジンを初期化しました (device=%s)", handle.device_type)
            return True

    async def _warmup(self) -> None:
        """サンプル入力で全ステージを実行する. 結果はキャッシュしない."""
        sample = self.warmup_input()
        if sample is None or self.config.warmup_repeats <= 0:
            return
        logger.debug("ウォームアップ: %d 回", self.config.warmup_repeats)
        for _ in range(self.config.warmup_repeats):
            await self._compute(sample, record=False)

    def dispose(self) -> None:
        """モデルを解放してキャッシュを空にする. 以後の操作は不可.

        どの状態からでも呼べる. 2回目以降は何もしない.
        """
        if self._state is EngineState.DISPOSED:
            return

        handle = self._handle
        self._handle = None
        self._state = EngineState.DISPOSED
        self._cache.clear()
        if handle is not None:
            handle.dispose()
        logger.info("推論エンジンを破棄しました")

    async def __aenter__(self) -> "InferenceEngine[InputT, OutputT]":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # 推論
    # ------------------------------------------------------------------

    async def predict(self, item: InputT) -> InferenceResult[OutputT]:
        """1件の入力を推論する.

        同じ入力の結果がキャッシュにあれば各ステージを実行せずに返す.
        その場合の計測値は cached=True で, ステージ時間は None.

        Args:
            item: 推論入力.

        Returns:
            推論結果と計測値.

        Raises:
            UninitializedError: 初期化前の場合.
            EngineDisposedError: 破棄済みの場合.
            PreprocessError: 前処理の失敗.
            ExecutionError: モデル実行の失敗.
            PostprocessError: 後処理の失敗.
        """
        self._ensure_ready()

        if not self.config.cache_enabled:
            return await self._compute(item)

        start = time.perf_counter()
        computed = False

        async def compute(value: InputT) -> InferenceResult[OutputT]:
            nonlocal computed
            result = await self._compute(value)
            computed = True
            return result

        result = await self._cache.get_or_compute(item, compute)
        if computed:
            return result

        logger.debug("キャッシュから結果を返します")
        return InferenceResult(
            result=result.result,
            metrics=result.metrics.as_cached(_elapsed_ms(start)),
        )

    async def _compute(self, item: InputT, record: bool = True) -> InferenceResult[OutputT]:
        """3ステージを計測しながら実行する."""
        handle = self.handle
        start = time.perf_counter()

        with ResourceScope() as scope:
            stage_start = time.perf_counter()
            try:
                model_input = scope.track(await self.preprocess(item))
            except Exception as exc:
                raise self._stage_error(PreprocessError, exc) from exc
            preprocessing_ms = _elapsed_ms(stage_start)

            stage_start = time.perf_counter()
            try:
                output = scope.track(await self.run_model(model_input))
            except Exception as exc:
                raise self._stage_error(ExecutionError, exc) from exc
            inference_ms = _elapsed_ms(stage_start)

            stage_start = time.perf_counter()
            try:
                result = await self.postprocess(output)
            except Exception as exc:
                raise self._stage_error(PostprocessError, exc) from exc
            postprocessing_ms = _elapsed_ms(stage_start)

        stage_sum = preprocessing_ms + inference_ms + postprocessing_ms
        metrics = InferenceMetrics(
            total_time_ms=max(_elapsed_ms(start), stage_sum),
            batch_size=1,
            device_type=handle.device_type,
            preprocessing_time_ms=preprocessing_ms,
            inference_time_ms=inference_ms,
            postprocessing_time_ms=postprocessing_ms,
        )
        if record and self.monitor is not None:
            self.monitor.record_metrics(metrics)
        return InferenceResult(result=result, metrics=metrics)

    @staticmethod
    def _stage_error(error_cls: Type[StageError], exc: Exception) -> StageError:
        """ステージ内の例外を対応する StageError へ変換してログに残す."""
        logger.error("%s に失敗しました: %s: %s", error_cls.stage, type(exc).__name__, exc)
        return error_cls(f"{type(exc).__name__}: {exc}")

    async def predict_batch(self, items: Sequence[InputT]) -> List[InferenceResult[OutputT]]:
        """複数入力を config.batch_size 件ずつのチャンクで推論する.

        チャンクは逐次実行し, 各入力は predict() を通る (キャッシュも有効).

        Args:
            items: 推論入力のリスト.

        Returns:
            入力と同じ順序の推論結果リスト.

        Raises:
            UninitializedError: 初期化前の場合.
            EngineDisposedError: 破棄済みの場合.
            BatchError: いずれかの入力が失敗した場合. 部分結果は返さない.
        """
        self._ensure_ready()

        chunk_index = 0
        offset = 0

        async def worker(chunk: List[InputT]) -> List[InferenceResult[OutputT]]:
            nonlocal chunk_index, offset
            results: List[InferenceResult[OutputT]] = []
            for position, item in enumerate(chunk):
                try:
                    results.append(await self.predict(item))
                except Exception as exc:
                    logger.error(
                        "バッチ推論が失敗しました: chunk=%d item=%d",
                        chunk_index,
                        offset + position,
                    )
                    raise BatchError(
                        str(exc), chunk_index=chunk_index, item_index=offset + position
                    ) from exc
            chunk_index += 1
            offset += len(chunk)
            return results

        return await run_batched(items, self.config.batch_size, worker)
