"""テスト共通フィクスチャ."""

from typing import Any, Dict, Iterable, List, Optional

import pytest

from optinfer.config import InferenceConfig, SystemTuningConfig
from optinfer.inference import InferenceEngine
from optinfer.logging import LoggerManager


class FakeResource:
    """解放されたことを記録する中間資源."""

    def __init__(self, value: int, released: List["FakeResource"]) -> None:
        self.value = value
        self.disposed = False
        self._released = released

    def dispose(self) -> None:
        self.disposed = True
        self._released.append(self)


class FakeHandle:
    """入力値を2倍して返すモデルハンドル."""

    def __init__(
        self,
        released: List[FakeResource],
        fail_on: Iterable[int] = (),
        device_type: str = "cpu",
    ) -> None:
        self._device_type = device_type
        self._released = released
        self.fail_on = set(fail_on)
        self.run_calls = 0
        self.dispose_calls = 0

    @property
    def device_type(self) -> str:
        return self._device_type

    def run(self, model_input: FakeResource) -> FakeResource:
        self.run_calls += 1
        if model_input.value in self.fail_on:
            raise RuntimeError(f"run failed: {model_input.value}")
        return FakeResource(model_input.value * 2, self._released)

    def dispose(self) -> None:
        self.dispose_calls += 1


class FakeRuntime:
    """指定回数だけ読み込みに失敗するランタイム."""

    def __init__(self, failures: int = 0, run_fail_on: Iterable[int] = ()) -> None:
        self.failures = failures
        self.run_fail_on = set(run_fail_on)
        self.load_calls = 0
        self.last_path: Optional[str] = None
        self.last_options: Optional[Dict[str, Any]] = None
        self.handles: List[FakeHandle] = []
        self.released: List[FakeResource] = []

    def load_model(self, path: str, options: Dict[str, Any]) -> FakeHandle:
        self.load_calls += 1
        self.last_path = path
        self.last_options = dict(options)
        if self.failures > 0:
            self.failures -= 1
            raise FileNotFoundError(f"モデルファイルが見つかりません: {path}")
        handle = FakeHandle(self.released, fail_on=self.run_fail_on)
        self.handles.append(handle)
        return handle

    @property
    def handle(self) -> FakeHandle:
        return self.handles[-1]


class RecordingTuner:
    """torch のグローバル設定を変えずに適用内容だけを記録する."""

    def __init__(self) -> None:
        self.applied: List[SystemTuningConfig] = []

    def apply(self, config: SystemTuningConfig) -> Dict[str, Any]:
        self.applied.append(config)
        return {}


class DoublingEngine(InferenceEngine[int, int]):
    """整数入力を2倍して返すテスト用エンジン."""

    def __init__(
        self,
        config: InferenceConfig,
        runtime: FakeRuntime,
        fail_preprocess: Iterable[int] = (),
        fail_postprocess: Iterable[int] = (),
        sample: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("tuner", RecordingTuner())
        super().__init__(config, runtime, **kwargs)
        self.runtime = runtime
        self.tuner = kwargs["tuner"]
        self.fail_preprocess = set(fail_preprocess)
        self.fail_postprocess = set(fail_postprocess)
        self.sample = sample
        self.preprocess_calls = 0
        self.postprocess_calls = 0

    def warmup_input(self) -> Optional[int]:
        return self.sample

    async def preprocess(self, item: int) -> FakeResource:
        self.preprocess_calls += 1
        if item in self.fail_preprocess:
            raise ValueError(f"bad input: {item}")
        return FakeResource(item, self.runtime.released)

    async def postprocess(self, output: FakeResource) -> int:
        self.postprocess_calls += 1
        if output.value // 2 in self.fail_postprocess:
            raise ValueError(f"bad output: {output.value}")
        return output.value


@pytest.fixture(autouse=True)
def _reset_logger_manager():
    """CLIテストで設定したハンドラーを他のテストへ持ち越さない."""
    yield
    LoggerManager.reset()


@pytest.fixture
def make_config():
    """InferenceConfig を生成するファクトリフィクスチャ.

    Example:
        >>> def test_example(make_config):
        ...     config = make_config(cache_size=2)
    """

    def _make(**overrides: Any) -> InferenceConfig:
        values: Dict[str, Any] = {"model_path": "model.pt", "use_gpu": False}
        values.update(overrides)
        return InferenceConfig.create(**values)

    return _make


@pytest.fixture
def make_runtime():
    """FakeRuntime を生成するファクトリフィクスチャ.

    Example:
        >>> def test_example(make_runtime):
        ...     runtime = make_runtime(failures=1, run_fail_on={3})
    """
    return FakeRuntime


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    """読み込みに成功する FakeRuntime."""
    return FakeRuntime()


@pytest.fixture
def make_engine(make_config, fake_runtime):
    """DoublingEngine を生成するファクトリフィクスチャ.

    InferenceConfig のフィールド名は設定へ, それ以外はエンジンの引数へ渡す.
    """

    def _make(runtime: Optional[FakeRuntime] = None, **kwargs: Any) -> DoublingEngine:
        config_kwargs = {k: v for k, v in kwargs.items() if k in InferenceConfig.model_fields}
        engine_kwargs = {
            k: v for k, v in kwargs.items() if k not in InferenceConfig.model_fields
        }
        return DoublingEngine(
            make_config(**config_kwargs), runtime or fake_runtime, **engine_kwargs
        )

    return _make
