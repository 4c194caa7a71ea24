"""SystemTuner のテスト."""

import torch

from optinfer.config import SystemTuningConfig
from optinfer.inference import SystemTuner


def test_apply(monkeypatch):
    """スレッド数・cudnn・matmul精度を反映する."""
    calls = {}
    monkeypatch.setattr(torch, "set_num_threads", lambda n: calls.setdefault("threads", n))
    monkeypatch.setattr(
        torch,
        "set_float32_matmul_precision",
        lambda p: calls.setdefault("precision", p),
    )
    monkeypatch.setattr(torch.backends.cudnn, "benchmark", torch.backends.cudnn.benchmark)

    applied = SystemTuner().apply(
        SystemTuningConfig(num_threads=3, cudnn_benchmark=False, matmul_precision="medium")
    )

    assert calls == {"threads": 3, "precision": "medium"}
    assert torch.backends.cudnn.benchmark is False
    assert applied == {
        "num_threads": 3,
        "cudnn_benchmark": False,
        "matmul_precision": "medium",
    }


def test_num_threads_untouched_when_unset(monkeypatch):
    """num_threads 未指定ならスレッド数は変更しない."""
    calls = []
    monkeypatch.setattr(torch, "set_num_threads", calls.append)
    monkeypatch.setattr(torch, "set_float32_matmul_precision", lambda p: None)
    monkeypatch.setattr(torch.backends.cudnn, "benchmark", torch.backends.cudnn.benchmark)

    applied = SystemTuner().apply(SystemTuningConfig())

    assert calls == []
    assert "num_threads" not in applied
