"""PyTorch をモデル実行エンジンとして使うランタイム実装."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import torch
from torch import nn

logger = logging.getLogger("optinfer.runtime")


def resolve_device(use_gpu: bool) -> torch.device:
    """推論デバイスを決定する. GPU要求時もCUDAが無ければCPUへ黙って戻す.

    Args:
        use_gpu: GPUを使いたいかどうか.

    Returns:
        推論に使うデバイス.
    """
    if use_gpu and torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


def _load_module(path: Path, device: torch.device) -> nn.Module:
    """TorchScript アーカイブまたは pickle 化された nn.Module を読み込む."""
    try:
        module: nn.Module = torch.jit.load(str(path), map_location=device)
        return module
    except RuntimeError:
        # TorchScript でなければ通常の torch.save 形式として扱う
        logger.debug("TorchScriptとして読み込めないため torch.load を使用: %s", path)

    loaded = torch.load(path, map_location=device, weights_only=False)
    if not isinstance(loaded, nn.Module):
        raise TypeError(
            f"nn.Module ではないオブジェクトが保存されています: {type(loaded).__name__}"
        )
    return loaded


def apply_precision(
    module: nn.Module, bits: int, device: torch.device
) -> tuple[nn.Module, Optional[torch.dtype]]:
    """要求された数値精度をモデルへ適用する.

    - 8bit: CPU上で nn.Linear を動的量子化する (CUDAでは未対応のため据え置き).
    - 16bit: CUDAでは float16, CPUでは bfloat16 へ変換する.
    - 32bit: 変換しない.

    Args:
        module: 対象モデル.
        bits: 要求ビット数.
        device: 推論デバイス.

    Returns:
        (変換後モデル, 入力に合わせるべき dtype). dtype が None なら入力はそのまま.
    """
    if bits == 8:
        if device.type != "cpu":
            logger.warning("8bit動的量子化はCPUのみ対応のため32bitで実行します")
            return module, None
        if isinstance(module, torch.jit.ScriptModule):
            logger.warning("TorchScriptモデルは動的量子化できないため32bitで実行します")
            return module, None
        quantized = torch.ao.quantization.quantize_dynamic(
            module, {nn.Linear}, dtype=torch.qint8
        )
        return quantized, None
    if bits == 16:
        dtype = torch.float16 if device.type == "cuda" else torch.bfloat16
        return module.to(dtype=dtype), dtype
    return module, None


class TorchModelHandle:
    """読み込み済み PyTorch モデルのハンドル."""

    def __init__(
        self,
        module: nn.Module,
        device: torch.device,
        input_dtype: Optional[torch.dtype] = None,
    ) -> None:
        """ハンドルを初期化する.

        Args:
            module: 推論モードに設定済みのモデル.
            device: 推論デバイス.
            input_dtype: 浮動小数入力を変換する dtype. None なら変換しない.
        """
        self.module: Optional[nn.Module] = module
        self.device = device
        self.input_dtype = input_dtype

    @property
    def device_type(self) -> str:
        """推論デバイス種別."""
        return self.device.type

    def to_device(self, tensor: torch.Tensor) -> torch.Tensor:
        """入力テンソルを推論デバイスと dtype に合わせる."""
        tensor = tensor.to(self.device)
        if self.input_dtype is not None and tensor.is_floating_point():
            tensor = tensor.to(self.input_dtype)
        return tensor

    def run(self, model_input: Any) -> Any:
        """モデルを1回実行する.

        Args:
            model_input: テンソル, またはテンソルのタプル/リスト.

        Returns:
            モデル出力.

        Raises:
            RuntimeError: dispose 済みの場合.
        """
        if self.module is None:
            raise RuntimeError("モデルは既に解放されています")
        with torch.inference_mode():
            if isinstance(model_input, (tuple, list)):
                return self.module(*model_input)
            return self.module(model_input)

    def dispose(self) -> None:
        """モデルへの参照を破棄し, CUDAキャッシュを解放する."""
        if self.module is None:
            return
        self.module = None
        if self.device.type == "cuda":
            torch.cuda.empty_cache()


class TorchModelRuntime:
    """PyTorch モデルを読み込む実行エンジン."""

    def load_model(self, path: str, options: Dict[str, Any]) -> TorchModelHandle:
        """モデルを読み込み, デバイスと精度を設定したハンドルを返す.

        Args:
            path: モデルファイルのパス.
            options: `use_gpu` と `quantization_bits` を参照する.

        Returns:
            推論モードのモデルハンドル.

        Raises:
            FileNotFoundError: モデルファイルが存在しない場合.
        """
        model_path = Path(path)
        if not model_path.exists():
            raise FileNotFoundError(f"モデルファイルが見つかりません: {model_path}")

        device = resolve_device(bool(options.get("use_gpu", True)))
        module = _load_module(model_path, device)
        module.eval()
        module, input_dtype = apply_precision(
            module, int(options.get("quantization_bits", 32)), device
        )
        logger.info(
            "モデルを読み込みました: %s (device=%s, bits=%s)",
            model_path,
            device.type,
            options.get("quantization_bits", 32),
        )
        return TorchModelHandle(module, device, input_dtype)
