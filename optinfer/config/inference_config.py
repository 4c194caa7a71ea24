"""optinfer.config.inference_config: 推論エンジンの型付き設定."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from optinfer.errors import ConfigurationError

from .sub_configs import QuantizationConfig, SystemTuningConfig

DEFAULT_BATCH_SIZE = 16
DEFAULT_CACHE_SIZE = 100


def format_validation_error(error: ValidationError) -> str:
    """ValidationError を1行の読みやすい文字列へ整形する.

    Args:
        error: pydantic の検証エラー.

    Returns:
        `field: message` をセミコロンで連結した文字列.
    """
    parts = []
    for detail in error.errors():
        location = ".".join(str(loc) for loc in detail["loc"]) or "<root>"
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)


class InferenceConfig(BaseModel):
    """推論エンジンの設定."""

    model_config = ConfigDict(frozen=True)

    # Required
    model_path: str

    use_gpu: bool = True
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    cache_size: int = Field(default=DEFAULT_CACHE_SIZE, gt=0)
    cache_enabled: bool = True
    quantization: QuantizationConfig = Field(default_factory=QuantizationConfig)
    optimize_system: bool = True
    system: SystemTuningConfig = Field(default_factory=SystemTuningConfig)
    warmup_repeats: int = Field(default=1, ge=0)

    @field_validator("model_path", mode="before")
    @classmethod
    def model_path_must_not_be_empty(cls, v: Any) -> Any:
        """モデルパスが空文字でないことを検証する."""
        if v is None or (isinstance(v, str) and v.strip() == ""):
            raise ValueError("model_path は必須です")
        return str(v)

    def __init__(self, **data: Any) -> None:
        """キーワード引数から直接生成する.

        Raises:
            ConfigurationError: 値が不正な場合.
        """
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"推論設定が不正です: {format_validation_error(exc)}"
            ) from exc

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "InferenceConfig":
        """Dict から InferenceConfig を生成する.

        Args:
            config: 設定辞書. 未知のキーは無視する.

        Returns:
            検証済みの設定.

        Raises:
            ConfigurationError: 値が不正な場合.
        """
        payload = {k: v for k, v in config.items() if k in cls.model_fields}
        try:
            payload["quantization"] = QuantizationConfig.from_dict(
                payload.get("quantization")
            )
            payload["system"] = SystemTuningConfig.from_dict(payload.get("system"))
            result: InferenceConfig = cls.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(
                f"推論設定が不正です: {format_validation_error(exc)}"
            ) from exc
        return result

    @classmethod
    def create(cls, **kwargs: Any) -> "InferenceConfig":
        """キーワード引数から設定を生成する (ConfigurationError に統一)."""
        return cls.from_dict(kwargs)

    def to_runtime_options(self) -> Dict[str, Any]:
        """実行エンジンへ素通しするオプションを返す.

        Returns:
            `use_gpu`, `quantization_bits` などを含む辞書.
        """
        return {
            "use_gpu": self.use_gpu,
            "quantization_bits": self.quantization.bits,
            "quantize_weights": self.quantization.quantize_weights,
            "quantize_activations": self.quantization.quantize_activations,
            "batch_size": self.batch_size,
        }
