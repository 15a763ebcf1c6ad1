"""
Configuration loader for the U2-Net background-removal service.

Environment variables are centralized here to keep the rest of the code
focused on business logic and to make operational tuning clear.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from pydantic import Field, validator
from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class Normalization:
    """Per-channel statistics applied as `(v / 255 - mean) / std`."""

    mean: Tuple[float, float, float]
    std: Tuple[float, float, float]


IMAGENET = Normalization(mean=(0.485, 0.456, 0.406), std=(0.229, 0.224, 0.225))

MODEL_PROFILES = {
    "u2net": IMAGENET,
    "u2netp": IMAGENET,
    "u2net_human_seg": IMAGENET,
    "silueta": IMAGENET,
    # Centers inputs to [-1, 1].
    "modnet": Normalization(mean=(0.5, 0.5, 0.5), std=(0.5, 0.5, 0.5)),
}


class Settings(BaseSettings):
    # Model + preprocessing
    u2net_model_path: Path = Field(Path("models/u2net.onnx"), env="U2NET_MODEL_PATH")
    u2net_model_variant: str = Field("u2net", env="U2NET_MODEL_VARIANT")
    u2net_norm_mean: Optional[Tuple[float, float, float]] = Field(None, env="U2NET_NORM_MEAN")
    u2net_norm_std: Optional[Tuple[float, float, float]] = Field(None, env="U2NET_NORM_STD")
    u2net_input_size: int = Field(320, env="U2NET_INPUT_SIZE")
    u2net_inference_threads: int = Field(4, env="U2NET_INFERENCE_THREADS")
    serialize_inference: bool = Field(False, env="SERIALIZE_INFERENCE")

    # Removal defaults
    default_threshold: float = Field(0.5, env="DEFAULT_THRESHOLD")
    default_binary: bool = Field(False, env="DEFAULT_BINARY")

    # Cloudflare R2 / S3-compatible storage
    r2_endpoint: Optional[str] = Field(None, env="R2_ENDPOINT")
    r2_access_key_id: Optional[str] = Field(None, env="R2_ACCESS_KEY_ID")
    r2_secret_access_key: Optional[str] = Field(None, env="R2_SECRET_ACCESS_KEY")
    r2_bucket_name: Optional[str] = Field(None, env="R2_BUCKET_NAME")
    r2_public_base_url: Optional[str] = Field(None, env="R2_PUBLIC_BASE_URL")

    # API
    request_timeout_seconds: int = Field(30, env="REQUEST_TIMEOUT_SECONDS")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    # Debugging
    debug: bool = Field(False, env="DEBUG")
    debug_output_dir: Path = Field(Path("/tmp/u2net_debug"), env="DEBUG_OUTPUT_DIR")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @validator("u2net_model_variant")
    def validate_model_variant(cls, v: str) -> str:  # noqa: B902
        v = v.lower()
        if v != "custom" and v not in MODEL_PROFILES:
            choices = "|".join(sorted(MODEL_PROFILES)) + "|custom"
            raise ValueError(f"U2NET_MODEL_VARIANT must be one of {choices}")
        return v

    @validator("u2net_norm_std")
    def validate_norm_std(cls, v):  # noqa: B902
        if v is not None and any(s <= 0 for s in v):
            raise ValueError("U2NET_NORM_STD values must be strictly positive")
        return v

    @validator("u2net_input_size")
    def validate_input_size(cls, v: int) -> int:  # noqa: B902
        if v <= 0:
            raise ValueError("U2NET_INPUT_SIZE must be positive")
        return v

    @validator("default_threshold")
    def validate_default_threshold(cls, v: float) -> float:  # noqa: B902
        if not 0.0 <= v <= 1.0:
            raise ValueError("DEFAULT_THRESHOLD must be within [0, 1]")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def resolve_normalization(settings: Optional[Settings] = None) -> Normalization:
    """
    Pick the normalization statistics for the configured model variant.

    `custom` requires both U2NET_NORM_MEAN and U2NET_NORM_STD.
    """
    settings = settings or get_settings()
    if settings.u2net_model_variant == "custom":
        if settings.u2net_norm_mean is None or settings.u2net_norm_std is None:
            raise ValueError("custom model variant requires U2NET_NORM_MEAN and U2NET_NORM_STD")
        return Normalization(
            mean=tuple(float(m) for m in settings.u2net_norm_mean),
            std=tuple(float(s) for s in settings.u2net_norm_std),
        )
    return MODEL_PROFILES[settings.u2net_model_variant]
