"""Environment-based configuration for mobiclassify."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from MOBICLASSIFY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MOBICLASSIFY_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Assets
    models_dir: str = "models"
    model_name: str = "mobilenet_v2_1.0_224"
    model_path: str | None = None
    labels_path: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading (intra-op threads speed up a single forward pass)
    intra_op_threads: int = Field(default=4, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Pipeline
    input_size: int = Field(default=224, ge=1)
    max_results: int = Field(default=5, ge=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Install the root log handler used by the pipeline."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
