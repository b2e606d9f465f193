"""Configuration management for the embedding service.

This module centralizes environment-driven configuration for the service. It
builds on ``pydantic_settings.BaseSettings`` so configuration can be provided
via environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover commonly used environment variables
- Field names map 1:1 onto upper-cased environment variables
  (``ml_log_level`` <- ``ML_LOG_LEVEL``)

Usage
- Inject the config in the service entrypoint: ``config = EmbeddingConfig()``
"""

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by every process in the repo.

    Parameters are read from the process environment with the upper-cased
    field name. Defaults keep local development convenient while still being
    explicit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ml_env: str = Field(default="local")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")


class EmbeddingConfig(BaseConfig):
    """Configuration for the embedding service.

    Covers the HTTP port, where model files live on disk, how they are fetched
    from the remote repository, and backend tuning knobs.
    """

    ml_embedding_port: int = Field(default=9006)
    ml_model_storage_path: str = Field(default="./models")

    # Remote repository
    ml_huggingface_endpoint: str = Field(default="https://huggingface.co/")
    ml_huggingface_api_key: Optional[str] = Field(default=None)
    ml_download_chunk_size: int = Field(default=8192, ge=1)
    ml_download_timeout: float = Field(default=300.0, gt=0)

    # ONNX defaults
    ml_onnx_default_model_id: str = Field(default="onnx-models/all-MiniLM-L6-v2-onnx")
    ml_onnx_default_filename: str = Field(default="model.onnx")
    ml_vocabulary_filename: str = Field(default="vocab.txt")
    ml_max_sequence_length: int = Field(default=256, ge=2)
    ml_onnx_providers: str = Field(default="CPUExecutionProvider")

    # GGUF (llama.cpp) tuning
    ml_gguf_context_length: int = Field(default=2048, ge=1)
    ml_gguf_gpu_layers: int = Field(default=0)
    ml_gguf_pooling_type: Literal["mean", "cls", "last"] = Field(default="mean")

    @field_validator("ml_huggingface_endpoint")
    @classmethod
    def _normalize_endpoint(cls, value: str) -> str:
        if not value.endswith("/"):
            value += "/"
        return value

    @property
    def model_storage_dir(self) -> Path:
        """Directory that relative model and vocabulary paths resolve against."""
        return Path(self.ml_model_storage_path)

    @property
    def onnx_providers(self) -> List[str]:
        """Execution providers handed to onnxruntime, in preference order."""
        return [p.strip() for p in self.ml_onnx_providers.split(",") if p.strip()]

