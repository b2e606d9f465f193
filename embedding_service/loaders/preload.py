"""Preload orchestration: descriptor -> local files -> embedder -> cache.

A preload resolves the model (and, for ONNX, vocabulary) files on local
disk, downloading whatever is missing, constructs the matching embedder and
installs it into the ``ModelCache``. The cache is touched only after the
embedder has been fully constructed, so a failed preload leaves the
previously active model in place.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

import structlog

from libs.common.config import EmbeddingConfig
from libs.common.metrics import MetricsCollector
from ..clients.huggingface import HuggingFaceClient
from ..encoders.base import Embedder
from ..errors import (
    DownloadError,
    ModelLoadError,
    PreloadError,
    UnsupportedFormatError,
    VocabularyError,
)
from ..runtime.model_cache import LoadedModelInfo, ModelCache

logger = structlog.get_logger("embedding_service.preload")


class ModelFormat(str, Enum):
    """Recognized model formats."""
    GGUF = "gguf"
    ONNX = "onnx"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ModelFormat":
        """Case-insensitive lookup; ``UnsupportedFormatError`` otherwise."""
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        supported = ", ".join(member.value for member in cls)
        raise UnsupportedFormatError(
            f"Invalid model format {value!r}. Supported formats: {supported}."
        )


@dataclass
class ModelDescriptor:
    """Identifies a model to preload. Consumed once."""
    model_id: Optional[str] = None
    model_format: Optional[str] = None
    source_filename: Optional[str] = None
    output_filename: Optional[str] = None
    vocabulary_path: Optional[str] = None
    api_key: Optional[str] = None


@dataclass
class ResolvedFiles:
    """Local paths a loader builds an embedder from."""
    model_path: Path
    vocabulary_path: Optional[Path] = None


ClientFactory = Callable[[Optional[str]], HuggingFaceClient]
Loader = Callable[[ResolvedFiles], Embedder]


class PreloadOrchestrator:
    """Loads models described by a ``ModelDescriptor`` into a ``ModelCache``."""

    def __init__(
        self,
        config: EmbeddingConfig,
        model_cache: ModelCache,
        client_factory: Optional[ClientFactory] = None,
        loaders: Optional[Dict[ModelFormat, Loader]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Create an orchestrator.

        Parameters
        - config: ``EmbeddingConfig`` with storage path and download defaults
        - model_cache: Cache the loaded embedder is installed into
        - client_factory: Builds a download client for an optional API key
        - loaders: Per-format embedder constructors (blocking; run in a worker
          thread); defaults to the onnxruntime and llama.cpp loaders
        - metrics: Optional collector for preload/download metrics
        """
        self.config = config
        self.model_cache = model_cache
        self.metrics = metrics
        self.client_factory = client_factory or self._default_client
        self.supported_formats: Dict[ModelFormat, Loader] = {
            ModelFormat.GGUF: self._load_gguf,
            ModelFormat.ONNX: self._load_onnx,
        }
        if loaders:
            self.supported_formats.update(loaders)

    def _default_client(self, api_key: Optional[str]) -> HuggingFaceClient:
        return HuggingFaceClient(
            api_key=api_key,
            endpoint=self.config.ml_huggingface_endpoint,
            chunk_size=self.config.ml_download_chunk_size,
            timeout=self.config.ml_download_timeout,
            on_bytes_written=self.metrics.record_download if self.metrics else None,
        )

    async def preload(self, descriptor: ModelDescriptor) -> LoadedModelInfo:
        """Resolve, load and install the model described by ``descriptor``.

        Raises a ``PreloadError`` subclass on failure; the cache is unchanged
        in that case.
        """
        # fixed label for tags that fail to parse
        format_label = "unsupported"
        start_time = time.time()
        try:
            model_format = ModelFormat.parse(descriptor.model_format)
            format_label = model_format.value

            logger.info(
                "Preload requested",
                model_id=descriptor.model_id,
                model_format=format_label
            )

            files = await self._resolve_files(model_format, descriptor)
            embedder = await self._build_embedder(model_format, files)

            info = LoadedModelInfo(
                model_format=format_label,
                model_id=self._model_id(model_format, descriptor),
                model_path=str(files.model_path),
                vocabulary_path=str(files.vocabulary_path) if files.vocabulary_path else None,
            )
            await self.model_cache.install(embedder, info)
        except PreloadError as e:
            if self.metrics is not None:
                self.metrics.record_preload(format_label, type(e).__name__)
            logger.error(
                "Preload failed",
                model_id=descriptor.model_id,
                model_format=format_label,
                error_type=type(e).__name__,
                error=str(e)
            )
            raise

        if self.metrics is not None:
            self.metrics.record_preload(format_label, "success")
        logger.info(
            "Model preloaded",
            model_id=info.model_id,
            model_format=format_label,
            model_path=info.model_path,
            duration_ms=(time.time() - start_time) * 1000
        )
        return info

    def _model_id(self, model_format: ModelFormat, descriptor: ModelDescriptor) -> Optional[str]:
        if model_format == ModelFormat.ONNX:
            return descriptor.model_id or self.config.ml_onnx_default_model_id
        return descriptor.model_id

    def _local_path(self, filename: str) -> Path:
        path = Path(filename)
        if not path.is_absolute():
            path = self.config.model_storage_dir / path
        return path

    async def _resolve_files(
        self,
        model_format: ModelFormat,
        descriptor: ModelDescriptor,
    ) -> ResolvedFiles:
        api_key = descriptor.api_key or self.config.ml_huggingface_api_key
        model_id = self._model_id(model_format, descriptor)

        if model_format == ModelFormat.ONNX:
            source_filename = descriptor.source_filename or self.config.ml_onnx_default_filename
            model_path = self._local_path(descriptor.output_filename or source_filename)
            vocabulary_path = self._local_path(
                descriptor.vocabulary_path or self.config.ml_vocabulary_filename
            )
            await self._ensure_file(model_id, source_filename, model_path, api_key, "model")
            await self._ensure_file(
                model_id,
                self.config.ml_vocabulary_filename,
                vocabulary_path,
                api_key,
                "vocabulary",
            )
            return ResolvedFiles(model_path=model_path, vocabulary_path=vocabulary_path)

        local_name = descriptor.output_filename or descriptor.source_filename
        if not local_name:
            raise DownloadError("OutputFilename or SourceFilename is required for gguf models")
        model_path = self._local_path(local_name)
        await self._ensure_file(model_id, descriptor.source_filename, model_path, api_key, "model")
        return ResolvedFiles(model_path=model_path)

    async def _ensure_file(
        self,
        model_id: Optional[str],
        remote_filename: Optional[str],
        local_path: Path,
        api_key: Optional[str],
        kind: str,
    ) -> None:
        """Download ``remote_filename`` to ``local_path`` unless already present."""
        if local_path.exists():
            logger.debug("Using local file", kind=kind, path=str(local_path))
            return
        if not model_id or not remote_filename:
            raise DownloadError(
                f"{kind.capitalize()} file '{local_path}' is missing and ModelId/SourceFilename "
                f"are required to download it"
            )

        logger.info(
            "Downloading file",
            kind=kind,
            model_id=model_id,
            remote_filename=remote_filename,
            path=str(local_path)
        )
        client = self.client_factory(api_key)
        try:
            success = await client.download_file(model_id, remote_filename, local_path)
        except ValueError as e:
            raise DownloadError(f"Failed to download {kind} file: {e}") from e
        if not success:
            raise DownloadError(f"Failed to download {kind} file '{remote_filename}' from {model_id}.")

    async def _build_embedder(self, model_format: ModelFormat, files: ResolvedFiles) -> Embedder:
        loader = self.supported_formats[model_format]
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, loader, files)
        except VocabularyError:
            raise
        except Exception as e:
            raise ModelLoadError(f"Error loading {model_format.value} model: {e}") from e

    def _load_gguf(self, files: ResolvedFiles) -> Embedder:
        from ..encoders.llama_embedder import LlamaEmbedder

        return LlamaEmbedder.from_file(
            files.model_path,
            n_ctx=self.config.ml_gguf_context_length,
            n_gpu_layers=self.config.ml_gguf_gpu_layers,
            pooling=self.config.ml_gguf_pooling_type,
        )

    def _load_onnx(self, files: ResolvedFiles) -> Embedder:
        from ..encoders.onnx_embedder import OnnxEmbedder

        return OnnxEmbedder.from_files(
            files.model_path,
            files.vocabulary_path,
            max_length=self.config.ml_max_sequence_length,
            providers=self.config.onnx_providers,
        )
