"""Base embedder interface.

Defines the single capability the service depends on, independent of the
backend (llama.cpp weights, onnxruntime graph, ...).

Backends are blocking and not reentrant on a single loaded instance, so
``embed`` runs the backend call in the default executor while holding a
per-instance lock: one inference at a time per loaded model.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List

import structlog

from ..errors import EmbeddingServiceError, InferenceError

logger = structlog.get_logger("embedding_service.embedder")


class Embedder(ABC):
    """Turns a text into a float vector."""

    model_format: str = "unknown"

    def __init__(self):
        self._inference_lock = asyncio.Lock()
        self._closed = False

    async def embed(self, text: str) -> List[float]:
        """Embed ``text``.

        Backend failures surface as ``InferenceError``; service errors raised
        by the backend adapter (e.g. ``VocabularyError``) pass through as-is.
        """
        async with self._inference_lock:
            if self._closed:
                raise InferenceError(f"{type(self).__name__} has been released")
            loop = asyncio.get_running_loop()
            try:
                return await loop.run_in_executor(None, self.embed_sync, text)
            except EmbeddingServiceError:
                raise
            except Exception as e:
                logger.error(
                    "Inference failed",
                    model_format=self.model_format,
                    error=str(e)
                )
                raise InferenceError(f"Inference failed: {e}") from e

    @abstractmethod
    def embed_sync(self, text: str) -> List[float]:
        """Blocking backend call; must not be invoked concurrently."""
        pass

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.info("Embedder released", model_format=self.model_format)

    def _release(self) -> None:
        """Hook for backends that hold native resources."""
        pass
