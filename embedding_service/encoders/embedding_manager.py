"""Embedding manager: turns request texts into vectors via the active model.

Texts are processed strictly in input order, one at a time, against the
embedder that was active when the request started. The first failure
aborts the whole batch; no partial results are returned.
"""

import time
from typing import List, Optional, Sequence

import structlog

from libs.common.metrics import MetricsCollector
from ..errors import EmbeddingError, InferenceError, NotLoadedError
from ..runtime.model_cache import ModelCache

logger = structlog.get_logger("embedding_service.embedding_manager")


class EmbeddingManager:
    """Serves embedding requests from the ``ModelCache``."""

    def __init__(self, model_cache: ModelCache, metrics: Optional[MetricsCollector] = None):
        self.model_cache = model_cache
        self.metrics = metrics

    async def get_embeddings(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed every text, index-aligned with ``texts``.

        Raises
        - ``NotLoadedError`` when no model has been preloaded
        - ``InferenceError`` (or another ``EmbeddingError``) on the first
          backend failure, or if vector dimensions differ within the batch
        """
        if not self.model_cache.is_loaded():
            raise NotLoadedError()

        start_time = time.time()
        model_format = "unknown"
        try:
            async with self.model_cache.lease() as embedder:
                model_format = embedder.model_format
                vectors: List[List[float]] = []
                for text in texts:
                    vectors.append(await embedder.embed(text))

            dimensions = {len(vector) for vector in vectors}
            if len(dimensions) > 1:
                raise InferenceError(
                    f"Embedder returned vectors of differing dimensions: {sorted(dimensions)}"
                )
        except EmbeddingError as e:
            if self.metrics is not None:
                self.metrics.record_embedding(model_format, len(texts), 0.0, status="error")
            logger.error(
                "Failed to generate embeddings",
                model_format=model_format,
                count=len(texts),
                error=str(e)
            )
            raise

        duration = time.time() - start_time
        if self.metrics is not None:
            self.metrics.record_embedding(model_format, len(vectors), duration)

        logger.info(
            "Embeddings generated",
            model_format=model_format,
            count=len(vectors),
            dimension=next(iter(dimensions), 0),
            latency_ms=duration * 1000
        )
        return vectors
