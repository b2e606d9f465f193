"""Embedders and the request-level embedding manager.

Exports the ``Embedder`` capability and the ``EmbeddingManager``. Backend
implementations live in ``onnx_embedder`` and ``llama_embedder``; import
them directly so unrelated paths do not pay for heavy ML imports.
"""

from .base import Embedder
from .embedding_manager import EmbeddingManager

__all__ = ["Embedder", "EmbeddingManager"]
