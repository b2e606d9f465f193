"""Native-weights (GGUF) embedder backed by llama.cpp.

Tokenization and inference both happen inside llama.cpp; this adapter only
fits it into the ``Embedder`` capability.
"""

from pathlib import Path
from typing import Any, List, Union

import numpy as np
import structlog

from .base import Embedder

logger = structlog.get_logger("embedding_service.llama_embedder")

POOLING_TYPES = ("mean", "cls", "last")


class LlamaEmbedder(Embedder):
    """Wraps a ``llama_cpp.Llama`` instance created with ``embedding=True``."""

    model_format = "gguf"

    def __init__(self, model: Any):
        super().__init__()
        self.model = model

    @classmethod
    def from_file(
        cls,
        model_path: Union[str, Path],
        n_ctx: int = 2048,
        n_gpu_layers: int = 0,
        pooling: str = "mean",
    ) -> "LlamaEmbedder":
        """Load GGUF weights in embedding mode.

        ``pooling`` is forced rather than left to the weights' metadata:
        decoder-style GGUFs declare no pooling, and llama.cpp would then
        return one row per token.
        """
        if pooling not in POOLING_TYPES:
            raise ValueError(f"Unsupported pooling type: {pooling}")

        # llama-cpp-python is an optional extra; only GGUF preloads need it
        import llama_cpp

        model = llama_cpp.Llama(
            model_path=str(model_path),
            embedding=True,
            n_ctx=n_ctx,
            n_gpu_layers=n_gpu_layers,
            pooling_type=getattr(llama_cpp, f"LLAMA_POOLING_TYPE_{pooling.upper()}"),
            verbose=False,
        )
        logger.info("Loaded GGUF weights", model_path=str(model_path), n_ctx=n_ctx, pooling=pooling)
        return cls(model)

    def embed_sync(self, text: str) -> List[float]:
        output = np.asarray(self.model.embed(text), dtype=np.float32)
        if output.ndim > 1:
            # per-token rows; collapse to one sentence vector
            output = output.reshape(-1, output.shape[-1]).mean(axis=0)
        return output.tolist()

    def _release(self) -> None:
        close = getattr(self.model, "close", None)
        if callable(close):
            close()
        self.model = None
