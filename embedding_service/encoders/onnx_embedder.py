"""Tensor-graph (ONNX) embedder for MiniLM-family models."""

from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import numpy as np
import onnxruntime as ort
import structlog

from ..tokenization import DEFAULT_MAX_LENGTH, Vocabulary, WordPieceTokenizer
from .base import Embedder

logger = structlog.get_logger("embedding_service.onnx_embedder")

INPUT_IDS = "input_ids"
ATTENTION_MASK = "attention_mask"
TOKEN_TYPE_IDS = "token_type_ids"


class OnnxEmbedder(Embedder):
    """Runs an ONNX inference session over WordPiece-tokenized text.

    The first output tensor is flattened and returned as-is; pooling and
    normalization are whatever the graph itself does.
    """

    model_format = "onnx"

    def __init__(self, session: Any, tokenizer: WordPieceTokenizer):
        super().__init__()
        self.session = session
        self.tokenizer = tokenizer

    @classmethod
    def from_files(
        cls,
        model_path: Union[str, Path],
        vocabulary_path: Union[str, Path],
        max_length: int = DEFAULT_MAX_LENGTH,
        providers: Optional[Sequence[str]] = None,
    ) -> "OnnxEmbedder":
        """Load the vocabulary, then the inference session."""
        vocabulary = Vocabulary.from_file(vocabulary_path)
        session = ort.InferenceSession(
            str(model_path),
            providers=list(providers or ["CPUExecutionProvider"]),
        )
        logger.info(
            "Loaded ONNX session",
            model_path=str(model_path),
            inputs=[i.name for i in session.get_inputs()],
        )
        return cls(session, WordPieceTokenizer(vocabulary, max_length=max_length))

    def build_inputs(self, text: str) -> dict:
        """Rank-2 int64 tensors with a leading batch dimension of 1."""
        tokenized = self.tokenizer.tokenize(text)
        input_ids = np.array([tokenized.token_ids], dtype=np.int64)
        attention_mask = np.array([tokenized.attention_mask], dtype=np.int64)
        return {
            INPUT_IDS: input_ids,
            ATTENTION_MASK: attention_mask,
            TOKEN_TYPE_IDS: np.zeros_like(input_ids),
        }

    def embed_sync(self, text: str) -> List[float]:
        outputs = self.session.run(None, self.build_inputs(text))
        return np.asarray(outputs[0], dtype=np.float32).ravel().tolist()

    def _release(self) -> None:
        self.session = None
