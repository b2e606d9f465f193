"""Shared fixtures and fakes."""

from typing import List

import pytest

from embedding_service.encoders.base import Embedder
from embedding_service.tokenization import Vocabulary

VOCAB_TOKENS = ["[CLS]", "[SEP]", "[PAD]", "[UNK]", "hello", "world", "##lo"]


class CountingEmbedder(Embedder):
    """Returns ``[i]`` for the i-th call."""

    model_format = "fake"

    def __init__(self):
        super().__init__()
        self.calls: List[str] = []
        self.released = False

    def embed_sync(self, text: str) -> List[float]:
        self.calls.append(text)
        return [float(len(self.calls) - 1)]

    def _release(self) -> None:
        self.released = True


class FailingEmbedder(Embedder):
    """Fails on a given call index."""

    model_format = "fake"

    def __init__(self, fail_on: int = 0):
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    def embed_sync(self, text: str) -> List[float]:
        index = self.calls
        self.calls += 1
        if index == self.fail_on:
            raise RuntimeError("backend exploded")
        return [0.0, 1.0]


@pytest.fixture
def vocabulary() -> Vocabulary:
    return Vocabulary.from_tokens(VOCAB_TOKENS)


@pytest.fixture
def vocab_file(tmp_path):
    path = tmp_path / "vocab.txt"
    path.write_text("\n".join(VOCAB_TOKENS) + "\n", encoding="utf-8")
    return path
