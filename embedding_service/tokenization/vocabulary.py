"""Vocabulary table for WordPiece tokenization.

Vocabulary files are plain text, one token per line; the 0-based line index
is the token id. Lines are stripped of surrounding whitespace and a token
that appears twice keeps the id of its last occurrence.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Union

import structlog

from libs.common.metrics import measure_time
from ..errors import VocabularyError

logger = structlog.get_logger("embedding_service.vocabulary")

CLS_TOKEN = "[CLS]"
SEP_TOKEN = "[SEP]"
PAD_TOKEN = "[PAD]"
UNK_TOKEN = "[UNK]"
SENTINEL_TOKENS = (CLS_TOKEN, SEP_TOKEN, PAD_TOKEN, UNK_TOKEN)


class Vocabulary(Mapping[str, int]):
    """Immutable token -> id mapping."""

    def __init__(self, token_ids: Mapping[str, int]):
        self._token_ids = MappingProxyType(dict(token_ids))

    @classmethod
    def from_tokens(cls, tokens: Iterable[str]) -> "Vocabulary":
        """Assign ids by position, exactly as a vocabulary file would."""
        token_ids = {}
        for index, token in enumerate(tokens):
            token_ids[token.strip()] = index
        return cls(token_ids)

    @classmethod
    @measure_time("load_vocabulary")
    def from_file(cls, path: Union[str, Path]) -> "Vocabulary":
        """Load and validate a vocabulary file.

        Raises ``VocabularyError`` when the file cannot be read as UTF-8
        text, is empty, or lacks one of the sentinel tokens.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise VocabularyError(f"Unable to read vocabulary file '{path}': {e}") from e

        if not lines:
            raise VocabularyError(f"Vocabulary file '{path}' is empty")

        vocabulary = cls.from_tokens(lines)
        vocabulary.validate()

        logger.info("Loaded vocabulary", path=str(path), size=len(vocabulary))
        return vocabulary

    def validate(self) -> None:
        """Ensure every sentinel token is present."""
        missing = [token for token in SENTINEL_TOKENS if token not in self._token_ids]
        if missing:
            raise VocabularyError(f"Vocabulary is missing sentinel tokens: {', '.join(missing)}")

    def sentinel_id(self, token: str) -> int:
        """Id of a sentinel token; ``VocabularyError`` when absent."""
        try:
            return self._token_ids[token]
        except KeyError:
            raise VocabularyError(f"Vocabulary is missing sentinel token {token}") from None

    def lookup(self, token: str) -> Optional[int]:
        return self._token_ids.get(token)

    def __getitem__(self, token: str) -> int:
        return self._token_ids[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self._token_ids)

    def __len__(self) -> int:
        return len(self._token_ids)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self)})"
