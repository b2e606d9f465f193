"""Text-to-token pipeline for tensor-graph models.

- ``vocabulary``: immutable token table loaded from a line-oriented file.
- ``wordpiece``: ``WordPieceTokenizer`` producing ids + attention mask.
"""

from .vocabulary import SENTINEL_TOKENS, Vocabulary
from .wordpiece import DEFAULT_MAX_LENGTH, TokenizedInput, WordPieceTokenizer

__all__ = [
    "DEFAULT_MAX_LENGTH",
    "SENTINEL_TOKENS",
    "TokenizedInput",
    "Vocabulary",
    "WordPieceTokenizer",
]
