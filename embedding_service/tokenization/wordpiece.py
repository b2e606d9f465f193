"""WordPiece tokenizer producing model-ready id sequences.

The tokenizer is intentionally small: whitespace word splitting, simple
lowercasing and greedy subword matching against a ``Vocabulary``. Output
always starts with ``[CLS]``, ends with ``[SEP]`` and never exceeds
``max_length`` ids.

Subword matching emits a piece as soon as the accumulated characters hit
the vocabulary (the first piece of a word is looked up bare, later pieces
with the ``##`` continuation prefix). A word that does not resolve
completely is replaced by a single ``[UNK]``; pieces matched before the
unresolved remainder are dropped.
"""

from dataclasses import dataclass
from typing import List

from .vocabulary import CLS_TOKEN, PAD_TOKEN, SEP_TOKEN, UNK_TOKEN, Vocabulary

DEFAULT_MAX_LENGTH = 256
CONTINUATION_PREFIX = "##"


@dataclass(frozen=True)
class TokenizedInput:
    """Token ids with a parallel 0/1 attention mask."""
    token_ids: List[int]
    attention_mask: List[int]

    def __len__(self) -> int:
        return len(self.token_ids)

    def padded(self, length: int, pad_id: int) -> "TokenizedInput":
        """Right-pad to ``length`` with ``pad_id`` (mask 0) for fixed-shape consumers."""
        padding = max(0, length - len(self.token_ids))
        return TokenizedInput(
            token_ids=self.token_ids + [pad_id] * padding,
            attention_mask=self.attention_mask + [0] * padding,
        )


class WordPieceTokenizer:
    """Turns text into ``TokenizedInput`` using a fixed vocabulary."""

    def __init__(self, vocabulary: Vocabulary, max_length: int = DEFAULT_MAX_LENGTH):
        if max_length < 2:
            raise ValueError("max_length must leave room for [CLS] and [SEP]")
        self.vocabulary = vocabulary
        self.max_length = max_length

    @property
    def pad_id(self) -> int:
        return self.vocabulary.sentinel_id(PAD_TOKEN)

    def tokenize(self, text: str) -> TokenizedInput:
        """Tokenize ``text``; the result carries its unpadded length.

        Raises ``VocabularyError`` if a sentinel token is missing.
        """
        cls_id = self.vocabulary.sentinel_id(CLS_TOKEN)
        sep_id = self.vocabulary.sentinel_id(SEP_TOKEN)
        unk_id = self.vocabulary.sentinel_id(UNK_TOKEN)
        pad_id = self.pad_id

        token_ids = [cls_id]
        for word in text.split():
            lowered = word.lower()
            whole_word_id = self.vocabulary.lookup(lowered)
            if whole_word_id is not None:
                token_ids.append(whole_word_id)
            else:
                token_ids.extend(self._tokenize_word(lowered, unk_id))

            # Reserve the last slot for [SEP]
            if len(token_ids) >= self.max_length - 1:
                break

        # A single long word can overshoot the reserved slot
        del token_ids[self.max_length - 1:]
        token_ids.append(sep_id)

        actual_length = len(token_ids)
        tokenized = TokenizedInput(token_ids=token_ids, attention_mask=[1] * actual_length)
        padded = tokenized.padded(self.max_length, pad_id)
        return TokenizedInput(
            token_ids=padded.token_ids[:actual_length],
            attention_mask=padded.attention_mask[:actual_length],
        )

    def _tokenize_word(self, word: str, unk_id: int) -> List[int]:
        pieces: List[int] = []
        current = ""
        for char in word:
            current += char
            candidate = CONTINUATION_PREFIX + current if pieces else current
            piece_id = self.vocabulary.lookup(candidate)
            if piece_id is not None:
                pieces.append(piece_id)
                current = ""

        if not pieces or current:
            return [unk_id]
        return pieces
