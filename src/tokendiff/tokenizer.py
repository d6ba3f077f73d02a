"""Word-level tokenizer with a closed, corpus-derived vocabulary."""

import numpy as np
from typing import Dict, Iterable, List, Sequence

PAD_TOKEN = "[PAD]"
MASK_TOKEN = "[MASK]"
CLS_TOKEN = "[CLS]"
SEP_TOKEN = "[SEP]"

PAD_ID = 0
MASK_ID = 1
CLS_ID = 2
SEP_ID = 3

SPECIAL_TOKENS = (PAD_TOKEN, MASK_TOKEN, CLS_TOKEN, SEP_TOKEN)


class WordTokenizer:
    """Lowercased whitespace tokenizer.

    Special tokens occupy ids 0-3; corpus words get increasing ids from 4
    in first-seen order. Words outside the vocabulary encode to PAD.
    """

    def __init__(self, sentences: Iterable[str] = ()):
        self.vocab: Dict[str, int] = {}
        self.reverse_vocab: Dict[int, str] = {}
        for token_id, token in enumerate(SPECIAL_TOKENS):
            self.vocab[token] = token_id
            self.reverse_vocab[token_id] = token
        self.special_ids = frozenset(range(len(SPECIAL_TOKENS)))

        for sentence in sentences:
            for word in sentence.lower().split():
                if word not in self.vocab:
                    token_id = len(self.vocab)
                    self.vocab[word] = token_id
                    self.reverse_vocab[token_id] = word

    @property
    def vocab_size(self) -> int:
        return len(self.vocab)

    @property
    def pad_id(self) -> int:
        return self.vocab[PAD_TOKEN]

    @property
    def mask_id(self) -> int:
        return self.vocab[MASK_TOKEN]

    def encode(self, text: str) -> List[int]:
        return [self.vocab.get(word, self.pad_id) for word in text.lower().split()]

    def decode(self, ids: Sequence[int]) -> str:
        """Join known non-special tokens with single spaces."""
        words = []
        for token_id in ids:
            token_id = int(token_id)
            if token_id in self.reverse_vocab and token_id not in self.special_ids:
                words.append(self.reverse_vocab[token_id])
        return " ".join(words)


def pad_sequence(ids: Sequence[int], max_length: int, pad_id: int = PAD_ID) -> np.ndarray:
    """Truncate or right-pad token ids to exactly max_length."""
    out = np.full(max_length, pad_id, dtype=np.int64)
    ids = list(ids)[:max_length]
    out[:len(ids)] = ids
    return out


def prepare_corpus(
    tokenizer: WordTokenizer,
    sentences: Sequence[str],
    max_length: int
) -> List[np.ndarray]:
    """Encode sentences to fixed-length clean sequences."""
    return [pad_sequence(tokenizer.encode(s), max_length, tokenizer.pad_id) for s in sentences]
