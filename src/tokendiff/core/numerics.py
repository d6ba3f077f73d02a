"""Numeric helpers shared by training and sampling."""

import numpy as np
from scipy.special import softmax as _softmax
from typing import Sequence

LOG_FLOOR = 1e-10
ERROR_CLIP = 5.0


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over the last axis."""
    return _softmax(np.asarray(logits, dtype=np.float64), axis=-1)


def one_hot(tokens: Sequence[int], vocab_size: int) -> np.ndarray:
    """Expand token ids to a [L, vocab_size] matrix.

    Out-of-range ids produce an all-zero row.
    """
    tokens = np.asarray(tokens, dtype=np.int64)
    out = np.zeros((len(tokens), vocab_size), dtype=np.float64)
    valid = (tokens >= 0) & (tokens < vocab_size)
    out[np.nonzero(valid)[0], tokens[valid]] = 1.0
    return out


def clip_error(delta: np.ndarray, limit: float = ERROR_CLIP) -> np.ndarray:
    return np.clip(delta, -limit, limit)


def top_k_indices(probs: np.ndarray, k: int) -> np.ndarray:
    """Indices of the k largest entries, highest first.

    k is clamped to [1, len(probs)]; ties keep the lower index first.
    """
    k = min(max(int(k), 1), len(probs))
    order = np.argsort(-probs, kind="stable")
    return order[:k]


def split_positions(flat_logits: np.ndarray, max_length: int, vocab_size: int) -> np.ndarray:
    """Reshape position-major flat logits to [L, vocab_size]."""
    return np.asarray(flat_logits, dtype=np.float64)[:max_length * vocab_size].reshape(max_length, vocab_size)
