"""Masked cross-entropy loss with clipped output-layer error terms."""

import numpy as np
from typing import Tuple

from ..core.numerics import softmax, clip_error, LOG_FLOOR


def masked_cross_entropy(
    logits: np.ndarray,
    targets: np.ndarray,
    include: np.ndarray
) -> Tuple[float, np.ndarray]:
    """Compute loss and error terms over the included positions.

    L = -sum_{i: include[i]} log(max(p_i[x_0[i]], 1e-10))

    The error term at an included position is softmax(logits) - onehot(target),
    clipped to [-5, 5]. Excluded positions get an all-zero row and add nothing
    to the loss.

    Args:
        logits: Model predictions [L, V]
        targets: Clean tokens x_0 [L]
        include: Boolean loss mask [L]

    Returns:
        loss: Summed negative log-likelihood (>= 0)
        error_terms: Gradient signal w.r.t. logits [L, V]
    """
    logits = np.asarray(logits, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.int64)
    include = np.asarray(include, dtype=bool)

    error_terms = np.zeros_like(logits)
    positions = np.nonzero(include)[0]
    if len(positions) == 0:
        return 0.0, error_terms

    probs = softmax(logits[positions])
    target_ids = targets[positions]
    target_probs = probs[np.arange(len(positions)), target_ids]
    loss = float(-np.log(np.maximum(target_probs, LOG_FLOOR)).sum())

    delta = probs
    delta[np.arange(len(positions)), target_ids] -= 1.0
    error_terms[positions] = clip_error(delta)

    return loss, error_terms
