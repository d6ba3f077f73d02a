"""Reverse diffusion sampling procedures (greedy, annealed re-masking)."""

import logging
import numpy as np
from typing import Callable, List, Sequence

from .schedule import annealed_remask_prob, linear_remask_prob
from ..numerics import softmax, one_hot, top_k_indices, split_positions
from ...tokenizer import MASK_ID

logger = logging.getLogger(__name__)

ForwardFn = Callable[[np.ndarray], np.ndarray]

FALLBACK_TOKEN = 0
MIN_MASS = 1e-12


def predict_logits(
    forward: ForwardFn,
    tokens: np.ndarray,
    vocab_size: int
) -> np.ndarray:
    """Run one forward pass and return per-position logits [L, V]."""
    output = np.asarray(forward(one_hot(tokens, vocab_size)), dtype=np.float64)
    return split_positions(output[0], len(tokens), vocab_size)


def sample_position(
    logits: np.ndarray,
    temperature: float,
    top_k: int,
    rng: np.random.Generator,
    mask_id: int = MASK_ID
) -> int:
    """Draw a token for one masked position.

    The MASK entry is removed from the distribution, the remainder is
    renormalized and restricted to the top-k candidates, and one candidate is
    drawn by inverse CDF against a single uniform draw.

    Args:
        logits: Logits for this position [V]
        temperature: Sampling temperature
        top_k: Candidate cutoff (clamped to [1, V])
        rng: Random generator
        mask_id: Id that may never be produced

    Returns:
        Selected token id (FALLBACK_TOKEN if no probability mass remains)
    """
    probs = softmax(logits)
    if temperature > MIN_MASS:
        probs = probs / temperature
    if 0 <= mask_id < len(probs):
        probs[mask_id] = 0.0

    total = probs.sum()
    if total < MIN_MASS:
        return FALLBACK_TOKEN
    probs = probs / total

    candidates = top_k_indices(probs, top_k)
    cand_probs = probs[candidates]
    cand_probs = cand_probs / cand_probs.sum()

    r = rng.random()
    hits = np.nonzero(r <= np.cumsum(cand_probs))[0]
    if len(hits) == 0:
        # Rounding left the cumulative sum short of r
        return int(candidates[0])
    return int(candidates[hits[0]])


def refine_masked(
    forward: ForwardFn,
    vocab_size: int,
    max_length: int,
    remask_probs: Sequence[float],
    temperature: float,
    top_k: int,
    rng: np.random.Generator,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Masked iterative refinement from an all-MASK sequence.

    One iteration per entry of remask_probs. Each iteration resolves every
    masked position, then sends each position resolved in that iteration
    back to MASK with the iteration's re-mask probability. Positions still
    masked after the last iteration become FALLBACK_TOKEN.

    Args:
        forward: Model forward pass ([L, V] one-hot -> [1, L*V] logits)
        vocab_size: V
        max_length: L
        remask_probs: Re-mask probability per iteration, in iteration order
        temperature: Sampling temperature
        top_k: Candidate cutoff
        rng: Random generator
        mask_id: MASK id

    Returns:
        Token ids [L] without any MASK
    """
    current = np.full(max_length, mask_id, dtype=np.int64)

    for step, p_remask in enumerate(remask_probs):
        logits = predict_logits(forward, current, vocab_size)

        resolved = np.nonzero(current == mask_id)[0]
        for i in resolved:
            current[i] = sample_position(logits[i], temperature, top_k, rng, mask_id)

        if p_remask > 0 and len(resolved) > 0:
            remask = resolved[rng.random(len(resolved)) < p_remask]
            current[remask] = mask_id

        logger.debug(
            f"Refinement step {step}: {int((current == mask_id).sum())} masked, p_remask={p_remask:.3f}"
        )

    current[current == mask_id] = FALLBACK_TOKEN
    return current


def annealed_schedule(num_timesteps: int) -> List[float]:
    """Re-mask probabilities (s-1)/s for s = T .. 1."""
    return [annealed_remask_prob(s) for s in range(num_timesteps, 0, -1)]


def linear_schedule(num_timesteps: int) -> List[float]:
    """Re-mask probabilities t/T for t = T-1 .. 0, none on the last step."""
    return [
        linear_remask_prob(t, num_timesteps) if t > 0 else 0.0
        for t in range(num_timesteps - 1, -1, -1)
    ]


def sample_annealed(
    forward: ForwardFn,
    vocab_size: int,
    max_length: int,
    num_timesteps: int,
    temperature: float,
    top_k: int,
    rng: np.random.Generator,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Generator paired with the masked-loss trainer."""
    return refine_masked(
        forward, vocab_size, max_length, annealed_schedule(num_timesteps),
        temperature, top_k, rng, mask_id
    )


def sample_linear(
    forward: ForwardFn,
    vocab_size: int,
    max_length: int,
    num_timesteps: int,
    temperature: float,
    top_k: int,
    rng: np.random.Generator,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Generator paired with the fraction-exact trainer."""
    return refine_masked(
        forward, vocab_size, max_length, linear_schedule(num_timesteps),
        temperature, top_k, rng, mask_id
    )


def sample_greedy(
    forward: ForwardFn,
    vocab_size: int,
    max_length: int,
    num_timesteps: int,
    rng: np.random.Generator,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Single-denoise-pass generator paired with the basic trainer.

    Starts from uniformly random tokens and replaces every position with
    its arg-max prediction at each of the T steps. No sampling, no re-masking.
    Positions still predicted as MASK at the end become FALLBACK_TOKEN.
    """
    current = rng.integers(0, vocab_size, size=max_length, dtype=np.int64)
    logger.debug(f"Initial random tokens: {current.tolist()}")

    for _ in range(num_timesteps - 1, -1, -1):
        probs = softmax(predict_logits(forward, current, vocab_size))
        current = np.argmax(probs, axis=-1).astype(np.int64)

    current[current == mask_id] = FALLBACK_TOKEN
    return current
