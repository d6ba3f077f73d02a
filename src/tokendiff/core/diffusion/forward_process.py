"""Forward (noising) process: masking tokens of a clean sequence."""

import math
import numpy as np
from typing import Sequence

from .schedule import MaskSchedule, step_noise_level
from ...tokenizer import PAD_ID, MASK_ID, pad_sequence


def _bernoulli_mask(
    tokens: np.ndarray,
    noise_level: float,
    rng: np.random.Generator,
    pad_id: int,
    mask_id: int
) -> np.ndarray:
    draws = rng.random(len(tokens))
    masked = (tokens != pad_id) & (draws < noise_level)
    tokens[masked] = mask_id
    return tokens


def add_noise(
    x_0: Sequence[int],
    t: int,
    num_timesteps: int,
    max_length: int,
    rng: np.random.Generator,
    pad_id: int = PAD_ID,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Step-indexed masking q(x_t | x_0).

    Each non-pad position is masked independently with probability
    min(0.8, (t+1)/T). Input is truncated or padded to max_length.

    Args:
        x_0: Clean token ids
        t: Step index in [0, T-1]
        num_timesteps: T
        max_length: Output length L
        rng: Random generator

    Returns:
        x_t: Noised token ids [L]
    """
    x_t = pad_sequence(x_0, max_length, pad_id)
    noise_level = step_noise_level(t, num_timesteps)
    return _bernoulli_mask(x_t, noise_level, rng, pad_id, mask_id)


def add_noise_continuous(
    x_0: Sequence[int],
    t_val: float,
    max_length: int,
    rng: np.random.Generator,
    pad_id: int = PAD_ID,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Continuous masking: mask each non-pad position with probability t_val.

    No cap is applied, so t_val in [0, 1] covers the full corruption range.
    """
    x_t = pad_sequence(x_0, max_length, pad_id)
    return _bernoulli_mask(x_t, t_val, rng, pad_id, mask_id)


def round_half_up(x: float) -> int:
    """Round a non-negative value, halves going up."""
    return int(math.floor(x + 0.5))


def add_noise_exact(
    x_0: Sequence[int],
    t: int,
    schedule: MaskSchedule,
    rng: np.random.Generator,
    pad_id: int = PAD_ID,
    mask_id: int = MASK_ID
) -> np.ndarray:
    """Fraction-exact masking.

    Masks exactly round(fraction[t] * N) of the N non-pad positions, picked
    by a uniform random permutation. Output has the same length as x_0.

    Args:
        x_0: Clean token ids
        t: Step index into the schedule
        schedule: Mask fraction table
        rng: Random generator

    Returns:
        x_t: Noised token ids
    """
    x_t = np.array(x_0, dtype=np.int64)
    fraction = schedule[t]
    if fraction <= 0:
        return x_t

    candidates = np.nonzero(x_t != pad_id)[0]
    candidates = rng.permutation(candidates)
    k = round_half_up(len(candidates) * fraction)
    x_t[candidates[:k]] = mask_id
    return x_t
