"""Discrete diffusion core.

Forward process masks non-pad tokens of a clean sequence.
Reverse process starts from an all-MASK sequence and resolves positions
step by step, re-masking speculative choices with a probability that
anneals to zero.
"""

from .schedule import MaskSchedule, linear_decay_lr, cosine_lr
from .forward_process import add_noise, add_noise_continuous, add_noise_exact
from .sampler import sample_position, refine_masked, sample_greedy, sample_annealed, sample_linear
from .strategy import DiffusionStrategy, BASIC, MASKED, BETTER, get_strategy

__all__ = [
    "MaskSchedule",
    "linear_decay_lr",
    "cosine_lr",
    "add_noise",
    "add_noise_continuous",
    "add_noise_exact",
    "sample_position",
    "refine_masked",
    "sample_greedy",
    "sample_annealed",
    "sample_linear",
    "DiffusionStrategy",
    "BASIC",
    "MASKED",
    "BETTER",
    "get_strategy"
]
