"""Diffusion strategies.

A strategy bundles the numeric policy that distinguishes the three
trainer/generator pairs:

- basic:  step-indexed Bernoulli noise, dense loss, linear lr decay,
          greedy single-denoise generation
- masked: continuous Bernoulli noise, loss on MASK positions, cosine lr,
          annealed (s-1)/s re-masking
- better: fraction-exact noise, loss on MASK positions, linear lr decay,
          corpus shuffling, t/T re-masking
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict

from .schedule import MaskSchedule, linear_decay_lr, cosine_lr
from .forward_process import add_noise, add_noise_continuous, add_noise_exact
from .sampler import ForwardFn, sample_greedy, sample_annealed, sample_linear
from ...config import DiffusionConfig
from ...tokenizer import PAD_ID, MASK_ID


NoiseFn = Callable[[np.ndarray, DiffusionConfig, MaskSchedule, np.random.Generator], np.ndarray]
LossMaskFn = Callable[[np.ndarray, np.ndarray], np.ndarray]
LRScheduleFn = Callable[[float, int, int], float]
GenerateFn = Callable[[ForwardFn, int, DiffusionConfig, np.random.Generator], np.ndarray]


@dataclass(frozen=True)
class DiffusionStrategy:
    """Numeric policy for one trainer/generator pair.

    Attributes:
        name: Strategy name
        noise: Sample a step and corrupt a clean sequence
        loss_mask: Positions (given x_0, x_t) that contribute to the loss
        lr_schedule: Learning rate for (base_lr, epoch, epochs)
        generate: Reverse sampler producing token ids
        per_position_loss: Report sample loss divided by L
        shuffle: Shuffle the corpus every epoch
        log_interval: Epoch interval for progress logging
    """
    name: str
    noise: NoiseFn
    loss_mask: LossMaskFn
    lr_schedule: LRScheduleFn
    generate: GenerateFn
    per_position_loss: bool = False
    shuffle: bool = False
    log_interval: int = 10


def _noise_step_indexed(x_0, config, schedule, rng):
    t = int(rng.integers(config.num_timesteps))
    return add_noise(x_0, t, config.num_timesteps, config.max_length, rng, PAD_ID, MASK_ID)


def _noise_continuous(x_0, config, schedule, rng):
    t_val = float(rng.random())
    return add_noise_continuous(x_0, t_val, config.max_length, rng, PAD_ID, MASK_ID)


def _noise_fraction_exact(x_0, config, schedule, rng):
    t = int(rng.integers(config.num_timesteps))
    return add_noise_exact(x_0, t, schedule, rng, PAD_ID, MASK_ID)


def _all_positions(x_0, x_t):
    return np.ones(len(x_t), dtype=bool)


def _masked_positions(x_0, x_t):
    return np.asarray(x_t) == MASK_ID


def _generate_greedy(forward, vocab_size, config, rng):
    return sample_greedy(forward, vocab_size, config.max_length, config.num_timesteps, rng)


def _generate_annealed(forward, vocab_size, config, rng):
    return sample_annealed(
        forward, vocab_size, config.max_length, config.num_timesteps,
        config.temperature, config.top_k, rng, MASK_ID
    )


def _generate_linear(forward, vocab_size, config, rng):
    return sample_linear(
        forward, vocab_size, config.max_length, config.num_timesteps,
        config.temperature, config.top_k, rng, MASK_ID
    )


BASIC = DiffusionStrategy(
    name="basic",
    noise=_noise_step_indexed,
    loss_mask=_all_positions,
    lr_schedule=linear_decay_lr,
    generate=_generate_greedy,
    per_position_loss=True,
    log_interval=40,
)

MASKED = DiffusionStrategy(
    name="masked",
    noise=_noise_continuous,
    loss_mask=_masked_positions,
    lr_schedule=cosine_lr,
    generate=_generate_annealed,
    log_interval=10,
)

BETTER = DiffusionStrategy(
    name="better",
    noise=_noise_fraction_exact,
    loss_mask=_masked_positions,
    lr_schedule=linear_decay_lr,
    generate=_generate_linear,
    shuffle=True,
    log_interval=10,
)

STRATEGIES: Dict[str, DiffusionStrategy] = {s.name: s for s in (BASIC, MASKED, BETTER)}


def get_strategy(name: str) -> DiffusionStrategy:
    """Look up a strategy by name ('basic', 'masked', 'better')."""
    if name not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {name}")
    return STRATEGIES[name]
