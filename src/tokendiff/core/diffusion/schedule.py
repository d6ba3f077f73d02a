"""Mask-fraction and learning-rate schedules for discrete diffusion."""

import math
import numpy as np


class MaskSchedule:
    """Linear per-step mask fraction table.

    fraction[t] = clamp(start + (end - start) * t / (T - 1), 0, 1)

    start and end are clamped into [0, 1] before the table is built.

    Index 0 is the step closest to clean, index T-1 the most corrupted.
    The table is computed once and is read-only.
    """

    def __init__(self, num_timesteps: int, start: float, end: float):
        self.num_timesteps = num_timesteps
        self.start = min(max(start, 0.0), 1.0)
        self.end = min(max(end, 0.0), 1.0)
        start, end = self.start, self.end

        # T=1 would divide by zero; clamp the denominator
        denom = max(num_timesteps - 1, 1)
        steps = np.arange(num_timesteps, dtype=np.float64)
        fractions = np.clip(start + (end - start) * steps / denom, 0.0, 1.0)
        fractions.setflags(write=False)
        self.fractions = fractions

    def __len__(self) -> int:
        return self.num_timesteps

    def __getitem__(self, t: int) -> float:
        return float(self.fractions[t])

    def get_fraction(self, t: int) -> float:
        """Get mask fraction for step t (clamped into range)."""
        t = min(max(int(t), 0), self.num_timesteps - 1)
        return float(self.fractions[t])


def step_noise_level(t: int, num_timesteps: int, cap: float = 0.8) -> float:
    """Bernoulli mask probability for step-indexed noising."""
    return min(cap, (t + 1) / num_timesteps)


def linear_decay_lr(base_lr: float, epoch: int, epochs: int) -> float:
    """lr = base * (1 - epoch / epochs)."""
    return base_lr * (1.0 - epoch / epochs)


def cosine_lr(base_lr: float, epoch: int, epochs: int) -> float:
    """lr = base * (1 + cos(pi * epoch / epochs)) / 2."""
    return base_lr * (1.0 + math.cos(epoch * math.pi / epochs)) / 2.0


def annealed_remask_prob(step: int) -> float:
    """Re-mask probability (s-1)/s for steps counted from T down to 1."""
    return (step - 1) / step


def linear_remask_prob(t: int, num_timesteps: int) -> float:
    """Re-mask probability t/T for steps counted from T-1 down to 0."""
    return t / num_timesteps
