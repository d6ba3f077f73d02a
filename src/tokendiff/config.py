"""Run configuration for discrete diffusion training and sampling."""

import yaml
from dataclasses import dataclass, fields
from typing import Any, Dict, Tuple


def _clamp01(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


def _check_keys(cls, data: Dict[str, Any]) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {unknown}")


@dataclass(frozen=True)
class DiffusionConfig:
    """Configuration for the diffusion process.

    Attributes:
        num_timesteps: Number of diffusion steps T (expected >= 2)
        max_length: Fixed sequence length L
        learning_rate: Base learning rate before scheduling
        epochs: Number of training epochs
        temperature: Sampling temperature
        top_k: Number of candidates kept when sampling a masked position
        mask_schedule_start: Fraction of tokens masked at t=0
        mask_schedule_end: Fraction of tokens masked at t=T-1
    """
    num_timesteps: int = 50
    max_length: int = 64
    learning_rate: float = 0.01
    epochs: int = 100
    temperature: float = 1.0
    top_k: int = 5
    mask_schedule_start: float = 0.1
    mask_schedule_end: float = 0.9

    def __post_init__(self):
        # Frozen dataclass: write through object.__setattr__
        object.__setattr__(self, "mask_schedule_start", _clamp01(self.mask_schedule_start))
        object.__setattr__(self, "mask_schedule_end", _clamp01(self.mask_schedule_end))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiffusionConfig":
        _check_keys(cls, data)
        return cls(**data)


@dataclass(frozen=True)
class ParallelConfig:
    """Configuration for the concurrent batched trainer.

    Attributes:
        batch_size: Samples per worker task
        cpu_fraction: Fraction of available cores used as worker threads
        use_threads: Run batch tasks on a thread pool (False runs them inline)
        update_policy: "epoch" for one update per epoch, "batch" for one per batch
        sample_every: Epoch interval for progress logging and a monitoring sample
    """
    batch_size: int = 10
    cpu_fraction: float = 0.8
    use_threads: bool = True
    update_policy: str = "epoch"
    sample_every: int = 10

    def __post_init__(self):
        if self.update_policy not in ("epoch", "batch"):
            raise ValueError(f"Unknown update policy: {self.update_policy}")
        object.__setattr__(self, "batch_size", max(1, int(self.batch_size)))
        object.__setattr__(self, "sample_every", max(1, int(self.sample_every)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParallelConfig":
        _check_keys(cls, data)
        return cls(**data)


def load_config(path: str) -> Tuple[DiffusionConfig, ParallelConfig]:
    """Load diffusion and parallel configuration from a YAML file.

    The file may contain ``diffusion:`` and ``parallel:`` sections; missing
    sections fall back to defaults.

    Args:
        path: YAML file path

    Returns:
        (DiffusionConfig, ParallelConfig)
    """
    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}

    unknown = sorted(set(config) - {"diffusion", "parallel"})
    if unknown:
        raise ValueError(f"Unknown config sections: {unknown}")

    diffusion = DiffusionConfig.from_dict(config.get("diffusion") or {})
    parallel = ParallelConfig.from_dict(config.get("parallel") or {})
    return diffusion, parallel
