"""Training engines: sequential (per-sample updates) and concurrent batched."""

from .loss import masked_cross_entropy
from .trainer import DiffusionTrainer, EpochStats, evaluate_sample
from .parallel import ParallelDiffusionTrainer, BatchResult, aggregate_results

__all__ = [
    "masked_cross_entropy",
    "DiffusionTrainer",
    "EpochStats",
    "evaluate_sample",
    "ParallelDiffusionTrainer",
    "BatchResult",
    "aggregate_results"
]
