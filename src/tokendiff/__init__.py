"""Discrete token-level diffusion for text generation.

Training corrupts sentences by replacing tokens with [MASK] and teaches a
sequence model to recover them. Generation starts from a fully masked
sequence and denoises it over the configured number of steps.

Components:
- tokenizer - closed word vocabulary with PAD/MASK/CLS/SEP
- core/diffusion - mask schedule, noising, reverse samplers, strategies
- training - sequential and concurrent batched trainers
- models - sequence model adapter
"""

__version__ = "0.1.0"

from .config import DiffusionConfig, ParallelConfig, load_config
from .tokenizer import WordTokenizer
from .diffusion.model import DiffusionModel
from .models.sequence_model import SequenceModel, TorchSequenceModel

__all__ = [
    "DiffusionConfig",
    "ParallelConfig",
    "load_config",
    "WordTokenizer",
    "DiffusionModel",
    "SequenceModel",
    "TorchSequenceModel"
]
