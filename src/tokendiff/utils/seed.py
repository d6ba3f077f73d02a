"""Random seeding helpers."""

import random
import numpy as np
import torch
from typing import Optional


def set_seed(seed: Optional[int] = None) -> np.random.Generator:
    """Seed python, numpy and torch and return a numpy Generator.

    Args:
        seed: Seed value (None leaves global state alone and returns an
            unseeded generator)

    Returns:
        Generator to pass into noising, training and sampling calls
    """
    if seed is not None:
        random.seed(seed)
        np.random.seed(seed)
        torch.manual_seed(seed)
    return np.random.default_rng(seed)
