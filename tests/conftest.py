"""Pytest fixtures for testing."""

import threading
import time
import pytest
import torch
import numpy as np

from tokendiff.config import DiffusionConfig
from tokendiff.tokenizer import WordTokenizer


class UniformModel:
    """Sequence model returning all-zero logits; records backward calls."""

    def __init__(self, max_length: int, vocab_size: int):
        self.max_length = max_length
        self.vocab_size = vocab_size
        self.forward_calls = 0
        self.backward_calls = []
        self._lock = threading.Lock()

    def logits_for(self, batch: np.ndarray) -> np.ndarray:
        return np.zeros((self.max_length, self.vocab_size))

    def forward(self, batch: np.ndarray) -> np.ndarray:
        with self._lock:
            self.forward_calls += 1
        return self.logits_for(np.asarray(batch)).reshape(1, -1)

    def backward(self, error_terms: np.ndarray, learning_rate: float) -> None:
        self.backward_calls.append((np.array(error_terms, copy=True), learning_rate))


class EchoModel(UniformModel):
    """Predicts the input token at every position with high confidence.

    Rows that are all zero (out-of-range ids) fall back to uniform logits.
    """

    def __init__(self, max_length: int, vocab_size: int, scale: float = 50.0):
        super().__init__(max_length, vocab_size)
        self.scale = scale

    def logits_for(self, batch: np.ndarray) -> np.ndarray:
        return batch * self.scale


class FixedLogitsModel(UniformModel):
    """Returns the same per-position logits every call."""

    def __init__(self, logits: np.ndarray):
        logits = np.asarray(logits, dtype=np.float64)
        super().__init__(logits.shape[0], logits.shape[1])
        self.logits = logits

    def logits_for(self, batch: np.ndarray) -> np.ndarray:
        return self.logits


class SlowModel(UniformModel):
    """Uniform model whose forward sleeps a random short time per call."""

    def __init__(self, max_length: int, vocab_size: int, seed: int):
        super().__init__(max_length, vocab_size)
        self._delays = np.random.default_rng(seed)

    def forward(self, batch: np.ndarray) -> np.ndarray:
        with self._lock:
            delay = float(self._delays.uniform(0.0, 0.003))
        time.sleep(delay)
        return super().forward(batch)


@pytest.fixture
def seed():
    """Set random seed for reproducibility."""
    seed_value = 42
    torch.manual_seed(seed_value)
    np.random.seed(seed_value)
    return seed_value


@pytest.fixture
def rng(seed):
    return np.random.default_rng(seed)


@pytest.fixture
def sentences():
    return [
        "the cat sat on the mat",
        "the dog sat on the log",
        "a bird flew over the house",
        "the cat chased the bird",
        "a dog slept by the door",
    ]


@pytest.fixture
def tokenizer(sentences):
    return WordTokenizer(sentences)


@pytest.fixture
def config():
    """Small config: T=5, L=8."""
    return DiffusionConfig(
        num_timesteps=5,
        max_length=8,
        learning_rate=0.1,
        epochs=4,
        temperature=1.0,
        top_k=3,
        mask_schedule_start=0.2,
        mask_schedule_end=0.8
    )


@pytest.fixture
def uniform_model(config, tokenizer):
    return UniformModel(config.max_length, tokenizer.vocab_size)


@pytest.fixture
def echo_model(config, tokenizer):
    return EchoModel(config.max_length, tokenizer.vocab_size)


@pytest.fixture
def fixed_logits_model():
    """Factory: FixedLogitsModel(logits)."""
    return FixedLogitsModel


@pytest.fixture
def slow_model():
    """Factory: SlowModel(max_length, vocab_size, seed)."""
    return SlowModel
