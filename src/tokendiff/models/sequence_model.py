"""Sequence model adapter used by the diffusion trainers and samplers."""

import threading
import numpy as np
import torch
import torch.nn as nn
from abc import ABC, abstractmethod
from typing import Optional


class SequenceModel(ABC):
    """Trainable model seen through a forward/backward function pair.

    forward takes a [L, V] one-hot matrix and returns [1, L*V] logits
    (position-major). backward takes error terms w.r.t. those logits
    ([L, V], or a stacked [N, L*V] accumulator) and a learning rate, and
    updates the model's parameters in place.
    """

    @abstractmethod
    def forward(self, batch: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def backward(self, error_terms: np.ndarray, learning_rate: float) -> None:
        pass


class TokenDenoiser(nn.Module):
    """Small MLP from a flattened one-hot sequence to per-position logits."""

    def __init__(self, max_length: int, vocab_size: int, hidden_dim: int = 128):
        super().__init__()
        self.max_length = max_length
        self.vocab_size = vocab_size

        self.net = nn.Sequential(
            nn.Linear(max_length * vocab_size, hidden_dim),
            nn.ReLU(),
            nn.Linear(hidden_dim, hidden_dim),
            nn.ReLU(),
            nn.Linear(hidden_dim, max_length * vocab_size)
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """[B, L*V] -> [B, L*V] logits."""
        return self.net(x)


class TorchSequenceModel(SequenceModel):
    """Reference SequenceModel backed by a TokenDenoiser.

    forward runs without autograd and may be called from several threads.
    backward recomputes the logits of the most recent forward input with
    autograd, injects the error terms as dLoss/dlogits and takes one SGD
    step. Stacked error terms are averaged into a single row first.

    Stacked updates are only approximate: the averaged row is applied to
    the most recent forward input, not to the input each row came from.
    Under the concurrent trainer that input is whichever sample finished
    its forward pass last.
    """

    def __init__(
        self,
        max_length: int,
        vocab_size: int,
        hidden_dim: int = 128,
        seed: Optional[int] = None,
        device: Optional[torch.device] = None
    ):
        if seed is not None:
            torch.manual_seed(seed)
        self.device = device or torch.device("cpu")
        self.max_length = max_length
        self.vocab_size = vocab_size
        self.module = TokenDenoiser(max_length, vocab_size, hidden_dim).to(self.device)

        self._lock = threading.Lock()
        self._last_input: Optional[torch.Tensor] = None

    def _to_input(self, batch: np.ndarray) -> torch.Tensor:
        x = torch.as_tensor(np.asarray(batch, dtype=np.float32), device=self.device)
        return x.reshape(1, self.max_length * self.vocab_size)

    def forward(self, batch: np.ndarray) -> np.ndarray:
        x = self._to_input(batch)
        with self._lock:
            self._last_input = x
        with torch.no_grad():
            logits = self.module(x)
        return logits.cpu().numpy().astype(np.float64)

    def backward(self, error_terms: np.ndarray, learning_rate: float) -> None:
        with self._lock:
            x = self._last_input
        if x is None:
            return

        width = self.max_length * self.vocab_size
        grad = np.asarray(error_terms, dtype=np.float32).reshape(-1, width).mean(axis=0)
        grad = torch.as_tensor(grad, device=self.device).unsqueeze(0)

        self.module.zero_grad()
        logits = self.module(x)
        logits.backward(gradient=grad)

        with torch.no_grad():
            for param in self.module.parameters():
                if param.grad is not None:
                    param -= learning_rate * param.grad
