"""Sequential training loop for discrete diffusion (basic and fraction-exact)."""

import time
import logging
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .loss import masked_cross_entropy
from ..config import DiffusionConfig
from ..core.diffusion.schedule import MaskSchedule
from ..core.diffusion.sampler import ForwardFn, predict_logits
from ..core.diffusion.strategy import DiffusionStrategy, BASIC
from ..models.sequence_model import SequenceModel


logger = logging.getLogger(__name__)


@dataclass
class EpochStats:
    """Summary of one training epoch."""
    epoch: int
    loss: float
    learning_rate: float
    seconds: float


def evaluate_sample(
    forward: ForwardFn,
    x_0: np.ndarray,
    strategy: DiffusionStrategy,
    config: DiffusionConfig,
    schedule: MaskSchedule,
    vocab_size: int,
    rng: np.random.Generator
) -> Tuple[float, np.ndarray]:
    """Noise one clean sequence, run the model and score it.

    Args:
        forward: Model forward pass
        x_0: Clean sequence [L]
        strategy: Noising and loss policy
        config: Diffusion configuration
        schedule: Mask fraction table
        vocab_size: V
        rng: Random generator

    Returns:
        loss: Sample loss (divided by L for per-position strategies)
        error_terms: Clipped error terms [L, V]
    """
    x_t = strategy.noise(x_0, config, schedule, rng)
    logits = predict_logits(forward, x_t, vocab_size)
    loss, error_terms = masked_cross_entropy(logits, x_0, strategy.loss_mask(x_0, x_t))
    if strategy.per_position_loss:
        loss /= config.max_length
    return loss, error_terms


class DiffusionTrainer:
    """Single-threaded trainer with one parameter update per sample."""

    def __init__(
        self,
        model: SequenceModel,
        config: DiffusionConfig,
        vocab_size: int,
        schedule: Optional[MaskSchedule] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """Initialize trainer.

        Args:
            model: Sequence model adapter
            config: Diffusion configuration
            vocab_size: Tokenizer vocabulary size
            schedule: Mask fraction table (built from config if None)
            rng: Random generator (fresh unseeded one if None)
        """
        self.model = model
        self.config = config
        self.vocab_size = vocab_size
        self.schedule = schedule or MaskSchedule(
            config.num_timesteps, config.mask_schedule_start, config.mask_schedule_end
        )
        self.rng = rng if rng is not None else np.random.default_rng()

    def train_epoch(
        self,
        data: Sequence[np.ndarray],
        strategy: DiffusionStrategy,
        learning_rate: float
    ) -> float:
        """Train for one epoch and return the mean sample loss."""
        total_loss = 0.0
        for x_0 in data:
            loss, error_terms = evaluate_sample(
                self.model.forward, x_0, strategy, self.config,
                self.schedule, self.vocab_size, self.rng
            )
            self.model.backward(error_terms, learning_rate)
            total_loss += loss
        return total_loss / max(len(data), 1)

    def train(
        self,
        corpus: Sequence[np.ndarray],
        strategy: DiffusionStrategy = BASIC
    ) -> List[EpochStats]:
        """Main training loop.

        Args:
            corpus: Clean fixed-length sequences (not modified)
            strategy: Diffusion strategy

        Returns:
            Per-epoch statistics
        """
        data = list(corpus)
        epochs = self.config.epochs
        history = []

        for epoch in range(epochs):
            start = time.perf_counter()
            lr = strategy.lr_schedule(self.config.learning_rate, epoch, epochs)

            if strategy.shuffle:
                data = [data[i] for i in self.rng.permutation(len(data))]

            avg_loss = self.train_epoch(data, strategy, lr)
            stats = EpochStats(epoch, avg_loss, lr, time.perf_counter() - start)
            history.append(stats)

            logger.debug(f"[{strategy.name}] epoch {epoch}: loss={avg_loss:.4f} lr={lr:.6f}")
            if epoch % strategy.log_interval == 0:
                logger.info(f"Epoch {epoch}, Loss: {avg_loss:.4f}")

        return history
