"""Concurrent batched trainer for masked-loss diffusion.

Each epoch runs as a two-phase pipeline:

1. Worker phase (parallel): one task per batch on a bounded thread pool.
   A task noises its samples, runs the forward pass and returns a
   BatchResult with the batch loss and per-sample error rows. Tasks only
   ever see the model's forward function.
2. Aggregation phase (sequential): after every task has finished, the
   results are ordered by batch index, folded into one corpus-indexed
   error tensor and applied with a single backward call.

Because phase 2 is a pure reduction over index-tagged records, the update
does not depend on the order in which tasks complete.
"""

import os
import time
import logging
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .trainer import EpochStats, evaluate_sample
from ..config import DiffusionConfig, ParallelConfig
from ..core.diffusion.schedule import MaskSchedule
from ..core.diffusion.sampler import ForwardFn
from ..core.diffusion.strategy import DiffusionStrategy, MASKED
from ..models.sequence_model import SequenceModel


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchResult:
    """Output of one worker task.

    Attributes:
        batch_index: Position of the batch in the epoch
        loss: Mean sample loss over the batch
        error_rows: Flattened error terms per sample [batch_len, L*V]
    """
    batch_index: int
    loss: float
    error_rows: np.ndarray


def resolve_num_threads(cpu_fraction: float, cpu_count: Optional[int] = None) -> int:
    """Worker count: floor(cores * fraction), at least 1."""
    cores = cpu_count or os.cpu_count() or 1
    return max(1, int(cores * cpu_fraction))


def make_batches(data: Sequence[np.ndarray], batch_size: int) -> List[Sequence[np.ndarray]]:
    return [data[i:i + batch_size] for i in range(0, len(data), batch_size)]


def process_batch(
    forward: ForwardFn,
    batch_index: int,
    batch: Sequence[np.ndarray],
    strategy: DiffusionStrategy,
    config: DiffusionConfig,
    schedule: MaskSchedule,
    vocab_size: int,
    rng: np.random.Generator
) -> BatchResult:
    """Worker task: score every sample of one batch."""
    width = config.max_length * vocab_size
    error_rows = np.zeros((len(batch), width), dtype=np.float64)
    loss = 0.0

    for j, x_0 in enumerate(batch):
        sample_loss, error_terms = evaluate_sample(
            forward, x_0, strategy, config, schedule, vocab_size, rng
        )
        loss += sample_loss
        error_rows[j] = error_terms.reshape(-1)

    return BatchResult(batch_index, loss / max(len(batch), 1), error_rows)


def aggregate_results(
    results: Sequence[BatchResult],
    num_samples: int,
    batch_size: int,
    width: int
) -> Tuple[float, np.ndarray]:
    """Fold batch results into a total loss and a corpus-indexed error tensor.

    Row batch_index * batch_size + offset of the accumulator receives the
    offset-th error row of that batch; rows past num_samples are dropped.

    Args:
        results: Worker outputs in any order
        num_samples: Corpus size
        batch_size: Samples per batch
        width: L * V

    Returns:
        total_loss: Sum of batch losses
        accumulated: Error terms [num_samples, width]
    """
    accumulated = np.zeros((num_samples, width), dtype=np.float64)
    total_loss = 0.0

    for result in sorted(results, key=lambda r: r.batch_index):
        total_loss += result.loss
        start = result.batch_index * batch_size
        for offset, row in enumerate(result.error_rows):
            if start + offset < num_samples:
                accumulated[start + offset] = row

    return total_loss, accumulated


class ParallelDiffusionTrainer:
    """Masked-loss trainer with bounded worker parallelism.

    Only the aggregation phase calls model.backward, so at most one
    parameter update is in flight at any time.
    """

    def __init__(
        self,
        model: SequenceModel,
        config: DiffusionConfig,
        vocab_size: int,
        parallel_config: Optional[ParallelConfig] = None,
        schedule: Optional[MaskSchedule] = None,
        rng: Optional[np.random.Generator] = None,
        monitor: Optional[Callable[[], str]] = None
    ):
        """Initialize trainer.

        Args:
            model: Sequence model adapter
            config: Diffusion configuration
            vocab_size: Tokenizer vocabulary size
            parallel_config: Batching and threading options
            schedule: Mask fraction table (built from config if None)
            rng: Random generator (fresh unseeded one if None)
            monitor: Called every sample_every epochs to produce a sample text
        """
        self.model = model
        self.config = config
        self.vocab_size = vocab_size
        self.parallel_config = parallel_config or ParallelConfig()
        self.schedule = schedule or MaskSchedule(
            config.num_timesteps, config.mask_schedule_start, config.mask_schedule_end
        )
        self.rng = rng if rng is not None else np.random.default_rng()
        self.monitor = monitor
        self.num_threads = resolve_num_threads(self.parallel_config.cpu_fraction)

    def run_batches(
        self,
        data: Sequence[np.ndarray],
        strategy: DiffusionStrategy
    ) -> List[BatchResult]:
        """Worker phase: evaluate every batch and wait for all of them."""
        batch_size = self.parallel_config.batch_size
        batches = make_batches(data, batch_size)
        # One child generator per batch, drawn before any task starts
        child_rngs = self.rng.spawn(len(batches))
        forward = self.model.forward

        def task(index: int) -> BatchResult:
            return process_batch(
                forward, index, batches[index], strategy, self.config,
                self.schedule, self.vocab_size, child_rngs[index]
            )

        if not self.parallel_config.use_threads:
            return [task(i) for i in range(len(batches))]

        with ThreadPoolExecutor(max_workers=self.num_threads) as pool:
            futures = [pool.submit(task, i) for i in range(len(batches))]
        # Leaving the executor joins every task; result() re-raises worker errors
        return [f.result() for f in futures]

    def apply_updates(
        self,
        results: Sequence[BatchResult],
        num_samples: int,
        learning_rate: float
    ) -> float:
        """Aggregation phase: update the model and return the summed batch loss."""
        batch_size = self.parallel_config.batch_size
        width = self.config.max_length * self.vocab_size

        if self.parallel_config.update_policy == "batch":
            total_loss = 0.0
            for result in sorted(results, key=lambda r: r.batch_index):
                total_loss += result.loss
                self.model.backward(result.error_rows, learning_rate)
            return total_loss

        total_loss, accumulated = aggregate_results(results, num_samples, batch_size, width)
        if num_samples > 0:
            self.model.backward(accumulated, learning_rate)
        return total_loss

    def train(
        self,
        corpus: Sequence[np.ndarray],
        strategy: DiffusionStrategy = MASKED
    ) -> List[EpochStats]:
        """Main training loop.

        Args:
            corpus: Clean fixed-length sequences (not modified)
            strategy: Diffusion strategy (masked-loss by default)

        Returns:
            Per-epoch statistics
        """
        data = list(corpus)
        epochs = self.config.epochs
        num_batches = len(make_batches(data, self.parallel_config.batch_size))
        sample_every = self.parallel_config.sample_every
        history = []

        logger.info(
            f"Using {self.num_threads} threads "
            f"({int(self.parallel_config.cpu_fraction * 100)}% of {os.cpu_count() or 1} cores), "
            f"{num_batches} batches"
        )

        for epoch in range(epochs):
            start = time.perf_counter()
            lr = strategy.lr_schedule(self.config.learning_rate, epoch, epochs)

            if strategy.shuffle:
                data = [data[i] for i in self.rng.permutation(len(data))]

            results = self.run_batches(data, strategy)
            total_loss = self.apply_updates(results, len(data), lr)
            avg_loss = total_loss / max(num_batches, 1)

            elapsed = time.perf_counter() - start
            history.append(EpochStats(epoch, avg_loss, lr, elapsed))

            logger.debug(f"[{strategy.name}] epoch {epoch}: loss={avg_loss:.4f} lr={lr:.6f}")
            if epoch % sample_every == 0:
                logger.info(f"Epoch {epoch}, Loss: {avg_loss:.4f}, Time: {elapsed:.3f}s")
                if self.monitor is not None:
                    logger.info(f"Sample generation: {self.monitor()}")

        return history
