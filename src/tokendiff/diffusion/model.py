"""Discrete text diffusion model.

Ties a sequence model adapter, a word tokenizer and a mask schedule
together and exposes the three trainer/generator pairs:

- train / generate:                basic noising, greedy denoising
- train_masked / generate_masked:  concurrent masked-loss training,
                                   annealed re-masking sampler
- train_better / generate_better:  fraction-exact noising, t/T re-masking
"""

import logging
import numpy as np
from typing import List, Optional, Sequence

from ..config import DiffusionConfig, ParallelConfig
from ..tokenizer import WordTokenizer, prepare_corpus
from ..core.diffusion.schedule import MaskSchedule
from ..core.diffusion.forward_process import add_noise, add_noise_continuous, add_noise_exact
from ..core.diffusion.strategy import DiffusionStrategy, BASIC, MASKED, BETTER, get_strategy
from ..models.sequence_model import SequenceModel
from ..training.trainer import DiffusionTrainer, EpochStats
from ..training.parallel import ParallelDiffusionTrainer


logger = logging.getLogger(__name__)


class DiffusionModel:
    """Masked discrete diffusion over word tokens."""

    def __init__(
        self,
        network: SequenceModel,
        config: DiffusionConfig,
        sentences: Sequence[str],
        parallel_config: Optional[ParallelConfig] = None,
        rng: Optional[np.random.Generator] = None,
        tokenizer: Optional[WordTokenizer] = None
    ):
        """Initialize model.

        Args:
            network: Sequence model adapter
            config: Diffusion configuration
            sentences: Corpus used to build the vocabulary
            parallel_config: Options for the concurrent trainer
            rng: Random generator shared by noising, training and sampling
            tokenizer: Prebuilt tokenizer (built from sentences if None)
        """
        self.network = network
        self.config = config
        self.tokenizer = tokenizer if tokenizer is not None else WordTokenizer(sentences)
        self.parallel_config = parallel_config or ParallelConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.mask_schedule = MaskSchedule(
            config.num_timesteps, config.mask_schedule_start, config.mask_schedule_end
        )

    @property
    def vocab_size(self) -> int:
        return self.tokenizer.vocab_size

    # Noising

    def add_noise(self, tokens: Sequence[int], t: int) -> np.ndarray:
        return add_noise(
            tokens, t, self.config.num_timesteps, self.config.max_length, self.rng,
            self.tokenizer.pad_id, self.tokenizer.mask_id
        )

    def add_noise_masked(self, tokens: Sequence[int], t_val: float) -> np.ndarray:
        return add_noise_continuous(
            tokens, t_val, self.config.max_length, self.rng,
            self.tokenizer.pad_id, self.tokenizer.mask_id
        )

    def better_add_noise(self, x_0: Sequence[int], t: int) -> np.ndarray:
        return add_noise_exact(
            x_0, t, self.mask_schedule, self.rng,
            self.tokenizer.pad_id, self.tokenizer.mask_id
        )

    # Training

    def prepare(self, sentences: Sequence[str]) -> List[np.ndarray]:
        """Encode and pad sentences to max_length."""
        return prepare_corpus(self.tokenizer, sentences, self.config.max_length)

    def fit(self, samples: Sequence[Sequence[int]], strategy: DiffusionStrategy) -> List[EpochStats]:
        """Train on encoded samples with the given strategy.

        The masked strategy runs on the concurrent trainer; the others run
        sequentially with one update per sample.
        """
        corpus = [np.asarray(s, dtype=np.int64) for s in samples]
        logger.info(f"Training with '{strategy.name}' strategy on {len(corpus)} samples")
        if strategy is MASKED:
            trainer = ParallelDiffusionTrainer(
                self.network, self.config, self.vocab_size,
                parallel_config=self.parallel_config,
                schedule=self.mask_schedule,
                rng=self.rng,
                monitor=self.generate_masked
            )
        else:
            trainer = DiffusionTrainer(
                self.network, self.config, self.vocab_size,
                schedule=self.mask_schedule,
                rng=self.rng
            )
        return trainer.train(corpus, strategy)

    def train(self, sentences: Sequence[str]) -> List[EpochStats]:
        return self.fit(self.prepare(sentences), BASIC)

    def train_masked(self, sentences: Sequence[str]) -> List[EpochStats]:
        return self.fit(self.prepare(sentences), MASKED)

    def train_better(self, samples: Sequence[Sequence[int]]) -> List[EpochStats]:
        return self.fit(samples, BETTER)

    # Generation

    def sample_ids(self, strategy: DiffusionStrategy) -> np.ndarray:
        return strategy.generate(self.network.forward, self.vocab_size, self.config, self.rng)

    def sample(self, strategy_name: str) -> str:
        """Generate decoded text with a named strategy."""
        return self.tokenizer.decode(self.sample_ids(get_strategy(strategy_name)))

    def generate(self) -> str:
        return self.tokenizer.decode(self.sample_ids(BASIC))

    def generate_masked(self) -> str:
        return self.tokenizer.decode(self.sample_ids(MASKED))

    def generate_better(self) -> np.ndarray:
        return self.sample_ids(BETTER)
