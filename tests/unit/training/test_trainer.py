"""Test sequential trainer (basic and fraction-exact strategies)."""

import math
import threading
import pytest
import numpy as np
from dataclasses import replace

from tokendiff.config import DiffusionConfig
from tokendiff.core.diffusion.strategy import BASIC, BETTER
from tokendiff.core.diffusion.schedule import linear_decay_lr
from tokendiff.tokenizer import prepare_corpus, MASK_ID
from tokendiff.training.trainer import DiffusionTrainer, evaluate_sample


@pytest.fixture
def corpus(tokenizer, sentences, config):
    return prepare_corpus(tokenizer, sentences, config.max_length)


def test_basic_one_backward_per_sample(uniform_model, config, tokenizer, corpus, rng):
    trainer = DiffusionTrainer(uniform_model, config, tokenizer.vocab_size, rng=rng)
    history = trainer.train(corpus, BASIC)

    assert len(history) == config.epochs
    assert len(uniform_model.backward_calls) == config.epochs * len(corpus)
    for error_terms, _ in uniform_model.backward_calls:
        assert error_terms.shape == (config.max_length, tokenizer.vocab_size)


def test_basic_learning_rate_decay(uniform_model, config, tokenizer, corpus, rng):
    trainer = DiffusionTrainer(uniform_model, config, tokenizer.vocab_size, rng=rng)
    history = trainer.train(corpus, BASIC)

    for stats in history:
        assert stats.learning_rate == pytest.approx(
            linear_decay_lr(config.learning_rate, stats.epoch, config.epochs)
        )
    lrs = [lr for _, lr in uniform_model.backward_calls]
    assert lrs[0] == pytest.approx(config.learning_rate)
    assert lrs[-1] == pytest.approx(config.learning_rate * (1 - (config.epochs - 1) / config.epochs))


def test_basic_dense_loss(uniform_model, config, tokenizer, corpus, rng):
    """Uniform logits give log(V) per position; basic averages over L."""
    trainer = DiffusionTrainer(uniform_model, config, tokenizer.vocab_size, rng=rng)
    history = trainer.train(corpus, BASIC)
    for stats in history:
        assert stats.loss == pytest.approx(math.log(tokenizer.vocab_size))
    # Every position carries an error signal
    error_terms, _ = uniform_model.backward_calls[0]
    assert np.all(np.abs(error_terms).sum(axis=1) > 0)


def test_better_error_terms_only_at_masked_positions(uniform_model, config, tokenizer, corpus, rng):
    x_0 = corpus[0]
    trainer = DiffusionTrainer(uniform_model, config, tokenizer.vocab_size, rng=rng)
    loss, error_terms = evaluate_sample(
        uniform_model.forward, x_0, BETTER, config, trainer.schedule, tokenizer.vocab_size, rng
    )
    nonzero_rows = np.nonzero(np.abs(error_terms).sum(axis=1) > 0)[0]
    # Padding rows never contribute
    assert all(x_0[i] != 0 for i in nonzero_rows)
    assert loss == pytest.approx(len(nonzero_rows) * math.log(tokenizer.vocab_size))


def test_better_shuffles_without_mutating_corpus(uniform_model, config, tokenizer, corpus, rng):
    before = [x.copy() for x in corpus]
    trainer = DiffusionTrainer(uniform_model, config, tokenizer.vocab_size, rng=rng)
    trainer.train(corpus, BETTER)

    assert all(np.array_equal(a, b) for a, b in zip(corpus, before))
    assert len(uniform_model.backward_calls) == config.epochs * len(corpus)


class OrderRecordingModel:
    """Uniform logits; records the token ids of every forward input."""

    def __init__(self, max_length, vocab_size):
        self.shape = (max_length, vocab_size)
        self.seen = []
        self._lock = threading.Lock()

    def forward(self, batch):
        batch = np.asarray(batch)
        with self._lock:
            self.seen.append(tuple(np.argmax(batch, axis=1).tolist()))
        return np.zeros(self.shape).reshape(1, -1)

    def backward(self, error_terms, learning_rate):
        pass


def _keep_clean(x_0, config, schedule, rng):
    return np.array(x_0, dtype=np.int64)


def _epoch_orders(strategy, config, tokenizer, corpus, rng):
    model = OrderRecordingModel(config.max_length, tokenizer.vocab_size)
    config = replace(config, epochs=6)
    trainer = DiffusionTrainer(model, config, tokenizer.vocab_size, rng=rng)
    trainer.train(corpus, replace(strategy, noise=_keep_clean))
    n = len(corpus)
    return [model.seen[e * n:(e + 1) * n] for e in range(config.epochs)]


def test_better_shuffles_corpus_each_epoch(config, tokenizer, corpus, rng):
    orders = _epoch_orders(BETTER, config, tokenizer, corpus, rng)
    clean = sorted(tuple(x.tolist()) for x in corpus)

    # Every epoch visits each sample exactly once
    for order in orders:
        assert sorted(order) == clean
    assert len(set(tuple(order) for order in orders)) > 1


def test_basic_keeps_corpus_order(config, tokenizer, corpus, rng):
    orders = _epoch_orders(BASIC, config, tokenizer, corpus, rng)
    expected = [tuple(x.tolist()) for x in corpus]
    for order in orders:
        assert order == expected


def test_zero_epochs_trains_nothing(uniform_model, tokenizer, corpus, rng):
    config = DiffusionConfig(num_timesteps=5, max_length=8, epochs=0)
    trainer = DiffusionTrainer(uniform_model, config, tokenizer.vocab_size, rng=rng)
    assert trainer.train(corpus, BASIC) == []
    assert uniform_model.backward_calls == []


def test_basic_noise_never_masks_padding(echo_model, config, tokenizer, corpus, rng):
    trainer = DiffusionTrainer(echo_model, config, tokenizer.vocab_size, rng=rng)
    for x_0 in corpus:
        x_t = BASIC.noise(x_0, config, trainer.schedule, rng)
        assert np.all(x_t[x_0 == 0] == 0)
        assert set(np.unique(x_t[x_t != x_0])) <= {MASK_ID}
