"""Test forward noising process."""

import numpy as np

from tokendiff.core.diffusion.forward_process import (
    add_noise, add_noise_continuous, add_noise_exact, round_half_up
)
from tokendiff.core.diffusion.schedule import MaskSchedule
from tokendiff.tokenizer import PAD_ID, MASK_ID


def test_add_noise_pads_and_truncates(rng):
    padded = add_noise([4, 5], t=0, num_timesteps=10, max_length=5, rng=rng)
    assert len(padded) == 5
    assert padded[2:].tolist() == [PAD_ID] * 3

    truncated = add_noise([4, 5, 6, 7, 8, 9], t=0, num_timesteps=10, max_length=3, rng=rng)
    assert len(truncated) == 3


def test_add_noise_never_touches_pad(rng):
    x_0 = [4, 5, 6, 0, 0, 0]
    for t in range(10):
        x_t = add_noise(x_0, t, num_timesteps=10, max_length=6, rng=rng)
        assert x_t[3:].tolist() == [PAD_ID] * 3
        assert set(x_t[:3].tolist()) <= {4, 5, 6, MASK_ID}


def test_add_noise_rate_capped_at_80_percent(rng):
    x_0 = np.full(4000, 7)
    x_t = add_noise(x_0, t=9, num_timesteps=10, max_length=4000, rng=rng)
    rate = (x_t == MASK_ID).mean()
    assert 0.76 < rate < 0.84


def test_add_noise_does_not_modify_input(rng):
    x_0 = np.array([4, 5, 6, 7])
    add_noise(x_0, t=9, num_timesteps=10, max_length=4, rng=rng)
    assert x_0.tolist() == [4, 5, 6, 7]


def test_add_noise_continuous_extremes(rng):
    x_0 = [4, 5, 6, 0]
    assert add_noise_continuous(x_0, 0.0, 4, rng).tolist() == [4, 5, 6, 0]
    assert add_noise_continuous(x_0, 1.0, 4, rng).tolist() == [MASK_ID, MASK_ID, MASK_ID, 0]


def test_add_noise_continuous_rate(rng):
    x_0 = np.full(4000, 9)
    x_t = add_noise_continuous(x_0, 0.3, 4000, rng)
    assert 0.26 < (x_t == MASK_ID).mean() < 0.34


def test_add_noise_exact_example():
    """[4,5,0,0] at fraction 0.5 masks exactly one of positions 0, 1."""
    schedule = MaskSchedule(num_timesteps=2, start=0.5, end=0.5)
    for s in range(20):
        x_t = add_noise_exact([4, 5, 0, 0], 0, schedule, np.random.default_rng(s))
        assert (x_t == MASK_ID).sum() == 1
        assert x_t[2:].tolist() == [0, 0]
        assert x_t[0] in (4, MASK_ID) and x_t[1] in (5, MASK_ID)


def test_add_noise_exact_count(rng):
    schedule = MaskSchedule(num_timesteps=5, start=0.2, end=0.8)
    x_0 = np.array([4, 5, 6, 7, 8, 9, 10, 0, 0, 0])
    for t in range(5):
        expected = round_half_up(7 * schedule[t])
        x_t = add_noise_exact(x_0, t, schedule, rng)
        assert (x_t == MASK_ID).sum() == expected
        assert x_t[7:].tolist() == [0, 0, 0]


def test_add_noise_exact_zero_fraction_unchanged(rng):
    schedule = MaskSchedule(num_timesteps=3, start=0.0, end=0.0)
    x_0 = [4, 5, 6]
    assert add_noise_exact(x_0, 1, schedule, rng).tolist() == x_0


def test_add_noise_exact_all_pad_and_empty(rng):
    schedule = MaskSchedule(num_timesteps=3, start=1.0, end=1.0)
    assert add_noise_exact([0, 0, 0], 2, schedule, rng).tolist() == [0, 0, 0]
    assert len(add_noise_exact([], 2, schedule, rng)) == 0


def test_add_noise_exact_positions_vary_with_seed():
    schedule = MaskSchedule(num_timesteps=2, start=0.5, end=0.5)
    x_0 = np.arange(4, 24)
    chosen = {
        tuple(np.nonzero(add_noise_exact(x_0, 0, schedule, np.random.default_rng(s)) == MASK_ID)[0])
        for s in range(5)
    }
    assert len(chosen) > 1
    assert all(len(c) == 10 for c in chosen)


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(1.49) == 1
    assert round_half_up(0.0) == 0
