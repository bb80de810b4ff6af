import math

import numpy as np
import pytest

from htsopts.downsampling import ReadSampler, make_generator
from htsopts.errors import InvalidConfiguration
from htsopts.models import SamReaderOptions


def _run(sampler: ReadSampler, n: int) -> list:
    return [sampler.keep() for _ in range(n)]


@pytest.mark.parametrize("seed", [0, 1, 42, -5, 2**63 - 1])
def test_fraction_one_keeps_everything(seed):
    sampler = ReadSampler(1.0, seed)
    assert all(_run(sampler, 500))
    assert sampler.kept == sampler.calls == 500


def test_fraction_zero_disables_downsampling():
    sampler = ReadSampler(0.0, 123)
    assert not sampler.enabled
    assert all(_run(sampler, 500))


def test_same_seed_same_sequence():
    a = _run(ReadSampler(0.5, 2024), 1000)
    b = _run(ReadSampler(0.5, 2024), 1000)
    assert a == b


def test_different_seeds_differ():
    assert _run(ReadSampler(0.5, 1), 1000) != _run(ReadSampler(0.5, 2), 1000)


def test_sequence_matches_documented_generator():
    fraction, seed = 0.25, 7
    rng = np.random.Generator(np.random.PCG64(np.random.SeedSequence(seed)))
    expected = [rng.random() < fraction for _ in range(200)]
    assert _run(ReadSampler(fraction, seed), 200) == expected


def test_negative_seed_uses_twos_complement():
    a = make_generator(-1).random(10)
    b = make_generator(2**64 - 1).random(10)
    assert np.array_equal(a, b)


def test_kept_fraction_is_close_to_requested():
    sampler = ReadSampler(0.3, 11)
    kept = sum(_run(sampler, 20000))
    assert 0.28 < kept / 20000 < 0.32


@pytest.mark.parametrize("fraction", [1.5, -0.1, 1.0000001, math.nan, math.inf])
def test_invalid_fraction(fraction):
    with pytest.raises(InvalidConfiguration):
        ReadSampler(fraction, 0)


def test_sessions_do_not_share_state():
    options = SamReaderOptions(downsample_fraction=0.5, random_seed=99)
    s1 = ReadSampler.for_options(options)
    s2 = ReadSampler.for_options(options)
    out1, out2 = [], []
    for _ in range(300):
        out1.append(s1.keep())
        out1.append(s1.keep())
        out2.append(s2.keep())
    out2.extend(s2.keep() for _ in range(300))
    assert out1 == out2


def test_sample_iterable():
    items = list(range(100))
    kept = list(ReadSampler(0.5, 3).sample(items))
    assert kept == list(ReadSampler(0.5, 3).sample(items))
    assert set(kept) <= set(items)
    assert list(ReadSampler(0.0, 3).sample(items)) == items
