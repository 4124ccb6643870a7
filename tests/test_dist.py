import numpy as np
import pytest

import trainsim.dist as dist


def test_uniform_samples_stay_in_range():
    unload = dist.make_uniform(3.5, 4.5, random_state=1)
    samples = unload.samples(500)

    assert samples.min() >= 3.5
    assert samples.max() <= 4.5
    assert unload.mean() == pytest.approx(4.0)
    assert str(unload) == "dist.uniform(3.5, 4.5)"


def test_seeded_streams_are_reproducible():
    first = dist.make_expon(10.0, random_state=42)
    second = dist.make_expon(10.0, random_state=42)

    assert [first.sample() for _ in range(5)] == [second.sample() for _ in range(5)]


def test_expon_mean_is_close_to_parameter():
    arrivals = dist.make_expon(10.0, random_state=np.random.default_rng(3))

    assert arrivals.samples(20000).mean() == pytest.approx(10.0, rel=0.05)
    assert arrivals.mean() == pytest.approx(10.0)


def test_convenience_builders_validate():
    with pytest.raises(ValueError):
        dist.make_expon(0)

    with pytest.raises(ValueError):
        dist.make_uniform(4.5, 3.5)

    with pytest.raises(ValueError):
        dist.make_uniform(-1.0, 1.0)
