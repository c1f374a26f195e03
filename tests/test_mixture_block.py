# tests/test_mixture_block.py
import logging
import math

import numpy as np
import pytest

from llkit import (
    ConfigurationError,
    ObservableCache,
    UnsupportedOperationError,
    amoroso,
    gaussian,
    mixture,
)


def _components(cache, make_obs):
    return [
        gaussian(cache, make_obs("x"), -1.0, 0.0, 1.0),
        gaussian(cache, make_obs("x"), 1.0, 2.0, 4.0, 2),
    ]


def test_evaluate_is_weighted_sum_of_densities(cache, make_obs):
    components = _components(cache, make_obs)
    block = mixture(components, [1.0, 3.0])
    np.testing.assert_allclose(block.weights, [0.25, 0.75])

    cache.parameters.set("x", 0.7)
    cache.update()
    expected = math.log(
        0.25 * math.exp(components[0].evaluate()) + 0.75 * math.exp(components[1].evaluate())
    )
    assert block.evaluate() == pytest.approx(expected, rel=1e-12)
    assert block.number_of_observations == 3


def test_evaluate_is_stable_far_in_the_tails(cache, make_obs):
    components = [
        gaussian(cache, make_obs("x"), -0.001, 0.0, 0.001),
        gaussian(cache, make_obs("x"), -0.002, 0.0, 0.002),
    ]
    block = mixture(components, [0.5, 0.5])
    cache.parameters.set("x", 5.0)
    cache.update()
    # both components underflow exp(), the mixture must not
    value = block.evaluate()
    assert math.isfinite(value)
    assert value == pytest.approx(math.log(0.5) + components[1].evaluate(), rel=1e-9)


def test_sample_and_significance_unsupported(cache, make_obs):
    block = mixture(_components(cache, make_obs), [0.5, 0.5])
    with pytest.raises(UnsupportedOperationError):
        block.sample(np.random.default_rng(123))
    with pytest.raises(NotImplementedError):
        block.significance()
    assert block.test_statistic().empty


@pytest.mark.parametrize(
    "weights",
    [[1.0], [1.0, -1.0], [0.0, 0.0], [1.0, float("nan")]],
)
def test_invalid_weights(cache, make_obs, weights):
    with pytest.raises(ConfigurationError):
        mixture(_components(cache, make_obs), weights)


def test_empty_mixture():
    with pytest.raises(ConfigurationError):
        mixture([], [])


def test_normalised_weights_are_logged(cache, make_obs, caplog):
    with caplog.at_level(logging.DEBUG, logger="llkit.blocks"):
        mixture(_components(cache, make_obs), [2.0, 2.0])
    assert "norm. weights [0.5, 0.5]" in caplog.text


def test_clone(cache, make_obs):
    block = mixture(_components(cache, make_obs), [1.0, 3.0])
    other = ObservableCache(cache.parameters.clone())
    clone = block.clone(other)
    assert len(other) == 2

    other.parameters.set("x", 1.5)
    other.update()
    cache.update()
    assert clone.evaluate() != block.evaluate()
    cache.parameters.set("x", 1.5)
    cache.update()
    assert clone.evaluate() == pytest.approx(block.evaluate())


def test_evaluate_outside_every_support(cache, make_obs):
    components = [
        amoroso(cache, make_obs("x"), 0.0, 1.0, 2.0, 1.5),
        amoroso(cache, make_obs("x"), 0.0, 2.0, 2.0, 1.5),
    ]
    block = mixture(components, [0.5, 0.5])
    cache.parameters.set("x", -1.0)
    cache.update()
    assert all(c.evaluate() == -math.inf for c in components)
    assert block.evaluate() == -math.inf
