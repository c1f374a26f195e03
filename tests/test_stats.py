# tests/test_stats.py
import math

import numpy as np
import pytest
from scipy import stats

from llkit import ChiSquare, TestStatistic, empirical_p_value
from llkit.utils import (
    ONE_SIGMA,
    RootFinderConfig,
    expand_bracket,
    find_root_bracketed,
    find_root_newton,
    make_rng,
    sigma_from_interval,
    sigma_from_probability,
)
from llkit.errors import NumericalNonConvergenceError


@pytest.mark.parametrize("n_low, n", [(0, 10), (3, 10), (10, 10), (480, 1000)])
def test_empirical_p_value(n_low, n):
    p, uncertainty = empirical_p_value(n_low, n)
    p_expected = (n_low + 1) / (n + 2)
    assert p == n_low / n
    assert uncertainty == pytest.approx(math.sqrt(p_expected * (1 - p_expected) / (n + 3)))


@pytest.mark.parametrize("n_low, n", [(0, 0), (-1, 10), (11, 10)])
def test_empirical_p_value_invalid(n_low, n):
    with pytest.raises(ValueError):
        empirical_p_value(n_low, n)


def test_test_statistics():
    assert TestStatistic().empty
    t = ChiSquare(3.2, 2)
    assert not t.empty
    assert t.p_value == pytest.approx(stats.chi2.sf(3.2, 2))


@pytest.mark.parametrize("p, sigma", [(0.0, 0.0), (ONE_SIGMA, 1.0), (0.954499736103642, 2.0)])
def test_sigma_from_probability(p, sigma):
    assert sigma_from_probability(p) == pytest.approx(sigma, abs=1e-12)


@pytest.mark.parametrize("p", [0.0, 0.3, ONE_SIGMA, 0.999])
def test_sigma_from_interval_agrees_with_probability(p):
    assert sigma_from_interval(p, 1.0 - p) == pytest.approx(sigma_from_probability(p), abs=1e-9)


def test_sigma_from_interval_in_the_far_tail():
    outside = 1e-40
    assert sigma_from_probability(1.0 - outside) == math.inf
    sigma = sigma_from_interval(1.0 - outside, outside)
    assert math.isfinite(sigma)
    assert 2.0 * stats.norm.sf(sigma) == pytest.approx(outside, rel=1e-9)


def test_make_rng_is_deterministic():
    a = make_rng(42).standard_normal(5)
    b = make_rng(42).standard_normal(5)
    np.testing.assert_array_equal(a, b)
    assert not np.array_equal(a, make_rng(43).standard_normal(5))


def test_root_finders():
    config = RootFinderConfig(max_iterations=400, tolerance=1e-10)
    r = find_root_bracketed(lambda x: x * x - 2.0, 0.0, 2.0, config)
    assert r.converged and r.root == pytest.approx(math.sqrt(2.0), abs=1e-9)

    r = find_root_newton(lambda x: x * x - 2.0, lambda x: 2.0 * x, 1.0, config)
    assert r.converged and r.root == pytest.approx(math.sqrt(2.0), abs=1e-9)

    r = find_root_newton(lambda x: x * x + 1.0, lambda x: 2.0 * x, 0.3, RootFinderConfig(max_iterations=5))
    assert not r.converged


def test_expand_bracket():
    x = expand_bracket(lambda x: x - 10.0, 0.0, 1.0)
    assert x == 16.0
    with pytest.raises(NumericalNonConvergenceError):
        expand_bracket(lambda x: -1.0, 0.0, 1.0, max_expansions=10)
