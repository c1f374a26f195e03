# tests/test_loggamma_block.py
import logging
import math

import numpy as np
import pytest
from scipy import optimize, stats
from scipy.special import ndtri

from llkit import (
    CalibrationMismatchError,
    ConfigurationError,
    ObservableCache,
    log_gamma,
)
from llkit.loggamma import check_log_gamma_calibration, solve_log_gamma_parameters
from llkit.utils import ONE_SIGMA

BANDS = [
    (0.5, 1.0, 2.0),  # positive skew
    (0.0, 1.0, 1.5),  # negative skew
    (9.0, 10.0, 13.0),
    (1.9, 2.0, 2.11),
]


@pytest.mark.parametrize("band", BANDS)
def test_solved_parameters_reproduce_the_interval(cache, make_obs, band):
    min_, central, max_ = band
    block = log_gamma(cache, make_obs("x"), min_, central, max_)

    # positive skew <=> negative lambda
    assert (block.lambda_ < 0) == (max_ - central > central - min_)
    assert block.alpha > 0

    mass = block.cdf(max_) - block.cdf(min_)
    assert abs(mass - ONE_SIGMA) < 1e-4, f"probability content {mass:.6f}"
    assert block._log_density(min_) == pytest.approx(block._log_density(max_), abs=1e-4)

    # mode at the central value
    for eps in (1e-3, -1e-3):
        assert block._log_density(central) > block._log_density(central + eps)


def test_evaluate_matches_scipy_loggamma(cache, make_obs):
    block = log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0)
    dist = stats.loggamma(block.alpha)
    for value in (0.3, 1.0, 1.7, 3.0):
        cache.parameters.set("x", value)
        cache.update()
        expected = dist.logpdf((value - block.nu) / block.lambda_) - math.log(abs(block.lambda_))
        assert block.evaluate() == pytest.approx(expected, rel=1e-10)


def test_explicit_parameters_are_verified(cache, make_obs):
    lambda_, alpha = solve_log_gamma_parameters(0.5, 1.0)
    block = log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0, lambda_=lambda_, alpha=alpha)
    assert (block.lambda_, block.alpha) == (lambda_, alpha)

    with pytest.raises(CalibrationMismatchError) as info:
        log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0, lambda_=lambda_, alpha=1.1 * alpha)
    assert info.value.expected == pytest.approx(ONE_SIGMA)
    assert len(cache) == 1, "a failed calibration must not register the observable"


@pytest.mark.parametrize(
    "kwargs",
    [{"lambda_": -1.0}, {"alpha": 2.0}, {"lambda_": -1.0, "alpha": 0.0}, {"lambda_": -1.0, "alpha": -2.0}],
)
def test_invalid_explicit_parameters(cache, make_obs, kwargs):
    with pytest.raises(ConfigurationError):
        log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0, **kwargs)


def test_symmetric_interval_is_rejected(cache, make_obs):
    with pytest.raises(ConfigurationError):
        log_gamma(cache, make_obs("x"), 1.0, 2.0, 3.0)
    assert len(cache) == 0


def test_near_symmetric_interval_warns(cache, make_obs, caplog):
    with caplog.at_level(logging.WARNING, logger="llkit.loggamma"):
        block = log_gamma(cache, make_obs("x"), 1.0, 2.0, 3.05)
    assert "nearly symmetric" in caplog.text
    assert abs(block.cdf(3.05) - block.cdf(1.0) - ONE_SIGMA) < 1e-4


def test_injected_logger(cache, make_obs, caplog):
    logger = logging.getLogger("test.loggamma")
    with caplog.at_level(logging.WARNING, logger="test.loggamma"):
        log_gamma(cache, make_obs("x"), 1.0, 2.0, 3.05, logger=logger)
    assert [r.name for r in caplog.records] == ["test.loggamma"]


def test_no_warning_for_clear_asymmetry(cache, make_obs, caplog):
    with caplog.at_level(logging.WARNING):
        log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0)
    assert caplog.records == []


@pytest.mark.parametrize("band", BANDS)
def test_significance_at_the_interval_ends(cache, make_obs, band):
    """Both ends of the one-sigma interval have equal density, so they are one sigma away."""
    min_, central, max_ = band
    block = log_gamma(cache, make_obs("x"), min_, central, max_)

    cache.parameters.set("x", central)
    cache.update()
    assert block.significance() == 0.0

    cache.parameters.set("x", max_)
    cache.update()
    assert block.significance() == pytest.approx(-1.0, abs=1e-3)

    cache.parameters.set("x", min_)
    cache.update()
    assert block.significance() == pytest.approx(1.0, abs=1e-3)


def test_significance_far_in_the_tail(cache, make_obs):
    block = log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0)
    cache.parameters.set("x", 4.0)
    cache.update()
    assert block.significance() < -1.5


def test_sample_is_reproducible(cache, make_obs):
    block = log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0)
    a = [block.sample(np.random.default_rng(7)) for _ in range(3)]
    b = [block.sample(np.random.default_rng(7)) for _ in range(3)]
    assert a == b
    rng = np.random.default_rng(123)
    values = np.array([block.sample(rng) for _ in range(2000)])
    assert np.all(np.isfinite(values))
    # the central value is scored against a density peaked at the draw
    assert np.all(values <= block.norm + block.alpha * math.log(block.alpha) - block.alpha + 1e-12)


def test_check_calibration_helper():
    lambda_, alpha = solve_log_gamma_parameters(1.0, 2.0)
    check_log_gamma_calibration(5.0, 1.0, 2.0, lambda_, alpha)
    with pytest.raises(CalibrationMismatchError):
        check_log_gamma_calibration(5.0, 1.0, 2.5, lambda_, alpha)


def test_clone_and_str(cache, make_obs):
    block = log_gamma(cache, make_obs("x"), 0.5, 1.0, 2.0, 0)
    other = ObservableCache(cache.parameters.clone())
    clone = block.clone(other)
    assert (clone.lambda_, clone.alpha, clone.nu) == (block.lambda_, block.alpha, block.nu)
    assert clone.number_of_observations == 0
    assert str(clone).startswith("LogGamma: 1 + 1 - 0.5 (nu = ")
    assert str(clone).endswith("; no observation")


def test_sample_with_extreme_asymmetry(cache, make_obs):
    # alpha is tiny here, so the gamma draws underflow to zero now and then
    block = log_gamma(cache, make_obs("x"), 0.0, 1.0, 101.0)
    assert block.alpha < 0.01
    rng = np.random.default_rng(1)
    values = np.array([block.sample(rng) for _ in range(2000)])
    assert np.all(np.isfinite(values))


def test_significance_when_newton_misses_the_mirror_point(cache, make_obs):
    block = log_gamma(cache, make_obs("x"), 0.99, 1.0, 1.5)
    value = 1.0 + 2.0 * 0.5
    dist = stats.loggamma(block.alpha)

    def log_density(x):
        return dist.logpdf((x - block.nu) / block.lambda_) - math.log(abs(block.lambda_))

    target = log_density(value)

    def f(x):
        return log_density(x) - target

    step = 0.01
    while f(1.0 - step) > 0:
        step *= 2.0
    mirror = optimize.brentq(f, 1.0 - step, 1.0, xtol=1e-14)
    z_value = (value - block.nu) / block.lambda_
    z_mirror = (mirror - block.nu) / block.lambda_
    p = abs(dist.cdf(z_value) - dist.cdf(z_mirror))

    cache.parameters.set("x", value)
    cache.update()
    significance = block.significance()
    assert significance == pytest.approx(-ndtri((p + 1.0) / 2.0), abs=1e-5)
    assert significance == pytest.approx(-1.6334, abs=1e-4)
