"""
Log-gamma likelihood block for asymmetric uncertainties with smooth tails.

If G ~ Gamma(alpha, 1), then X = nu + lambda log(G) is log-gamma distributed.
In standardised coordinates z = (x - nu) / lambda the log-density is

    log P(x) = -ln Gamma(alpha) - log|lambda| + alpha z - exp(z),

with the mode at x = nu + lambda log(alpha). A negative lambda gives positive
skew.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np
from scipy.optimize import brentq, least_squares
from scipy.special import gammainc, gammaincc, gammaln

from .blocks import LikelihoodBlock, _check_band
from .cache import ObservableCache
from .errors import CalibrationMismatchError, ConfigurationError
from .observables import ObservableLike
from .utils import (
    CALIBRATION_TOLERANCE,
    DEFAULT_ROOT_FINDER,
    ONE_SIGMA,
    RootFinderConfig,
    expand_bracket,
    find_root_bracketed,
    find_root_newton,
    sigma_from_probability,
)

log = logging.getLogger(__name__)

# upper bound on the shape parameter in the standardised fit
ALPHA_MAX = 1e6

# asymmetry ratios below which the parameters are ill-conditioned
NEAR_SYMMETRIC_SOLVED = 1.06
NEAR_SYMMETRIC_EXPLICIT = 1.05


class LogGammaBlock(LikelihoodBlock):
    """
    Log-gamma block for a measurement central^{+sigma_upper}_{-sigma_lower}.

    `(lambda_, alpha)` must reproduce the measurement: equal density at both
    ends of the interval, and one-sigma probability content in between.
    Construction raises CalibrationMismatchError otherwise.
    """

    def __init__(
        self,
        cache: ObservableCache,
        id_: int,
        min_: float,
        central: float,
        max_: float,
        lambda_: float,
        alpha: float,
        number_of_observations: int = 1,
        logger: Optional[logging.Logger] = None,
        config: RootFinderConfig = DEFAULT_ROOT_FINDER,
    ) -> None:
        super().__init__(number_of_observations)
        _check_band("LogGamma", min_, central, max_)
        if alpha <= 0:
            raise ConfigurationError(f"LogGamma: shape parameter alpha ({alpha}) must be positive")
        if lambda_ == 0:
            raise ConfigurationError("LogGamma: scale parameter lambda must be non-zero")

        self._cache = cache
        self._id = id_
        self._logger = logger or log
        self._config = config
        self.band = (float(min_), float(central), float(max_))
        self.central = float(central)
        self.sigma_lower = float(central - min_)
        self.sigma_upper = float(max_ - central)
        self.lambda_ = float(lambda_)
        self.alpha = float(alpha)
        self.nu = self.central - self.lambda_ * math.log(self.alpha)
        self.norm = -gammaln(self.alpha) - math.log(abs(self.lambda_))

        check_log_gamma_calibration(
            self.central, self.sigma_lower, self.sigma_upper, self.lambda_, self.alpha
        )

    def __str__(self) -> str:
        result = f"LogGamma: {self.central:g} + {self.sigma_upper:g} - {self.sigma_lower:g}"
        result += f" (nu = {self.nu:g}, lambda = {self.lambda_:g}, alpha = {self.alpha:g})"
        return result + self._no_observation_suffix()

    def cdf(self, x: float) -> float:
        return log_gamma_cdf(x, self.nu, self.lambda_, self.alpha)

    def _log_density(self, x: float) -> float:
        z = (x - self.nu) / self.lambda_
        return self.norm + self.alpha * z - float(np.exp(z))

    def evaluate(self) -> float:
        return self._log_density(self._cache[self._id])

    def sample(self, rng: np.random.Generator) -> float:
        """
        Draw a pseudo-measurement, then score the central value against a
        density with its mode moved to the draw.

        Draws more than three standard deviations from the central value are
        rejected.
        """
        range_min = self.central - 3.0 * self.sigma_lower
        range_max = self.central + 3.0 * self.sigma_upper
        while True:
            g = rng.gamma(self.alpha, 1.0)
            if g == 0.0:
                # underflow for small alpha, log(g) would be infinite
                continue
            x = self.lambda_ * math.log(g) + self.nu
            if range_min < x < range_max:
                break

        nu_pseudo = x - self.lambda_ * math.log(self.alpha)
        # compare with the central value, not the prediction
        value = (self.central - nu_pseudo) / self.lambda_
        return self.norm + self.alpha * value - math.exp(value)

    def significance(self) -> float:
        """
        Probability content of the smallest interval around the mode that
        reaches the prediction, in Gaussian sigmas.

        The other end of the interval is the mirror point with the same
        density on the opposite side of the mode.
        """
        value = self._cache[self._id]
        if value == self.central:
            return 0.0

        zp = (value - self.nu) / self.lambda_
        fp = self.alpha * zp - math.exp(zp)

        def f(x: float) -> float:
            zm = (x - self.nu) / self.lambda_
            return fp - self.alpha * zm + float(np.exp(zm))

        def df(x: float) -> float:
            zm = (x - self.nu) / self.lambda_
            return (float(np.exp(zm)) - self.alpha) / self.lambda_

        result = find_root_newton(f, df, 2.0 * self.central - value, self._config)
        if not result.converged or (result.root - self.central) * (value - self.central) >= 0.0:
            # the mirror point lies on the other side of the mode, where f grows away from it
            far = expand_bracket(f, self.central, self.central - value)
            result = find_root_bracketed(f, min(self.central, far), max(self.central, far), self._config)
        mirror = result.root
        if not result.converged:
            self._logger.error(
                "Could not find the mirror point, stopped after %d iterations with f(%g) = %g",
                result.iterations,
                mirror,
                f(mirror),
            )

        p = abs(self.cdf(value) - self.cdf(mirror))
        # + if the measured value (the mode) exceeds the prediction
        return (1.0 if self.central > value else -1.0) * sigma_from_probability(p)

    def clone(self, cache: ObservableCache) -> "LogGammaBlock":
        observable = self._cache.observable(self._id).clone(cache.parameters)
        min_, central, max_ = self.band
        return LogGammaBlock(
            cache,
            cache.add(observable),
            min_,
            central,
            max_,
            self.lambda_,
            self.alpha,
            self._number_of_observations,
            logger=self._logger,
            config=self._config,
        )


def log_gamma_cdf(x: float, nu: float, lambda_: float, alpha: float) -> float:
    z = float(np.exp((x - nu) / lambda_))
    if lambda_ < 0:
        return float(gammaincc(alpha, z))
    return float(gammainc(alpha, z))


def check_log_gamma_calibration(
    central: float, sigma_lower: float, sigma_upper: float, lambda_: float, alpha: float
) -> None:
    """
    Raise CalibrationMismatchError unless (lambda_, alpha) put equal density at
    both ends of [central - sigma_lower, central + sigma_upper] and one-sigma
    probability content in between.
    """
    nu = central - lambda_ * math.log(alpha)
    upper = central + sigma_upper
    lower = central - sigma_lower

    mass = log_gamma_cdf(upper, nu, lambda_, alpha) - log_gamma_cdf(lower, nu, lambda_, alpha)
    if abs(mass - ONE_SIGMA) > CALIBRATION_TOLERANCE:
        raise CalibrationMismatchError("cdf(upper) - cdf(lower)", ONE_SIGMA, mass, context="LogGamma")

    z_plus = (upper - nu) / lambda_
    z_minus = (lower - nu) / lambda_
    difference = alpha * z_plus - math.exp(z_plus) - alpha * z_minus + math.exp(z_minus)
    if abs(difference) > CALIBRATION_TOLERANCE:
        raise CalibrationMismatchError(
            "log P(upper) - log P(lower)", 0.0, difference, context="LogGamma"
        )


def _standard_residuals(params: np.ndarray, sigma_plus: float) -> np.ndarray:
    """
    Residuals of the standardised problem: mode at 0, interval [-1, sigma_plus].

    First: log-density difference at the two ends (prefactors dropped).
    Second: probability content minus the one-sigma coverage.
    """
    lambda_, alpha = float(params[0]), float(params[1])
    nu = -lambda_ * math.log(alpha)
    z_plus = (sigma_plus - nu) / lambda_
    z_minus = (-1.0 - nu) / lambda_
    first = alpha * z_plus - math.exp(z_plus) - alpha * z_minus + math.exp(z_minus)
    mass = gammaincc(alpha, math.exp(z_plus)) - gammaincc(alpha, math.exp(z_minus))
    return np.array([first, mass - ONE_SIGMA], dtype=float)


def solve_log_gamma_parameters(sigma_lower: float, sigma_upper: float) -> tuple[float, float]:
    """
    Find (lambda, alpha) for the interval [-sigma_lower, +sigma_upper] around the mode.

    The problem is standardised so that the narrower side has width one,
    which fixes lambda < 0. With s = -1/lambda and t = x/lambda the density
    condition h(-sigma_plus s) = h(s), h(t) = t - exp(t), involves s alone;
    the coverage condition then fixes alpha. Both are bracketed first and the
    pair is refined by a bounded least-squares search on both conditions.
    """
    if sigma_lower <= 0 or sigma_upper <= 0:
        raise ConfigurationError("LogGamma: uncertainties must be positive")
    if sigma_lower == sigma_upper:
        raise ConfigurationError(
            "LogGamma: symmetric uncertainties cannot be described, use a Gaussian block instead"
        )

    sigma_plus = max(sigma_upper, sigma_lower) / min(sigma_upper, sigma_lower)

    def density_condition(s: float) -> float:
        # h(-sigma_plus s) - h(s), written with expm1 for small s
        a, b = -sigma_plus * s, s
        return (a - b) - (math.expm1(a) - math.expm1(b))

    s_hi = 1.0
    while density_condition(s_hi) <= 0.0:
        s_hi *= 2.0
    s_lo = s_hi
    for _ in range(200):
        if density_condition(s_lo) < 0.0:
            break
        s_lo /= 2.0
    else:
        raise ConfigurationError(
            f"LogGamma: cannot solve for asymmetry ratio {sigma_plus}, use a Gaussian block instead"
        )
    s = brentq(density_condition, s_lo, s_hi)
    t_plus, t_minus = -sigma_plus * s, s

    def coverage_condition(log_alpha: float) -> float:
        alpha = math.exp(log_alpha)
        mass = gammaincc(alpha, alpha * math.exp(t_plus)) - gammaincc(alpha, alpha * math.exp(t_minus))
        return mass - ONE_SIGMA

    try:
        log_alpha = brentq(coverage_condition, math.log(1e-6), math.log(ALPHA_MAX))
    except ValueError as e:
        raise ConfigurationError(
            f"LogGamma: cannot solve for asymmetry ratio {sigma_plus}, use a Gaussian block instead"
        ) from e
    x0 = np.array([-1.0 / s, math.exp(log_alpha)])

    fit = least_squares(
        _standard_residuals,
        x0,
        args=(sigma_plus,),
        bounds=([-np.inf, 0.0], [0.0, ALPHA_MAX]),
        xtol=1e-14,
        ftol=1e-14,
        gtol=1e-14,
    )
    lambda_std, alpha = (fit.x if fit.success else x0).tolist()

    # for positive skew lambda is negative; the fit assumed positive skew
    scale = sigma_lower if sigma_upper > sigma_lower else -sigma_upper
    return scale * lambda_std, alpha


def log_gamma(
    cache: ObservableCache,
    observable: ObservableLike,
    min_: float,
    central: float,
    max_: float,
    number_of_observations: int = 1,
    *,
    lambda_: Optional[float] = None,
    alpha: Optional[float] = None,
    logger: Optional[logging.Logger] = None,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> LogGammaBlock:
    """
    Log-gamma block for central^{+(max-central)}_{-(central-min)}.

    Without `lambda_` and `alpha`, the parameters are solved for; with both
    given, they are verified against the interval instead.
    """
    logger = logger or log
    _check_band("LogGamma", min_, central, max_)
    sigma_lower, sigma_upper = central - min_, max_ - central
    ratio = max(sigma_lower, sigma_upper) / min(sigma_lower, sigma_upper)

    if (lambda_ is None) != (alpha is None):
        raise ConfigurationError("LogGamma: lambda_ and alpha must be given together")

    if lambda_ is None or alpha is None:
        threshold = NEAR_SYMMETRIC_SOLVED
    else:
        threshold = NEAR_SYMMETRIC_EXPLICIT
        if alpha <= 0:
            raise ConfigurationError(f"LogGamma: shape parameter alpha ({alpha}) must be positive")

    if ratio < threshold:
        logger.warning(
            "For nearly symmetric uncertainties (%g vs %g), this procedure may fail to find "
            "the correct parameter values. Please use a Gaussian block instead.",
            sigma_lower,
            sigma_upper,
        )

    if lambda_ is None or alpha is None:
        lambda_, alpha = solve_log_gamma_parameters(sigma_lower, sigma_upper)

    # check the parameters before anything is registered on the cache
    check_log_gamma_calibration(central, sigma_lower, sigma_upper, lambda_, alpha)
    return LogGammaBlock(
        cache,
        cache.add(observable),
        min_,
        central,
        max_,
        lambda_,
        alpha,
        number_of_observations,
        logger=logger,
        config=config,
    )
