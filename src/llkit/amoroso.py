"""
Amoroso (generalised gamma) likelihood block, used to turn experimental upper
limits into a density.

With the physical limit a, scale theta and shapes alpha, beta, the Weibull
transform w = ((x - a) / theta)^beta of the observable is Gamma(alpha, 1)
distributed. For alpha * beta = 1 the mode sits at the physical limit.
"""

from __future__ import annotations

import math
from typing import Callable

import numpy as np
from scipy.special import gammainc, gammaincc, gammaln

from .blocks import LikelihoodBlock
from .cache import ObservableCache
from .errors import CalibrationMismatchError, ConfigurationError, NumericalNonConvergenceError
from .observables import ObservableLike
from .utils import (
    CALIBRATION_TOLERANCE,
    DEFAULT_ROOT_FINDER,
    RootFinderConfig,
    expand_bracket,
    find_root_bracketed,
    sigma_from_interval,
)


class AmorosoBlock(LikelihoodBlock):
    def __init__(
        self,
        cache: ObservableCache,
        id_: int,
        physical_limit: float,
        theta: float,
        alpha: float,
        beta: float,
        number_of_observations: int = 1,
        config: RootFinderConfig = DEFAULT_ROOT_FINDER,
    ) -> None:
        super().__init__(number_of_observations)
        _check_shape(theta, alpha, beta)
        self._cache = cache
        self._id = id_
        self._config = config
        self.physical_limit = float(physical_limit)
        self.theta = float(theta)
        self.alpha = float(alpha)
        self.beta = float(beta)
        self.norm = -gammaln(self.alpha) + math.log(abs(self.beta / self.theta))

    def __str__(self) -> str:
        name = self._cache.observable(self._id).name
        result = f"Amoroso limit: mode at {name} = {self.mode:.5g}"
        result += f" (a = {self.physical_limit:.5g}, theta = {self.theta:.5g}"
        result += f", alpha = {self.alpha:.5g}, beta = {self.beta:.5g})"
        return result + self._no_observation_suffix()

    @property
    def mode(self) -> float:
        shape = self.alpha - 1.0 / self.beta
        if shape <= 0.0:
            return self.physical_limit
        return self.physical_limit + self.theta * shape ** (1.0 / self.beta)

    def cdf(self, x: float) -> float:
        if x <= self.physical_limit:
            return 0.0
        w = ((x - self.physical_limit) / self.theta) ** self.beta
        if self.beta / self.theta < 0:
            return float(gammaincc(self.alpha, w))
        return float(gammainc(self.alpha, w))

    def sf(self, x: float) -> float:
        """Survival function 1 - cdf(x), accurate far in the upper tail."""
        if x <= self.physical_limit:
            return 1.0
        w = ((x - self.physical_limit) / self.theta) ** self.beta
        if self.beta / self.theta < 0:
            return float(gammainc(self.alpha, w))
        return float(gammaincc(self.alpha, w))

    def _standard_log_density(self, z: float) -> float:
        """Log-density in the standardised coordinate z = (x - a) / theta, without norm."""
        exponent = self.alpha * self.beta - 1.0
        if z < 0.0:
            return -math.inf
        if exponent == 0.0:
            return -(z**self.beta)
        if z == 0.0:
            return -math.inf if exponent > 0.0 else math.inf
        return exponent * math.log(z) - z**self.beta

    def evaluate(self) -> float:
        z = (self._cache[self._id] - self.physical_limit) / self.theta
        return self.norm + self._standard_log_density(z)

    def sample(self, rng: np.random.Generator) -> float:
        """
        Draw w from the standard gamma distribution.

        The inverse Weibull transform and the Weibull transform in the
        exponent cancel, so only the power term needs z = w^(1/beta).
        """
        w = rng.gamma(self.alpha, 1.0)
        z = w ** (1.0 / self.beta)
        # compare with the experimental distribution, not the prediction
        return self.norm + (self.alpha * self.beta - 1.0) * math.log(z) - w

    def _mirror_function(self, value: float) -> Callable[[float], float]:
        """log P(x) - log P(value) up to sign; zero at the point of equal density."""
        lp = self._standard_log_density((value - self.physical_limit) / self.theta)

        def f(x: float) -> float:
            zm = (x - self.physical_limit) / self.theta
            if zm == 0.0:
                # avoid infinity at the physical limit
                return float(np.finfo(float).max)
            return lp - self._standard_log_density(zm)

        return f

    def significance(self) -> float:
        value = self._cache[self._id]
        if value < self.physical_limit:
            return math.inf

        # mode at the boundary: the significance is just the cumulative at the point
        if self.alpha * self.beta - 1.0 < 1e-13:
            return sigma_from_interval(self.cdf(value), self.sf(value))

        mode = self.mode
        if value == mode:
            return 0.0
        if value == self.physical_limit:
            return math.inf

        if value > mode:
            mirror = self._lower_mirror_point(value)
            # probability outside [mirror, value], from both tails
            outside = self.cdf(mirror) + self.sf(value)
        else:
            f = self._mirror_function(value)
            # increase the upper end until it contains the mirror point
            x_max = expand_bracket(f, mode, mode - value)
            result = find_root_bracketed(f, mode, x_max, self._config)
            if not result.converged:
                raise NumericalNonConvergenceError(
                    f"Could not find the mirror point, stopped after {result.iterations} "
                    f"iterations with f({result.root}) = {f(result.root)}"
                )
            mirror = result.root
            outside = self.cdf(value) + self.sf(mirror)

        # probability of a smaller excess (1 - ordinary p-value)
        inside = abs(self.cdf(value) - self.cdf(mirror))
        # + if the measured value (the mode) exceeds the prediction
        return (1.0 if mode > value else -1.0) * sigma_from_interval(inside, outside)

    def _lower_mirror_point(self, value: float) -> float:
        """
        Point between the physical limit and the mode with the density at `value`.

        Far in the upper tail this point approaches the limit geometrically, so
        the search runs in u = log z.
        """
        lp = self._standard_log_density((value - self.physical_limit) / self.theta)

        def f(u: float) -> float:
            z = math.exp(u)
            if z == 0.0:
                return float(np.finfo(float).max)
            return lp - self._standard_log_density(z)

        u_mode = math.log((self.mode - self.physical_limit) / self.theta)
        u_min = expand_bracket(f, u_mode, -1.0)
        result = find_root_bracketed(f, u_min, u_mode, self._config)
        if not result.converged:
            raise NumericalNonConvergenceError(
                f"Could not find the mirror point, stopped after {result.iterations} "
                f"iterations with f({result.root}) = {f(result.root)}"
            )
        return self.physical_limit + self.theta * math.exp(result.root)

    def clone(self, cache: ObservableCache) -> "AmorosoBlock":
        observable = self._cache.observable(self._id).clone(cache.parameters)
        return AmorosoBlock(
            cache,
            cache.add(observable),
            self.physical_limit,
            self.theta,
            self.alpha,
            self.beta,
            self._number_of_observations,
            config=self._config,
        )


def _check_shape(theta: float, alpha: float, beta: float) -> None:
    if theta <= 0:
        raise ConfigurationError(
            f"Amoroso: scale parameter theta ({theta}) must be positive for an upper limit"
        )
    if alpha <= 0:
        raise ConfigurationError(f"Amoroso: shape parameter alpha ({alpha}) must be positive")
    if beta <= 0:
        raise ConfigurationError(f"Amoroso: shape parameter beta ({beta}) must be positive")


def _check_cdf(block: AmorosoBlock, x: float, probability: float, label: str) -> None:
    actual = block.cdf(x)
    if abs(actual - probability) > CALIBRATION_TOLERANCE:
        raise CalibrationMismatchError(f"cdf({label})", probability, actual, context="Amoroso")


def _calibrated(
    cache: ObservableCache,
    observable: ObservableLike,
    physical_limit: float,
    theta: float,
    alpha: float,
    beta: float,
    number_of_observations: int,
    check: Callable[[AmorosoBlock], None],
    config: RootFinderConfig,
) -> AmorosoBlock:
    # validate on a scratch cache so a failed calibration leaves `cache` untouched
    scratch = ObservableCache(cache.parameters)
    check(AmorosoBlock(scratch, scratch.add(observable), physical_limit, theta, alpha, beta, config=config))
    return AmorosoBlock(
        cache, cache.add(observable), physical_limit, theta, alpha, beta, number_of_observations, config
    )


def amoroso_limit(
    cache: ObservableCache,
    observable: ObservableLike,
    physical_limit: float,
    upper_limit_90: float,
    upper_limit_95: float,
    theta: float,
    alpha: float,
    number_of_observations: int = 1,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> AmorosoBlock:
    """
    Amoroso block with its mode at the physical limit (beta = 1/alpha),
    calibrated to the 90% and 95% upper limits.
    """
    if upper_limit_90 <= physical_limit:
        raise ConfigurationError("AmorosoLimit: upper_limit_90 <= physical_limit")
    if upper_limit_95 <= physical_limit:
        raise ConfigurationError("AmorosoLimit: upper_limit_95 <= physical_limit")
    if upper_limit_95 <= upper_limit_90:
        raise ConfigurationError("AmorosoLimit: upper_limit_95 <= upper_limit_90")
    _check_shape(theta, alpha, 1.0)

    def check(block: AmorosoBlock) -> None:
        _check_cdf(block, upper_limit_90, 0.90, "x_90")
        _check_cdf(block, upper_limit_95, 0.95, "x_95")

    return _calibrated(
        cache, observable, physical_limit, theta, alpha, 1.0 / alpha, number_of_observations, check, config
    )


def amoroso_mode(
    cache: ObservableCache,
    observable: ObservableLike,
    physical_limit: float,
    mode: float,
    upper_limit_90: float,
    upper_limit_95: float,
    theta: float,
    alpha: float,
    beta: float,
    number_of_observations: int = 1,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> AmorosoBlock:
    """Amoroso block calibrated to its mode and the 90% and 95% upper limits."""
    if mode <= physical_limit:
        raise ConfigurationError("AmorosoMode: mode <= physical_limit")
    if upper_limit_90 <= physical_limit:
        raise ConfigurationError("AmorosoMode: upper_limit_90 <= physical_limit")
    if upper_limit_95 <= upper_limit_90:
        raise ConfigurationError("AmorosoMode: upper_limit_95 <= upper_limit_90")
    _check_shape(theta, alpha, beta)

    def check(block: AmorosoBlock) -> None:
        if abs(block.mode - mode) > CALIBRATION_TOLERANCE:
            raise CalibrationMismatchError("mode", mode, block.mode, context="Amoroso")
        _check_cdf(block, upper_limit_90, 0.90, "x_90")
        _check_cdf(block, upper_limit_95, 0.95, "x_95")

    return _calibrated(
        cache, observable, physical_limit, theta, alpha, beta, number_of_observations, check, config
    )


def amoroso_quantiles(
    cache: ObservableCache,
    observable: ObservableLike,
    physical_limit: float,
    limit_10: float,
    limit_50: float,
    limit_90: float,
    theta: float,
    alpha: float,
    beta: float,
    number_of_observations: int = 1,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> AmorosoBlock:
    """Amoroso block calibrated to its 10%, 50% and 90% quantiles."""
    if limit_10 <= physical_limit:
        raise ConfigurationError("Amoroso: limit_10 <= physical_limit")
    if limit_50 <= limit_10:
        raise ConfigurationError("Amoroso: limit_50 <= limit_10")
    if limit_90 <= limit_50:
        raise ConfigurationError("Amoroso: limit_90 <= limit_50")
    _check_shape(theta, alpha, beta)

    def check(block: AmorosoBlock) -> None:
        _check_cdf(block, limit_10, 0.10, "x_10")
        _check_cdf(block, limit_50, 0.50, "x_50")
        _check_cdf(block, limit_90, 0.90, "x_90")

    return _calibrated(
        cache, observable, physical_limit, theta, alpha, beta, number_of_observations, check, config
    )


def amoroso(
    cache: ObservableCache,
    observable: ObservableLike,
    physical_limit: float,
    theta: float,
    alpha: float,
    beta: float,
    number_of_observations: int = 1,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> AmorosoBlock:
    """Uncalibrated Amoroso block."""
    _check_shape(theta, alpha, beta)
    return AmorosoBlock(
        cache, cache.add(observable), physical_limit, theta, alpha, beta, number_of_observations, config
    )
