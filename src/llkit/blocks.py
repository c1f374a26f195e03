"""
Likelihood blocks: probability densities of measurements given a cached
theory prediction.

Every block

- evaluates its log-density at the current cache values (`evaluate`),
- draws the log-density of a pseudo-measurement generated around the
  current prediction (`sample`),
- expresses the deviation of prediction and measurement in Gaussian sigmas
  (`significance`),
- rebinds itself to another ObservableCache (`clone`).

The univariate Gaussian, the mixture and the multivariate Gaussian live
here; the log-gamma and Amoroso blocks live in `loggamma` and `amoroso`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import math
from typing import Optional, Sequence, Union, cast

import numpy as np
from numpy.typing import NDArray
from scipy.special import ndtri
from scipy.stats import chi2

from .cache import ObservableCache
from .errors import ConfigurationError, UnsupportedOperationError
from .observables import ObservableLike
from .stats import ChiSquare, TestStatistic
from .utils import (
    cholesky_lower,
    inverse_from_cholesky,
    log_determinant_lu,
    sigma_from_probability,
)

log = logging.getLogger(__name__)

# Flexible input types the user may pass for a covariance
CovInput = Union[float, int, np.ndarray, Sequence[float], Sequence[Sequence[float]]]


class LikelihoodBlock(ABC):
    """
    Interface of all likelihood blocks.

    The number of observations a block represents is fixed at construction.
    Blocks with zero observations still contribute to the log-likelihood but
    are ignored by the bootstrap p-value.
    """

    def __init__(self, number_of_observations: int) -> None:
        if number_of_observations < 0:
            raise ConfigurationError(
                f"number of observations must be non-negative, got {number_of_observations}"
            )
        self._number_of_observations = int(number_of_observations)

    @property
    def number_of_observations(self) -> int:
        return self._number_of_observations

    @abstractmethod
    def evaluate(self) -> float:
        """Log-density at the current cache values."""

    @abstractmethod
    def sample(self, rng: np.random.Generator) -> float:
        """Log-density of one pseudo-measurement drawn for the current prediction."""

    @abstractmethod
    def significance(self) -> float:
        """Signed deviation in Gaussian sigmas; positive if the measurement exceeds the prediction."""

    @abstractmethod
    def clone(self, cache: ObservableCache) -> "LikelihoodBlock":
        """Equivalent block whose observables are registered on `cache`."""

    def test_statistic(self) -> TestStatistic:
        return TestStatistic()

    def _no_observation_suffix(self) -> str:
        return "; no observation" if self._number_of_observations == 0 else ""


class GaussianBlock(LikelihoodBlock):
    """
    Asymmetric Gaussian x^{+b}_{-a}: two half-normals with widths
    a = sigma_lower and b = sigma_upper joined at the mode.

    The density is

        P(y | x) = c_upper N(y | x, b) theta(y - x) + c_lower N(y | x, a) theta(x - y)

    with c_upper = 2 b / (a + b) and c_lower = 2 a / (a + b), which makes it
    continuous at the mode and normalised to one.
    """

    def __init__(
        self,
        cache: ObservableCache,
        id_: int,
        min_: float,
        central: float,
        max_: float,
        number_of_observations: int = 1,
    ) -> None:
        super().__init__(number_of_observations)
        _check_band("Gaussian", min_, central, max_)
        self._cache = cache
        self._id = id_
        self.band = (float(min_), float(central), float(max_))
        self.mode = float(central)
        self.sigma_lower = float(central - min_)
        self.sigma_upper = float(max_ - central)
        self.c_upper = 2.0 * self.sigma_upper / (self.sigma_upper + self.sigma_lower)
        self.c_lower = self.sigma_lower / self.sigma_upper * self.c_upper
        self.norm = math.log(math.sqrt(2.0 / math.pi) / (self.sigma_upper + self.sigma_lower))

    def __str__(self) -> str:
        if self.sigma_upper == self.sigma_lower:
            result = f"Gaussian: {self.mode:g} +- {self.sigma_upper:g}"
        else:
            result = f"Gaussian: {self.mode:g} + {self.sigma_upper:g} - {self.sigma_lower:g}"
        return result + self._no_observation_suffix()

    def _sigma(self, value: float) -> float:
        return self.sigma_upper if value > self.mode else self.sigma_lower

    def evaluate(self) -> float:
        value = self._cache[self._id]
        chi = (value - self.mode) / self._sigma(value)
        return self.norm - chi * chi / 2.0

    def sample(self, rng: np.random.Generator) -> float:
        """
        Mirror and shift the experimental distribution.

        Toys are generated for a fixed theory prediction, which becomes the
        most likely value, with the experimental uncertainties mirrored: a
        theory value in the slowly falling tail of the measurement should
        yield likely measurements when the roles are swapped.
        """
        a, b = self.sigma_lower, self.sigma_upper
        theory = self._cache[self._id]

        # probability of drawing below the theory value
        p_lower = b / (a + b)
        u = rng.uniform()
        if u < p_lower:
            obs = theory + b * float(ndtri(u / self.c_upper))
            sigma = b
        else:
            obs = theory + a * float(ndtri(0.5 + (u - p_lower) / self.c_lower))
            sigma = a

        chi = (theory - obs) / sigma
        return self.norm - chi * chi / 2.0

    def significance(self) -> float:
        # 68% probability in [x - b, x + a] also for a != b
        value = self._cache[self._id]
        return (self.mode - value) / self._sigma(value)

    def test_statistic(self) -> TestStatistic:
        return ChiSquare(self.significance() ** 2)

    def clone(self, cache: ObservableCache) -> "GaussianBlock":
        observable = self._cache.observable(self._id).clone(cache.parameters)
        min_, central, max_ = self.band
        return GaussianBlock(
            cache, cache.add(observable), min_, central, max_, self._number_of_observations
        )


class MixtureBlock(LikelihoodBlock):
    """Weighted sum of component densities; evaluation only."""

    def __init__(self, components: Sequence[LikelihoodBlock], weights: Sequence[float]) -> None:
        super().__init__(sum(c.number_of_observations for c in components))
        self.components = list(components)
        self.weights = np.asarray(weights, dtype=float)

    def __str__(self) -> str:
        return "Mixture: \n" + "".join(f"{c}\n" for c in self.components)

    def evaluate(self) -> float:
        values = np.asarray([c.evaluate() for c in self.components], dtype=float)
        max_value = float(np.max(values))
        if max_value == -math.inf:
            return max_value
        # renormalise exponents relative to the largest component
        total = float(np.sum(self.weights * np.exp(values - max_value)))
        return math.log(total) + max_value

    def sample(self, rng: np.random.Generator) -> float:
        raise UnsupportedOperationError("MixtureBlock.sample() is not implemented")

    def significance(self) -> float:
        raise UnsupportedOperationError("MixtureBlock.significance() is not implemented")

    def clone(self, cache: ObservableCache) -> "MixtureBlock":
        return MixtureBlock([c.clone(cache) for c in self.components], self.weights)


class MultivariateGaussianBlock(LikelihoodBlock):
    """
    Correlated Gaussian of k observables:

        log P = norm - 1/2 (x - mu)^T V^{-1} (x - mu),
        norm  = -k/2 log(2 pi) - 1/2 log|V|
    """

    def __init__(
        self,
        cache: ObservableCache,
        ids: Sequence[int],
        mean: NDArray[np.float64],
        covariance: NDArray[np.float64],
        number_of_observations: int = 1,
    ) -> None:
        super().__init__(number_of_observations)
        self._cache = cache
        self._ids = list(ids)
        self.mean, self.covariance = _coerce_mean_cov(mean, covariance, len(self._ids))

        k = len(self._ids)
        # informally: the square root of the covariance matrix
        self.cholesky = cholesky_lower(self.covariance)
        self.covariance_inv = inverse_from_cholesky(self.cholesky)
        self.norm = -0.5 * k * math.log(2.0 * math.pi) - 0.5 * log_determinant_lu(self.covariance)

    @property
    def dimension(self) -> int:
        return len(self._ids)

    def __str__(self) -> str:
        def rows(m: NDArray[np.float64]) -> str:
            return "".join("( " + " ".join(f"{v:g}" for v in row) + " )" for row in m)

        result = "Multivariate Gaussian: means = ( " + " ".join(f"{v:g}" for v in self.mean) + " )"
        result += f", covariance matrix = ({rows(self.covariance)})"
        result += f", inverse covariance matrix = ({rows(self.covariance_inv)})"
        return result + self._no_observation_suffix()

    def chi_square(self) -> float:
        r = np.asarray([self._cache[i] for i in self._ids], dtype=float) - self.mean
        return float(r @ self.covariance_inv @ r)

    def evaluate(self) -> float:
        return self.norm - 0.5 * self.chi_square()

    def sample(self, rng: np.random.Generator) -> float:
        # Consistent with the univariate Gaussian we would center the toy on
        # theory and compare to theory, so theory drops out: stay centered on zero.
        y = self.cholesky @ rng.standard_normal(self.dimension)
        return self.norm - 0.5 * float(y @ self.covariance_inv @ y)

    def significance(self) -> float:
        # non-negative by construction
        p = float(chi2.cdf(self.chi_square(), self.dimension))
        return sigma_from_probability(p)

    def test_statistic(self) -> TestStatistic:
        return ChiSquare(self.chi_square(), self.dimension)

    def clone(self, cache: ObservableCache) -> "MultivariateGaussianBlock":
        ids = [cache.add(self._cache.observable(i).clone(cache.parameters)) for i in self._ids]
        return MultivariateGaussianBlock(
            cache, ids, self.mean.copy(), self.covariance.copy(), self._number_of_observations
        )


def _check_band(kind: str, min_: float, central: float, max_: float) -> None:
    if min_ >= central:
        raise ConfigurationError(f"{kind}: min value {min_} >= central value {central}")
    if max_ <= central:
        raise ConfigurationError(f"{kind}: max value {max_} <= central value {central}")


def _coerce_mean_cov(
    mean: object, cov: object, k: int
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Produce a (k,) mean and a (k,k) covariance.

    The covariance may be given as
    - scalar          -> scalar * identity(k)
    - 1D shape (k,)   -> diag(vector)
    - 2D shape (k,k)  -> as-is

    Raises ConfigurationError on dimension mismatch, asymmetry, or if the
    matrix is not positive-definite.
    """
    if k < 1:
        raise ConfigurationError("MultivariateGaussian: at least one observable is required")

    mu = np.asarray(mean, dtype=float)
    if mu.ndim != 1 or mu.size != k:
        raise ConfigurationError(
            f"MultivariateGaussian: dimensions of observables ({k}) and mean {mu.shape} are not identical"
        )

    arr = np.asarray(cov, dtype=float)
    if arr.ndim == 0:  # scalar
        M = float(arr) * np.eye(k, dtype=float)
    elif arr.ndim == 1:
        if arr.size != k:
            raise ConfigurationError(f"1D covariance length {arr.size} != k={k}")
        M = np.diag(arr)
    elif arr.ndim == 2:
        if arr.shape[0] != arr.shape[1]:
            raise ConfigurationError("MultivariateGaussian: covariance matrix is not a square matrix")
        if arr.shape[0] != k:
            raise ConfigurationError(
                "MultivariateGaussian: dimensions of observables and covariance matrix are not identical"
            )
        M = arr.copy()
    else:
        raise ConfigurationError("covariance must be scalar, (k,), or (k,k)")

    if not np.allclose(M, M.T, rtol=1e-10, atol=0.0):
        raise ConfigurationError("MultivariateGaussian: covariance matrix is not symmetric")
    # symmetrise tiny asymmetries
    M = 0.5 * (M + M.T)
    try:
        np.linalg.cholesky(M)
    except np.linalg.LinAlgError as e:
        raise ConfigurationError("covariance must be positive-definite") from e
    return mu.copy(), cast(NDArray[np.float64], M)


def gaussian(
    cache: ObservableCache,
    observable: ObservableLike,
    min_: float,
    central: float,
    max_: float,
    number_of_observations: int = 1,
) -> GaussianBlock:
    """Asymmetric Gaussian block for a measurement central^{+(max-central)}_{-(central-min)}."""
    _check_band("Gaussian", min_, central, max_)
    return GaussianBlock(cache, cache.add(observable), min_, central, max_, number_of_observations)


def mixture(
    components: Sequence[LikelihoodBlock],
    weights: Sequence[float],
    logger: Optional[logging.Logger] = None,
) -> MixtureBlock:
    """Mixture of `components`; the weights are normalised to sum to one."""
    logger = logger or log
    if len(components) == 0:
        raise ConfigurationError("Mixture: at least one component is required")
    if len(components) != len(weights):
        raise ConfigurationError("Mixture: components and weights don't match")

    w = np.asarray(weights, dtype=float)
    if np.any(w < 0) or not np.all(np.isfinite(w)):
        raise ConfigurationError(f"Mixture: weights must be finite and non-negative, got {w.tolist()}")
    total = float(np.sum(w))
    if total <= 0:
        raise ConfigurationError("Mixture: weights cannot be normalised, their sum is zero")

    w = w / total
    logger.debug("sum = %g, norm. weights %s", total, w.tolist())
    return MixtureBlock(components, w)


def multivariate_gaussian(
    cache: ObservableCache,
    observables: Sequence[ObservableLike],
    mean: Union[np.ndarray, Sequence[float]],
    covariance: CovInput,
    number_of_observations: int = 1,
) -> MultivariateGaussianBlock:
    """Correlated Gaussian block; dimensions are checked before anything is registered."""
    mu, V = _coerce_mean_cov(mean, covariance, len(observables))
    ids = [cache.add(o) for o in observables]
    return MultivariateGaussianBlock(cache, ids, mu, V, number_of_observations)
