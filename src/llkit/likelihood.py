from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterator, Optional, cast

import numpy as np
from numpy.typing import NDArray

from .blocks import LikelihoodBlock, gaussian
from .cache import ObservableCache
from .errors import ConfigurationError
from .measurements import Constraint
from .observables import ObservableLike
from .parameters import Parameters
from .stats import empirical_p_value
from .utils import make_rng

log = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    """Outcome of a bootstrap run with the total log-likelihood as test statistic."""

    t_obs: float  # log-likelihood of the observed data
    toys: np.ndarray  # shape (n_datasets,), log-likelihood of each simulated data set
    n_low: int  # number of toys with t < t_obs
    p_value: float
    uncertainty: float

    @property
    def n_datasets(self) -> int:
        return int(self.toys.size)


class LogLikelihood:
    """
    Sum of the log-densities of all constraints at the current parameter point.

    The likelihood owns its Parameters and ObservableCache. Constraints added to
    it are re-bound to its cache, so the same Constraint may be added to several
    likelihoods.
    """

    def __init__(self, parameters: Parameters, logger: Optional[logging.Logger] = None) -> None:
        self._parameters = parameters
        self._cache = ObservableCache(parameters)
        self._constraints: list[Constraint] = []
        self._logger = logger or log

    @property
    def parameters(self) -> Parameters:
        return self._parameters

    @property
    def observable_cache(self) -> ObservableCache:
        return self._cache

    def add_observable(
        self,
        observable: ObservableLike,
        min_: float,
        central: float,
        max_: float,
        number_of_observations: int = 1,
    ) -> Constraint:
        """Add a single Gaussian measurement, named after the observable."""
        block = gaussian(self._cache, observable, min_, central, max_, number_of_observations)
        constraint = Constraint(observable.name, [observable], [block])
        self._constraints.append(constraint)
        return constraint

    def add(self, constraint: Constraint) -> Constraint:
        """Add a copy of `constraint` with every block cloned onto this likelihood's cache."""
        blocks = [b.clone(self._cache) for b in constraint.blocks]
        result = Constraint(constraint.name, constraint.observables, blocks)
        self._constraints.append(result)
        return result

    def __call__(self) -> float:
        self._cache.update()
        return float(sum(b.evaluate() for b in self._blocks()))

    def _blocks(self) -> Iterator[LikelihoodBlock]:
        for c in self._constraints:
            yield from c.blocks

    def __iter__(self) -> Iterator[Constraint]:
        return iter(self._constraints)

    def __len__(self) -> int:
        return len(self._constraints)

    @property
    def number_of_observations(self) -> int:
        return sum(b.number_of_observations for b in self._blocks())

    def clone(self) -> "LogLikelihood":
        """Independent likelihood with its own Parameters and cache."""
        result = LogLikelihood(self._parameters.clone(), self._logger)
        for c in self._constraints:
            result.add(c)
        return result

    def bootstrap(self, n_datasets: int, seed: Optional[int] = None) -> BootstrapResult:
        """
        Bootstrap the distribution of the log-likelihood at the current parameters.

        1) Evaluate t_obs, the log-likelihood of the observed data
        2) Simulate `n_datasets` data sets under the model and evaluate each
        3) p = fraction of simulated data sets with t < t_obs

        Blocks without observations (number_of_observations == 0) are
        excluded from the toys as well as from t_obs, so both sides of the
        comparison sum the same blocks.
        The generator is seeded with `n_datasets` unless `seed` is given, so
        repeated calls reproduce the same result.
        """
        if n_datasets <= 0:
            raise ConfigurationError(f"number of data sets must be positive, got {n_datasets}")

        self._cache.update()
        blocks = [b for b in self._blocks() if b.number_of_observations > 0]

        t_obs = float(sum(b.evaluate() for b in blocks))
        self._logger.info(
            "The value of the test statistic (total log-likelihood) for the current parameters is %g",
            t_obs,
        )

        rng = make_rng(n_datasets if seed is None else seed)
        self._logger.info("Begin sampling %d simulated values of the log-likelihood", n_datasets)

        toys = np.empty(n_datasets, dtype=float)
        for i in range(n_datasets):
            toys[i] = sum(b.sample(rng) for b in blocks)

        n_low = int(np.count_nonzero(toys < t_obs))
        p, uncertainty = empirical_p_value(n_low, n_datasets)
        self._logger.info("The simulated p-value is %g with uncertainty %g", p, uncertainty)

        return BootstrapResult(
            t_obs=t_obs,
            toys=cast(NDArray[np.float64], toys),
            n_low=n_low,
            p_value=p,
            uncertainty=uncertainty,
        )

    def bootstrap_p_value(self, n_datasets: int, seed: Optional[int] = None) -> tuple[float, float]:
        """Return (p, uncertainty) of `bootstrap(n_datasets, seed)`."""
        result = self.bootstrap(n_datasets, seed)
        return result.p_value, result.uncertainty
