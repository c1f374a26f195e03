"""
LLKit — Likelihood building blocks for global fits:
- Parameters, observables and a memoizing observable cache
- Likelihood blocks (asymmetric Gaussian, log-gamma, Amoroso, mixture, multivariate Gaussian)
- Constraints and the aggregate log-likelihood
- Bootstrap p-values
"""

from .errors import (
    LLKitError,
    ConfigurationError,
    CalibrationMismatchError,
    NumericalNonConvergenceError,
    UnsupportedOperationError,
    NameFormatError,
    UnknownParameterError,
    UnknownKinematicVariableError,
)
from .parameters import Parameter, ParameterTemplate, Parameters
from .observables import (
    Observable,
    ObservableLike,
    ObservableRegistry,
    Params,
    default_registry,
    make_observable,
    split_options,
)
from .cache import ObservableCache
from .blocks import (
    LikelihoodBlock,
    GaussianBlock,
    MixtureBlock,
    MultivariateGaussianBlock,
    gaussian,
    mixture,
    multivariate_gaussian,
)
from .loggamma import LogGammaBlock, log_gamma
from .amoroso import AmorosoBlock, amoroso, amoroso_limit, amoroso_mode, amoroso_quantiles
from .measurements import Constraint
from .likelihood import BootstrapResult, LogLikelihood
from .stats import ChiSquare, TestStatistic, empirical_p_value
from .utils import RootFinderConfig, make_rng

__all__ = [
    "LLKitError",
    "ConfigurationError",
    "CalibrationMismatchError",
    "NumericalNonConvergenceError",
    "UnsupportedOperationError",
    "NameFormatError",
    "UnknownParameterError",
    "UnknownKinematicVariableError",
    "Parameter",
    "ParameterTemplate",
    "Parameters",
    "Observable",
    "ObservableLike",
    "ObservableRegistry",
    "Params",
    "default_registry",
    "make_observable",
    "split_options",
    "ObservableCache",
    "LikelihoodBlock",
    "GaussianBlock",
    "MixtureBlock",
    "MultivariateGaussianBlock",
    "LogGammaBlock",
    "AmorosoBlock",
    "gaussian",
    "log_gamma",
    "amoroso_limit",
    "amoroso_mode",
    "amoroso_quantiles",
    "amoroso",
    "mixture",
    "multivariate_gaussian",
    "Constraint",
    "LogLikelihood",
    "BootstrapResult",
    "TestStatistic",
    "ChiSquare",
    "empirical_p_value",
    "RootFinderConfig",
    "make_rng",
]

__version__ = "2025.09.0"
