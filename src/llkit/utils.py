from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, cast

import numpy as np
from numpy.typing import NDArray
from scipy import linalg
from scipy.optimize import brentq, newton
from scipy.special import ndtri

from .errors import NumericalNonConvergenceError

# Probability content of the central one-sigma interval of a standard normal
ONE_SIGMA = 0.68268949213708585

# Tolerance for calibrated blocks reproducing their requested mode/quantiles
CALIBRATION_TOLERANCE = 1e-4


@dataclass(frozen=True)
class RootFinderConfig:
    """Iteration budget and absolute tolerance for the bounded root finders."""

    max_iterations: int = 400
    tolerance: float = 1e-7


DEFAULT_ROOT_FINDER = RootFinderConfig()


@dataclass(frozen=True)
class RootResult:
    root: float
    converged: bool
    iterations: int


def make_rng(seed: int | None) -> np.random.Generator:
    """Create a PCG64-based Generator, or numpy default if seed is None."""
    return np.random.default_rng(None if seed is None else np.random.PCG64(seed))


def sigma_from_probability(p: float) -> float:
    """
    Convert the probability content of a central interval into Gaussian sigmas.

    p = 0.6827 -> 1, p = 0.9545 -> 2; p = 0 -> 0.
    """
    return float(ndtri((p + 1.0) / 2.0))


def sigma_from_interval(inside: float, outside: float) -> float:
    """
    Same as `sigma_from_probability(inside)`, given also the complement
    `outside = 1 - inside` computed independently.

    Far in the tail `inside` rounds to 1, so the complement is used there.
    """
    if inside < 0.5:
        return sigma_from_probability(inside)
    return float(-ndtri(outside / 2.0))


def find_root_newton(
    f: Callable[[float], float],
    fprime: Callable[[float], float],
    x0: float,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> RootResult:
    """
    Newton iteration with an analytic derivative.

    Convergence is declared once successive iterates differ by less than
    `config.tolerance`. Does not raise; inspect `converged`.
    """
    root, info = newton(
        f,
        x0,
        fprime=fprime,
        tol=config.tolerance,
        maxiter=config.max_iterations,
        full_output=True,
        disp=False,
    )
    return RootResult(float(root), bool(info.converged), int(info.iterations))


def find_root_bracketed(
    f: Callable[[float], float],
    lower: float,
    upper: float,
    config: RootFinderConfig = DEFAULT_ROOT_FINDER,
) -> RootResult:
    """Brent's method on [lower, upper]; f must change sign across the bracket."""
    root, info = brentq(
        f,
        lower,
        upper,
        xtol=config.tolerance,
        maxiter=config.max_iterations,
        full_output=True,
        disp=False,
    )
    return RootResult(float(root), bool(info.converged), int(info.iterations))


def expand_bracket(
    f: Callable[[float], float],
    start: float,
    step: float,
    max_expansions: int = 200,
) -> float:
    """
    Return ``start + k * step`` with the width doubled until ``f >= 0`` there.

    Used to enclose a root of a function that is negative at `start` and grows
    without bound in the direction of `step`.
    """
    x = start + step
    for _ in range(max_expansions):
        if f(x) >= 0.0:
            return x
        step *= 2.0
        x = start + step
    raise NumericalNonConvergenceError(f"could not bracket a sign change starting from {start}")


def cholesky_lower(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Lower-triangular Cholesky factor L with L @ L.T == matrix; upper part is zero."""
    return cast(NDArray[np.float64], linalg.cholesky(matrix, lower=True))


def inverse_from_cholesky(chol: NDArray[np.float64]) -> NDArray[np.float64]:
    """Inverse of L @ L.T given its lower Cholesky factor L."""
    k = chol.shape[0]
    inv = linalg.cho_solve((chol, True), np.eye(k, dtype=float))
    # enforce exact symmetry
    return cast(NDArray[np.float64], 0.5 * (inv + inv.T))


def log_determinant_lu(matrix: NDArray[np.float64]) -> float:
    """log|det(matrix)| from the LU decomposition."""
    lu, _ = linalg.lu_factor(matrix)
    return float(np.sum(np.log(np.abs(np.diag(lu)))))
