from __future__ import annotations

from dataclasses import dataclass
import math

from scipy.stats import chi2


@dataclass(frozen=True)
class TestStatistic:
    """Primary test statistic of a likelihood block; the base carries no value."""

    __test__ = False  # not a pytest test class

    @property
    def empty(self) -> bool:
        return True


@dataclass(frozen=True)
class ChiSquare(TestStatistic):
    """
    Chi-square value of a Gaussian-type block.

    `p_value` is the upper tail probability with `dof` degrees of freedom.
    """

    value: float = 0.0
    dof: int = 1

    @property
    def empty(self) -> bool:
        return False

    @property
    def p_value(self) -> float:
        return float(chi2.sf(self.value, self.dof))


def empirical_p_value(n_low: int, n: int) -> tuple[float, float]:
    """
    p-value from `n_low` of `n` toys falling below the observed statistic.

    Returns (p, uncertainty) with p = n_low / n and the uncertainty taken from
    the binomial posterior with a flat prior:

        p_expected  = (n_low + 1) / (n + 2)
        uncertainty = sqrt(p_expected (1 - p_expected) / (n + 3))
    """
    if n <= 0:
        raise ValueError("number of toys must be positive")
    if not 0 <= n_low <= n:
        raise ValueError(f"n_low={n_low} outside [0, {n}]")
    p = n_low / n
    p_expected = (n_low + 1) / (n + 2)
    uncertainty = math.sqrt(p_expected * (1.0 - p_expected) / (n + 3))
    return p, uncertainty
