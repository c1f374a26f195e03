from __future__ import annotations

from typing import Any

import matplotlib.pyplot as plt

from .likelihood import BootstrapResult


def plot_bootstrap(result: BootstrapResult, bins: int = 50, ax: Any | None = None) -> Any:
    """
    Histogram the simulated log-likelihoods and mark the observed one.
    """
    if ax is None:
        fig, ax = plt.subplots()
        _ = fig  # silence linters if unused
    ax.hist(result.toys, bins=bins, histtype="step", label=f"toys (n={result.n_datasets})")
    ax.axvline(
        result.t_obs,
        color="k",
        linestyle="--",
        label=f"observed (p={result.p_value:.3f} ± {result.uncertainty:.3f})",
    )
    ax.set_xlabel("log L")
    ax.set_ylabel("data sets")
    ax.legend()
    return ax
