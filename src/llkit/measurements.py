from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .blocks import LikelihoodBlock
from .errors import ConfigurationError
from .observables import ObservableLike


@dataclass(frozen=True)
class Constraint:
    """
    One experimental measurement, possibly spanning several correlated blocks.

    Attributes
    ----------
    name : str
        Identifier of the measurement, e.g. "B^0->K^*0gamma::BR@BaBar-2009".
    observables : tuple[ObservableLike, ...]
        Observables the measurement constrains.
    blocks : tuple[LikelihoodBlock, ...]
        Likelihood blocks, bound to the cache the observables were added to.
        A single block may consume several observables, so the two tuples need
        not have equal length.
    """

    name: str
    observables: Sequence[ObservableLike]
    blocks: Sequence[LikelihoodBlock]

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("constraint name must not be empty")
        object.__setattr__(self, "observables", tuple(self.observables))
        object.__setattr__(self, "blocks", tuple(self.blocks))

    @property
    def number_of_observations(self) -> int:
        return sum(b.number_of_observations for b in self.blocks)

    def __str__(self) -> str:
        lines = [f"{self.name}:"]
        lines += [f"  {b}" for b in self.blocks]
        return "\n".join(lines)
