from __future__ import annotations

from .observables import ObservableLike
from .parameters import Parameters


class ObservableCache:
    """
    Memoized observable predictions, addressed by integer id.

    `update()` is the only operation that evaluates observables; indexing
    returns the value from the most recent update (or from registration).
    Reading after a parameter change without an `update()` returns stale values.
    """

    def __init__(self, parameters: Parameters) -> None:
        self._parameters = parameters
        self._observables: list[ObservableLike] = []
        self._predictions: list[float] = []

    @property
    def parameters(self) -> Parameters:
        return self._parameters

    def add(self, observable: ObservableLike) -> int:
        """Register `observable` and return its id. Duplicates get distinct ids."""
        self._observables.append(observable)
        self._predictions.append(float(observable.evaluate()))
        return len(self._observables) - 1

    def update(self) -> None:
        """Recompute every registered observable once, in registration order."""
        for i, o in enumerate(self._observables):
            self._predictions[i] = float(o.evaluate())

    def __getitem__(self, id_: int) -> float:
        return self._predictions[id_]

    def observable(self, id_: int) -> ObservableLike:
        return self._observables[id_]

    def __len__(self) -> int:
        return len(self._observables)

    def clone(self, parameters: Parameters) -> "ObservableCache":
        """New cache with every observable cloned onto `parameters`; ids are preserved."""
        result = ObservableCache(parameters)
        for o in self._observables:
            result.add(o.clone(parameters))
        return result
