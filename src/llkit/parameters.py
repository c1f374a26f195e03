from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping

from .errors import ConfigurationError, UnknownParameterError


@dataclass(frozen=True)
class ParameterTemplate:
    """Name and allowed range of a parameter; the parameter starts at `central`."""

    name: str
    min: float
    central: float
    max: float


@dataclass
class _ParameterData:
    name: str
    min: float
    central: float
    max: float
    value: float


class Parameter:
    """
    Handle to one entry of a `Parameters` storage.

    Writing `value` through any handle is visible to every other holder of the
    same `Parameters` object, but never to its clones.
    """

    def __init__(self, storage: list[_ParameterData], index: int) -> None:
        self._storage = storage
        self._index = index

    @property
    def _data(self) -> _ParameterData:
        return self._storage[self._index]

    @property
    def name(self) -> str:
        return self._data.name

    @property
    def min(self) -> float:
        return self._data.min

    @property
    def central(self) -> float:
        return self._data.central

    @property
    def max(self) -> float:
        return self._data.max

    @property
    def value(self) -> float:
        return self._data.value

    @value.setter
    def value(self, value: float) -> None:
        self._data.value = float(value)

    def __float__(self) -> float:
        return self._data.value

    def __repr__(self) -> str:
        d = self._data
        return f"Parameter({d.name!r}, value={d.value}, range=[{d.min}, {d.max}])"


class Parameters:
    """
    Ordered set of named, bounded, mutable parameters.

    The object is shared by reference: observables and caches bound to it see
    every `set()`. Use `clone()` to obtain storage that is fully independent.
    """

    def __init__(self, templates: Iterable[ParameterTemplate]) -> None:
        self._storage: list[_ParameterData] = []
        self._index: dict[str, int] = {}
        for t in templates:
            if t.name in self._index:
                raise ConfigurationError(f"duplicate parameter name '{t.name}'")
            if not (t.min <= t.central <= t.max):
                raise ConfigurationError(
                    f"parameter '{t.name}': central value {t.central} outside [{t.min}, {t.max}]"
                )
            self._index[t.name] = len(self._storage)
            self._storage.append(
                _ParameterData(t.name, float(t.min), float(t.central), float(t.max), float(t.central))
            )

    @classmethod
    def from_values(cls, values: Mapping[str, float]) -> "Parameters":
        """Fixed parameters whose bounds coincide with their value."""
        return cls(ParameterTemplate(k, v, v, v) for k, v in values.items())

    def __getitem__(self, name: str) -> Parameter:
        try:
            return Parameter(self._storage, self._index[name])
        except KeyError:
            raise UnknownParameterError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[Parameter]:
        return (Parameter(self._storage, i) for i in range(len(self._storage)))

    def __len__(self) -> int:
        return len(self._storage)

    def set(self, name: str, value: float) -> None:
        self[name].value = value

    def as_dict(self) -> dict[str, float]:
        """Current values, name -> value."""
        return {d.name: d.value for d in self._storage}

    def clone(self) -> "Parameters":
        result = Parameters.__new__(Parameters)
        result._storage = copy.deepcopy(self._storage)
        result._index = dict(self._index)
        return result

    def __repr__(self) -> str:
        return f"Parameters({self.as_dict()})"
