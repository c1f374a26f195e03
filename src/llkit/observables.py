from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional, Protocol

from .errors import ConfigurationError, NameFormatError, UnknownKinematicVariableError
from .parameters import Parameters

Params = Mapping[str, float]
Kinematics = Mapping[str, float]
Options = Mapping[str, str]
PredictionFunction = Callable[[Params, Kinematics, Options], float]


class ObservableLike(Protocol):
    """Protocol for objects that can be registered in an ObservableCache."""

    @property
    def name(self) -> str: ...

    @property
    def parameters(self) -> Parameters: ...

    def evaluate(self) -> float: ...

    def clone(self, parameters: Parameters) -> "ObservableLike": ...


@dataclass(frozen=True)
class Observable:
    """
    A single observable defined by a prediction function.

    The function takes the current parameter values (name -> value), the
    kinematics and the options, and returns a scalar prediction. The observable
    is bound to one `Parameters` storage; `clone()` rebinds it to another.
    """

    name: str
    predict: PredictionFunction
    parameters: Parameters
    kinematics: Kinematics = field(default_factory=dict)
    options: Options = field(default_factory=dict)

    def evaluate(self) -> float:
        return float(self.predict(self.parameters.as_dict(), self.kinematics, self.options))

    def clone(self, parameters: Parameters) -> "Observable":
        return Observable(
            name=self.name,
            predict=self.predict,
            parameters=parameters,
            kinematics=dict(self.kinematics),
            options=dict(self.options),
        )


@dataclass(frozen=True)
class ObservableEntry:
    """Registry entry: prediction function plus the kinematic variables it reads."""

    name: str
    function: PredictionFunction
    kinematics_names: tuple[str, ...] = ()


def split_options(name: str) -> tuple[str, dict[str, str]]:
    """
    Strip trailing ``,key=value`` clauses from an observable name.

    Clauses are removed right to left; when a key repeats, the leftmost clause
    wins. A clause without ``=`` raises NameFormatError.
    """
    options: dict[str, str] = {}
    base = name
    while (pos := base.rfind(",")) != -1:
        sep = base.find("=", pos + 1)
        if sep == -1:
            raise NameFormatError(name)
        options[base[pos + 1 : sep]] = base[sep + 1 :]
        base = base[:pos]
    return base, options


class ObservableRegistry:
    """
    Explicit mapping from observable names to prediction functions.

    Names are matched verbatim after the option suffixes are stripped, e.g.
    ``"B->K::BR@LowRecoil,model=SM"`` looks up ``"B->K::BR@LowRecoil"`` with
    option ``model=SM``.
    """

    def __init__(self, entries: Iterable[ObservableEntry] = ()) -> None:
        self._entries: dict[str, ObservableEntry] = {}
        for e in entries:
            self._insert(e)

    def _insert(self, entry: ObservableEntry) -> None:
        if entry.name in self._entries:
            raise ConfigurationError(f"observable '{entry.name}' is already registered")
        self._entries[entry.name] = entry

    def register(
        self,
        name: str,
        function: PredictionFunction,
        kinematics_names: Iterable[str] = (),
    ) -> None:
        self._insert(ObservableEntry(name, function, tuple(kinematics_names)))

    @property
    def names(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def make(
        self,
        name: str,
        parameters: Parameters,
        kinematics: Optional[Kinematics] = None,
        options: Optional[Options] = None,
    ) -> Optional[Observable]:
        """
        Build the observable registered under `name`, or None if there is none.

        Options embedded in the name take precedence over `options`.
        """
        base, name_options = split_options(name)
        entry = self._entries.get(base)
        if entry is None:
            return None

        kin = dict(kinematics or {})
        for k in entry.kinematics_names:
            if k not in kin:
                raise UnknownKinematicVariableError(k)

        merged = {**(options or {}), **name_options}
        return Observable(
            name=base, predict=entry.function, parameters=parameters, kinematics=kin, options=merged
        )


default_registry = ObservableRegistry()


def make_observable(
    name: str,
    parameters: Parameters,
    kinematics: Optional[Kinematics] = None,
    options: Optional[Options] = None,
) -> Optional[Observable]:
    """Look up `name` in the process-wide default registry."""
    return default_registry.make(name, parameters, kinematics, options)
