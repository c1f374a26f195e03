from __future__ import annotations


class LLKitError(Exception):
    """Base class for all errors raised by llkit."""


class ConfigurationError(LLKitError, ValueError):
    """Invalid construction arguments (ordering, positivity, dimensions, weights)."""


class CalibrationMismatchError(ConfigurationError):
    """
    A calibrated block does not reproduce its requested mode or quantiles.

    Attributes
    ----------
    quantity : str
        Name of the failed check, e.g. ``"cdf(x_90)"``.
    expected, actual : float
        The requested and the reproduced value.
    """

    def __init__(self, quantity: str, expected: float, actual: float, context: str = "") -> None:
        self.quantity = quantity
        self.expected = float(expected)
        self.actual = float(actual)
        prefix = f"{context}: " if context else ""
        super().__init__(
            f"{prefix}for the current parameter values, {quantity} = {actual:.6g} "
            f"deviates from {expected:.6g}"
        )


class NumericalNonConvergenceError(LLKitError, RuntimeError):
    """A root finder exhausted its iteration budget."""


class UnsupportedOperationError(LLKitError, NotImplementedError):
    """The operation is not available for this block type."""


class NameFormatError(LLKitError, ValueError):
    """An observable name carries a malformed ``,key=value`` option clause."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Observable name '{name}' is malformed")


class UnknownParameterError(LLKitError, KeyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown parameter: '{name}'")


class UnknownKinematicVariableError(LLKitError, KeyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown kinematic variable: '{name}'")
