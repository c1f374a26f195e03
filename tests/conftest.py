# tests/conftest.py
import pytest

from llkit import Observable, ObservableCache, ParameterTemplate, Parameters


def identity(p, kinematics, options):
    """Prediction equal to the parameter named by the 'parameter' option (default 'x')."""
    return p[options.get("parameter", "x")]


@pytest.fixture
def parameters():
    return Parameters(
        [
            ParameterTemplate("x", -10.0, 0.0, 10.0),
            ParameterTemplate("y", -10.0, 0.0, 10.0),
            ParameterTemplate("z", -10.0, 0.0, 10.0),
        ]
    )


@pytest.fixture
def cache(parameters):
    return ObservableCache(parameters)


@pytest.fixture
def make_obs(parameters):
    """Factory for observables that predict the value of one parameter."""

    def make(parameter="x", name=None):
        return Observable(
            name or f"test::{parameter}",
            identity,
            parameters,
            options={"parameter": parameter},
        )

    return make
