"""Shared fixtures: small example models as read-only arrays."""

import numpy as np
import pytest

from mpmdemog.types import MPM


def _readonly(rows):
    arr = np.array(rows, dtype=np.float64)
    arr.setflags(write=False)
    return arr


# Five-stage plant: seed bank, three sizes, and a dormant stage.
MPM1_STAGES = ("seed", "small", "medium", "large", "dormant")
MPM1_U = _readonly([
    [0.10, 0.00, 0.00, 0.00, 0.00],
    [0.05, 0.12, 0.10, 0.00, 0.00],
    [0.00, 0.35, 0.12, 0.23, 0.12],
    [0.00, 0.03, 0.28, 0.52, 0.10],
    [0.00, 0.00, 0.16, 0.11, 0.17],
])
MPM1_F = _readonly([
    [0.00, 0.00, 17.9, 45.6, 0.00],
    [0.00, 0.00, 0.00, 0.00, 0.00],
    [0.00, 0.00, 0.00, 0.00, 0.00],
    [0.00, 0.00, 0.00, 0.00, 0.00],
    [0.00, 0.00, 0.00, 0.00, 0.00],
])


@pytest.fixture
def mpm1():
    return MPM(matU=MPM1_U, matF=MPM1_F, stages=MPM1_STAGES)


@pytest.fixture
def leslie2():
    """Two age classes: A = [[0.5, 2], [0.5, 0]], lambda = (0.5 + sqrt(4.25)) / 2."""
    return MPM(
        matU=_readonly([[0.0, 0.0], [0.5, 0.0]]),
        matF=_readonly([[0.5, 2.0], [0.0, 0.0]]),
    )


@pytest.fixture
def leslie2_lambda():
    return (0.5 + np.sqrt(4.25)) / 2


@pytest.fixture
def primitive3():
    """Three-stage primitive model with stasis, growth, shrinkage and fecundity."""
    return MPM(
        matU=_readonly([
            [0.20, 0.10, 0.00],
            [0.30, 0.40, 0.05],
            [0.00, 0.30, 0.80],
        ]),
        matF=_readonly([
            [0.00, 0.50, 3.00],
            [0.00, 0.00, 0.00],
            [0.00, 0.00, 0.00],
        ]),
        matC=_readonly([
            [0.00, 0.00, 0.00],
            [0.00, 0.00, 0.10],
            [0.00, 0.00, 0.00],
        ]),
    )
