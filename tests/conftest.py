"""Global pytest configuration and shared multirate systems for mr_engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pytest

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]


# -----------------------------------------------------------------------------
# Reference systems
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StiffOscillator:
    """Two linear oscillators, slow (omega_slow) and fast (omega_fast), coupled.

    State: [x_slow, v_slow, x_fast, v_fast].
    """

    omega_fast: float = 50.0
    omega_slow: float = 1.0
    coupling: float = 0.05

    def slow_rhs(self, _t: float, y_slow: FloatArray, y_fast: FloatArray) -> FloatArray:
        x_slow, v_slow = y_slow
        return np.array(
            [v_slow, -(self.omega_slow**2) * x_slow + self.coupling * y_fast[0]]
        )

    def fast_rhs(self, _t: float, y_slow: FloatArray, y_fast: FloatArray) -> FloatArray:
        x_fast, v_fast = y_fast
        return np.array(
            [v_fast, -(self.omega_fast**2) * x_fast + self.coupling * y_slow[0]]
        )

    def slow_dim(self) -> int:
        return 2

    def fast_dim(self) -> int:
        return 2

    def matrix(self) -> FloatArray:
        """Return the linear system matrix A with y' = A y on the full state."""
        c = self.coupling
        return np.array(
            [
                [0.0, 1.0, 0.0, 0.0],
                [-(self.omega_slow**2), 0.0, c, 0.0],
                [0.0, 0.0, 0.0, 1.0],
                [c, 0.0, -(self.omega_fast**2), 0.0],
            ]
        )

    def energy(self, y: FloatArray) -> float:
        """Uncoupled mechanical energy of a full state."""
        return float(
            0.5 * (y[1] ** 2 + y[3] ** 2)
            + 0.5 * (self.omega_slow**2 * y[0] ** 2 + self.omega_fast**2 * y[2] ** 2)
        )


@dataclass(frozen=True)
class ChemicalReaction:
    """Closed network: fast equilibrium A <-> B, slow conversion B -> C.

    State: [C, A, B] (C is slow; A and B are fast). A + B + C is invariant.
    """

    k_forward: float = 50.0
    k_backward: float = 40.0
    k_slow: float = 0.5

    def slow_rhs(
        self, _t: float, _y_slow: FloatArray, y_fast: FloatArray
    ) -> FloatArray:
        return np.array([self.k_slow * y_fast[1]])

    def fast_rhs(
        self, _t: float, _y_slow: FloatArray, y_fast: FloatArray
    ) -> FloatArray:
        a, b = y_fast
        return np.array(
            [
                -self.k_forward * a + self.k_backward * b,
                self.k_forward * a - self.k_backward * b - self.k_slow * b,
            ]
        )

    def slow_dim(self) -> int:
        return 1

    def fast_dim(self) -> int:
        return 2


@dataclass(frozen=True)
class Blowup:
    """Slow y' = y**2 from y(0)=1; the exact solution blows up at t=1.

    The fast block is a harmless decay.
    """

    def slow_rhs(
        self, _t: float, y_slow: FloatArray, _y_fast: FloatArray
    ) -> FloatArray:
        return y_slow**2

    def fast_rhs(
        self, _t: float, _y_slow: FloatArray, y_fast: FloatArray
    ) -> FloatArray:
        return -y_fast

    def slow_dim(self) -> int:
        return 1

    def fast_dim(self) -> int:
        return 1


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def oscillator() -> StiffOscillator:
    """Weakly coupled 50:1 oscillator pair."""
    return StiffOscillator()


@pytest.fixture
def reactions() -> ChemicalReaction:
    """A <-> B -> C network with a 90:0.5 rate separation."""
    return ChemicalReaction()


@pytest.fixture
def blowup() -> Blowup:
    """System that leaves the floating-point range in finite time."""
    return Blowup()
