# src/mr_engine/system.py
"""Problem definition contract for multirate systems.

A multirate system partitions its state into a slow block followed by a fast
block. The caller supplies both right-hand sides; each receives the *full*
current state (both partitions) because cross-partition coupling is the point
of the exercise.

The stepping schemes never call user code directly. They go through
:class:`PartitionedRHS`, which passes read-only views, coerces results to
float64, enforces derivative lengths and counts evaluations.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray

from .errors import raise_dimension_mismatch

PartitionRHS = Callable[
    [float, NDArray[np.floating], NDArray[np.floating]],
    NDArray[np.floating],
]


@runtime_checkable
class MultirateSystem(Protocol):
    """Capability contract implemented by a multirate problem definition."""

    def slow_rhs(
        self,
        t: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """Return d(y_slow)/dt at time t."""
        ...

    def fast_rhs(
        self,
        t: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """Return d(y_fast)/dt at time t."""
        ...

    def slow_dim(self) -> int:
        """Return the number of slow state components."""
        ...

    def fast_dim(self) -> int:
        """Return the number of fast state components."""
        ...


@dataclass(slots=True, frozen=True)
class FunctionSystem:
    """MultirateSystem built from two plain callables.

    Attributes:
        n_slow: Number of slow components.
        n_fast: Number of fast components.
        slow: Slow right-hand side f_s(t, y_slow, y_fast).
        fast: Fast right-hand side f_f(t, y_slow, y_fast).
    """

    n_slow: int
    n_fast: int
    slow: PartitionRHS
    fast: PartitionRHS

    def slow_rhs(
        self,
        t: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        return self.slow(t, y_slow, y_fast)

    def fast_rhs(
        self,
        t: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        return self.fast(t, y_slow, y_fast)

    def slow_dim(self) -> int:
        return int(self.n_slow)

    def fast_dim(self) -> int:
        return int(self.n_fast)


def _readonly(arr: NDArray[np.floating]) -> NDArray[np.floating]:
    view = arr.view()
    view.flags.writeable = False
    return view


class PartitionedRHS:
    """Per-solve evaluation adapter around a MultirateSystem.

    Attributes:
        system: Wrapped system.
        n_slow: Slow partition length.
        n_fast: Fast partition length.
        n_slow_evals: Number of slow right-hand side evaluations so far.
        n_fast_evals: Number of fast right-hand side evaluations so far.
    """

    def __init__(self, system: MultirateSystem) -> None:
        self.system = system
        self.n_slow = int(system.slow_dim())
        self.n_fast = int(system.fast_dim())
        self.n_slow_evals = 0
        self.n_fast_evals = 0

    def slow(
        self,
        t: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """Evaluate the slow right-hand side with length enforcement.

        Raises:
            DimensionMismatchError: If the derivative has the wrong length.

        Returns:
            Fresh float64 array of length n_slow.
        """
        self.n_slow_evals += 1
        out = np.array(
            self.system.slow_rhs(float(t), _readonly(y_slow), _readonly(y_fast)),
            dtype=np.float64,
        )
        if out.shape != (self.n_slow,):
            raise_dimension_mismatch(
                name="slow_rhs", expected=self.n_slow, got=out.shape
            )
        return out

    def fast(
        self,
        t: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """Evaluate the fast right-hand side with length enforcement.

        Raises:
            DimensionMismatchError: If the derivative has the wrong length.

        Returns:
            Fresh float64 array of length n_fast.
        """
        self.n_fast_evals += 1
        out = np.array(
            self.system.fast_rhs(float(t), _readonly(y_slow), _readonly(y_fast)),
            dtype=np.float64,
        )
        if out.shape != (self.n_fast,):
            raise_dimension_mismatch(
                name="fast_rhs", expected=self.n_fast, got=out.shape
            )
        return out

    def split(
        self,
        y: NDArray[np.floating],
    ) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
        """Split a full state into independent (slow, fast) copies."""
        return (
            np.array(y[: self.n_slow], dtype=np.float64),
            np.array(y[self.n_slow :], dtype=np.float64),
        )

    def join(
        self,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """Concatenate (slow, fast) into a full state vector."""
        return np.concatenate((y_slow, y_fast))
