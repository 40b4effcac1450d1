# src/mr_engine/trajectory.py
"""Trajectory results and the per-solve sample buffer.

:class:`TrajectoryBuffer` is the mutable, solve-local accumulator: a
preallocated (capacity, dim) array written through an integer cursor, grown by
doubling if the initial estimate is exceeded. :meth:`TrajectoryBuffer.freeze`
produces an immutable :class:`Trajectory` whose arrays are read-only copies.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt

from .errors import StepBudgetExceededError

FloatArray = npt.NDArray[np.floating[Any]]

_SAMPLE_SHAPE_ERROR = "Sample shape {actual} does not match expected {expected}"
_BUFFER_EMPTY_ERROR = "Trajectory buffer holds no samples"
_BUDGET_EXCEEDED_MSG = (
    "Step budget of {max_steps} macro steps exhausted at t={t:.6g} before "
    "reaching t_end={t_end:.6g}"
)


class SolveStatus(Enum):
    """Outcome of one solve call."""

    COMPLETED = "completed"
    STEP_BUDGET_EXCEEDED = "step_budget_exceeded"
    DIVERGED = "diverged"


@dataclass(slots=True, frozen=True, eq=False)
class Trajectory:
    """Ordered (time, full state) samples produced by one solve.

    Attributes:
        t: Sample times, shape (n,), strictly increasing.
        y: Full states (slow then fast), shape (n, slow_dim + fast_dim).
        slow_dim: Slow partition length.
        fast_dim: Fast partition length.
        n_steps: Number of accepted macro steps (n - 1).
        status: Outcome of the solve.
        t_end: Requested end time.
        max_steps: Step budget the solve ran under.
        n_slow_evals: Slow right-hand side evaluations.
        n_fast_evals: Fast right-hand side evaluations.
        wall_time: Wall-clock seconds spent in the stepping loop.
        error_norms: Per-step scaled error estimates, shape (n_steps,), or None
            when the scheme provides none.
    """

    t: FloatArray
    y: FloatArray
    slow_dim: int
    fast_dim: int
    n_steps: int
    status: SolveStatus
    t_end: float
    max_steps: int
    n_slow_evals: int = 0
    n_fast_evals: int = 0
    wall_time: float = 0.0
    error_norms: FloatArray | None = None

    def __len__(self) -> int:
        return int(self.t.size)

    @property
    def complete(self) -> bool:
        """True if the trajectory reached t_end."""
        return self.status is SolveStatus.COMPLETED

    @property
    def success(self) -> bool:
        """Alias for complete."""
        return self.complete

    @property
    def t_final(self) -> float:
        """Time of the last sample."""
        return float(self.t[-1])

    @property
    def y_final(self) -> FloatArray:
        """Full state of the last sample."""
        return self.y[-1]

    @property
    def slow(self) -> FloatArray:
        """Slow partition of every sample, shape (n, slow_dim)."""
        return self.y[:, : self.slow_dim]

    @property
    def fast(self) -> FloatArray:
        """Fast partition of every sample, shape (n, fast_dim)."""
        return self.y[:, self.slow_dim :]

    def samples(self) -> Iterator[tuple[float, FloatArray]]:
        """Iterate over (time, full state) pairs in time order."""
        for i in range(self.t.size):
            yield float(self.t[i]), self.y[i]

    def to_array(self) -> FloatArray:
        """Return a (n, 1 + dim) float64 array with time in the first column."""
        return np.column_stack((self.t, self.y)).astype(np.float64)

    def raise_for_status(self) -> None:
        """Raise if the solve ran out of step budget.

        Raises:
            StepBudgetExceededError: If status is STEP_BUDGET_EXCEEDED.
        """
        if self.status is SolveStatus.STEP_BUDGET_EXCEEDED:
            raise StepBudgetExceededError(
                _BUDGET_EXCEEDED_MSG.format(
                    max_steps=self.max_steps, t=self.t_final, t_end=self.t_end
                ),
                t_last=self.t_final,
                step_index=self.n_steps,
            )


class TrajectoryBuffer:
    """Growable, cursor-indexed sample storage for one solve."""

    def __init__(self, dim: int, capacity: int) -> None:
        """
        Initialize TrajectoryBuffer.

        Args:
            dim: Full state length.
            capacity: Expected number of samples (including the initial one).
        """
        self.dim = int(dim)
        cap = max(1, int(capacity))
        self._t: FloatArray = np.zeros(cap, dtype=np.float64)
        self._y: FloatArray = np.zeros((cap, self.dim), dtype=np.float64)
        self._errors: FloatArray = np.full(cap, np.nan, dtype=np.float64)
        self._has_errors = False
        self.cursor = 0

    @property
    def capacity(self) -> int:
        """Current allocated sample capacity."""
        return int(self._t.size)

    def __len__(self) -> int:
        return self.cursor

    def _grow(self) -> None:
        extra = self.capacity
        self._t = np.concatenate((self._t, np.zeros(extra)))
        self._y = np.concatenate((self._y, np.zeros((extra, self.dim))))
        self._errors = np.concatenate((self._errors, np.full(extra, np.nan)))

    def append(
        self,
        t: float,
        y: FloatArray,
        error_norm: float | None = None,
    ) -> None:
        """
        Append one sample at the cursor.

        Args:
            t: Sample time.
            y: Full state, shape (dim,).
            error_norm: Optional error estimate for the step ending at t.

        Raises:
            ValueError: if y has the wrong shape.
        """
        y_arr = np.asarray(y, dtype=np.float64)
        if y_arr.shape != (self.dim,):
            raise ValueError(
                _SAMPLE_SHAPE_ERROR.format(actual=y_arr.shape, expected=(self.dim,))
            )
        if self.cursor >= self.capacity:
            self._grow()

        self._t[self.cursor] = t
        self._y[self.cursor] = y_arr
        if error_norm is not None:
            self._errors[self.cursor] = error_norm
            self._has_errors = True
        self.cursor += 1

    def freeze(
        self,
        *,
        slow_dim: int,
        status: SolveStatus,
        t_end: float,
        max_steps: int,
        n_slow_evals: int = 0,
        n_fast_evals: int = 0,
        wall_time: float = 0.0,
    ) -> Trajectory:
        """
        Build an immutable Trajectory from the samples written so far.

        Args:
            slow_dim: Slow partition length.
            status: Outcome of the solve.
            t_end: Requested end time.
            max_steps: Step budget of the solve.
            n_slow_evals: Slow right-hand side evaluation count.
            n_fast_evals: Fast right-hand side evaluation count.
            wall_time: Wall-clock seconds spent stepping.

        Returns:
            Trajectory with read-only arrays.
        """
        if self.cursor == 0:
            raise RuntimeError(_BUFFER_EMPTY_ERROR)

        t_arr = self._t[: self.cursor].copy()
        y_arr = self._y[: self.cursor].copy()
        t_arr.flags.writeable = False
        y_arr.flags.writeable = False

        errors: FloatArray | None = None
        if self._has_errors:
            errors = self._errors[1 : self.cursor].copy()
            errors.flags.writeable = False

        return Trajectory(
            t=t_arr,
            y=y_arr,
            slow_dim=int(slow_dim),
            fast_dim=self.dim - int(slow_dim),
            n_steps=self.cursor - 1,
            status=status,
            t_end=float(t_end),
            max_steps=int(max_steps),
            n_slow_evals=int(n_slow_evals),
            n_fast_evals=int(n_fast_evals),
            wall_time=float(wall_time),
            error_norms=errors,
        )
