# src/mr_engine/schemes.py
"""Multirate step schemes.

Each scheme advances the partitioned state (y_slow, y_fast) across one macro
interval [t, t + dt] and manages its own micro-stepping:

    - ExplicitMRKScheme:      M sub-intervals; per sub-interval m fast RK4
                              micro-steps, then one slow RK4 step.
    - CompoundFastSlowScheme: fast partition across dt with the slow partition
                              frozen at t, then slow partition across dt with
                              the fast partition frozen at its new value.
    - ExtrapolatedScheme:     L explicit MRK runs with 1, 2, 4, ... sub-intervals,
                              combined by Aitken-Neville polynomial extrapolation
                              to zero step size.

Schemes are built per solve by :func:`build_scheme` and evaluate the system only
through a :class:`mr_engine.system.PartitionedRHS`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np
from numpy.typing import NDArray

from . import base_methods
from .base_methods import NewtonConfig, normalize_base_method
from .errors import DivergenceError
from .options import (
    CompoundFastSlow,
    ExplicitMRK,
    Extrapolated,
    MultirateOptions,
    SlowCoupling,
    resolve_fast_substeps,
)

if TYPE_CHECKING:
    from .base_methods import BaseMethodName
    from .system import PartitionedRHS

_UNKNOWN_METHOD_ERROR_MSG = "Unknown multirate method: {method!r}"
_EXTRAPOLATION_NONFINITE_MSG = (
    "Richardson extrapolation produced a non-finite value "
    "(level {level}, column {column}) at t={t:.6g}"
)


@dataclass(slots=True)
class StepResult:
    """Outcome of one macro step.

    Attributes:
        y_slow: Slow partition at t + dt.
        y_fast: Fast partition at t + dt.
        error_norm: Scaled RMS error estimate, or None if the scheme has none.
    """

    y_slow: NDArray[np.floating]
    y_fast: NDArray[np.floating]
    error_norm: float | None = None


class StepScheme(Protocol):
    """Interface shared by all step schemes."""

    rhs: PartitionedRHS

    def advance(
        self,
        t: float,
        dt: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> StepResult:
        """Advance (y_slow, y_fast) from t to t + dt."""
        ...


# =============================================================================
# Explicit multirate Runge-Kutta
# =============================================================================


class ExplicitMRKScheme:
    """Explicit multirate RK4 scheme with macro/micro step counts."""

    def __init__(
        self,
        rhs: PartitionedRHS,
        *,
        macro_steps: int,
        micro_steps: int,
        slow_coupling: SlowCoupling = "frozen",
    ) -> None:
        self.rhs = rhs
        self.macro_steps = int(macro_steps)
        self.micro_steps = int(micro_steps)
        self.slow_coupling = slow_coupling

    def _advance_fast(
        self,
        t_k: float,
        h: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
        slow_slope: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """Advance the fast partition across one sub-interval with RK4 micro-steps.

        Args:
            t_k: Sub-interval start time.
            h: Sub-interval length.
            y_slow: Slow state at t_k.
            y_fast: Fast state at t_k.
            slow_slope: Slow derivative at t_k, used for the interpolated coupling.

        Returns:
            Fast state at t_k + h.
        """
        rhs = self.rhs

        if self.slow_coupling == "interpolated":

            def f_fast(tau: float, z: NDArray[np.floating]) -> NDArray[np.floating]:
                return rhs.fast(tau, y_slow + (tau - t_k) * slow_slope, z)

        else:

            def f_fast(tau: float, z: NDArray[np.floating]) -> NDArray[np.floating]:
                return rhs.fast(tau, y_slow, z)

        return base_methods.integrate(
            "rk4", f_fast, t_k, y_fast, h, self.micro_steps
        )

    def _advance_slow(
        self,
        t_k: float,
        h: float,
        y_slow: NDArray[np.floating],
        k1: NDArray[np.floating],
        fast_start: NDArray[np.floating],
        fast_end: NDArray[np.floating],
    ) -> NDArray[np.floating]:
        """One slow RK4 step with the fast state sampled at the boundaries.

        The mid-stages see the average of the boundary fast states.

        Args:
            t_k: Sub-interval start time.
            h: Sub-interval length.
            y_slow: Slow state at t_k.
            k1: Slow derivative at (t_k, y_slow, fast_start).
            fast_start: Fast state at t_k.
            fast_end: Fast state at t_k + h (post fast advance).

        Returns:
            Slow state at t_k + h.
        """
        rhs = self.rhs
        half = 0.5 * h
        fast_mid = 0.5 * (fast_start + fast_end)

        k2 = rhs.slow(t_k + half, y_slow + half * k1, fast_mid)
        k3 = rhs.slow(t_k + half, y_slow + half * k2, fast_mid)
        k4 = rhs.slow(t_k + h, y_slow + h * k3, fast_end)
        return y_slow + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)

    def advance(
        self,
        t: float,
        dt: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> StepResult:
        """Advance across [t, t + dt] in macro_steps sub-intervals.

        Args:
            t: Macro step start time.
            dt: Macro step size.
            y_slow: Slow state at t.
            y_fast: Fast state at t.

        Returns:
            StepResult at t + dt.
        """
        h = dt / self.macro_steps
        ys = np.array(y_slow, dtype=np.float64)
        yf = np.array(y_fast, dtype=np.float64)

        for k in range(self.macro_steps):
            t_k = t + k * h
            k1 = self.rhs.slow(t_k, ys, yf)
            yf_next = self._advance_fast(t_k, h, ys, yf, k1)
            ys = self._advance_slow(t_k, h, ys, k1, yf, yf_next)
            yf = yf_next

        return StepResult(y_slow=ys, y_fast=yf)


# =============================================================================
# Compound fast-slow
# =============================================================================


class CompoundFastSlowScheme:
    """Fast-then-slow Gauss-Seidel splitting with independent base methods."""

    def __init__(
        self,
        rhs: PartitionedRHS,
        *,
        fast_method: BaseMethodName,
        slow_method: BaseMethodName,
        fast_substeps: int,
        slow_substeps: int,
        newton: NewtonConfig,
    ) -> None:
        self.rhs = rhs
        self.fast_method = fast_method
        self.slow_method = slow_method
        self.fast_substeps = int(fast_substeps)
        self.slow_substeps = int(slow_substeps)
        self.newton = newton

    def advance(
        self,
        t: float,
        dt: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> StepResult:
        """Advance fast (slow frozen at t), then slow (fast frozen at new value).

        Args:
            t: Macro step start time.
            dt: Macro step size.
            y_slow: Slow state at t.
            y_fast: Fast state at t.

        Returns:
            StepResult at t + dt.
        """
        rhs = self.rhs
        slow_frozen = np.array(y_slow, dtype=np.float64)

        def f_fast(tau: float, z: NDArray[np.floating]) -> NDArray[np.floating]:
            return rhs.fast(tau, slow_frozen, z)

        yf_new = base_methods.integrate(
            self.fast_method,
            f_fast,
            t,
            y_fast,
            dt,
            self.fast_substeps,
            newton=self.newton,
        )

        def f_slow(tau: float, z: NDArray[np.floating]) -> NDArray[np.floating]:
            return rhs.slow(tau, z, yf_new)

        ys_new = base_methods.integrate(
            self.slow_method,
            f_slow,
            t,
            slow_frozen,
            dt,
            self.slow_substeps,
            newton=self.newton,
        )
        return StepResult(y_slow=ys_new, y_fast=yf_new)


# =============================================================================
# Richardson-extrapolated multirate
# =============================================================================


class ExtrapolatedScheme:
    """Explicit MRK runs at halving step sizes combined by Richardson extrapolation.

    Level j runs ExplicitMRKScheme with 2**j sub-intervals of base_ratio fast
    micro-steps each, so both the slow step and the fast micro-step halve from
    one level to the next. The Aitken-Neville tableau

        T[j][k] = T[j][k-1] + (T[j][k-1] - T[j-1][k-1]) / (2**k - 1)

    extrapolates the level results polynomially to zero step size. The tableau
    is rebuilt from scratch on every macro step.
    """

    def __init__(
        self,
        rhs: PartitionedRHS,
        *,
        base_ratio: int,
        levels: int,
        slow_coupling: SlowCoupling = "frozen",
        rtol: float = 1e-6,
        atol: float = 1e-9,
    ) -> None:
        self.rhs = rhs
        self.base_ratio = int(base_ratio)
        self.levels = int(levels)
        self.rtol = float(rtol)
        self.atol = float(atol)
        self._level_schemes = [
            ExplicitMRKScheme(
                rhs,
                macro_steps=2**j,
                micro_steps=self.base_ratio,
                slow_coupling=slow_coupling,
            )
            for j in range(self.levels)
        ]

    def _error_norm(
        self,
        diff: NDArray[np.floating],
        y_prev: NDArray[np.floating],
        y_new: NDArray[np.floating],
    ) -> float:
        scale = self.atol + self.rtol * np.maximum(np.abs(y_prev), np.abs(y_new))
        v = float(np.sqrt(np.mean((diff / scale) ** 2)))
        if not np.isfinite(v):
            return float("inf")
        return v

    def advance(
        self,
        t: float,
        dt: float,
        y_slow: NDArray[np.floating],
        y_fast: NDArray[np.floating],
    ) -> StepResult:
        """Advance across [t, t + dt] and extrapolate.

        Args:
            t: Macro step start time.
            dt: Macro step size.
            y_slow: Slow state at t.
            y_fast: Fast state at t.

        Raises:
            DivergenceError: If any tableau entry is non-finite.

        Returns:
            StepResult at t + dt, with an error norm when levels >= 2.
        """
        prev_row: list[NDArray[np.floating]] = []
        row: list[NDArray[np.floating]] = []

        for j, scheme in enumerate(self._level_schemes):
            res = scheme.advance(t, dt, y_slow, y_fast)
            row = [self.rhs.join(res.y_slow, res.y_fast)]
            for k in range(1, j + 1):
                factor = 1.0 / (2.0**k - 1.0)
                row.append(row[k - 1] + factor * (row[k - 1] - prev_row[k - 1]))
            for column, entry in enumerate(row):
                if not np.all(np.isfinite(entry)):
                    raise DivergenceError(
                        _EXTRAPOLATION_NONFINITE_MSG.format(
                            level=j, column=column, t=t + dt
                        )
                    )
            prev_row = row

        y_new = row[-1]
        error_norm: float | None = None
        if len(row) >= 2:
            y_prev = self.rhs.join(y_slow, y_fast)
            error_norm = self._error_norm(row[-1] - row[-2], y_prev, y_new)

        y_slow_new, y_fast_new = self.rhs.split(y_new)
        return StepResult(y_slow=y_slow_new, y_fast=y_fast_new, error_norm=error_norm)


# =============================================================================
# Dispatch
# =============================================================================


def build_scheme(options: MultirateOptions, rhs: PartitionedRHS) -> StepScheme:
    """Build the step scheme selected by options.method.

    Args:
        options: Validated solver options.
        rhs: Per-solve evaluation adapter.

    Raises:
        TypeError: If options.method is not a known variant.

    Returns:
        Step scheme bound to rhs.
    """
    method = options.method
    if isinstance(method, ExplicitMRK):
        return ExplicitMRKScheme(
            rhs,
            macro_steps=method.macro_steps,
            micro_steps=method.micro_steps,
            slow_coupling=method.slow_coupling,
        )
    if isinstance(method, CompoundFastSlow):
        return CompoundFastSlowScheme(
            rhs,
            fast_method=normalize_base_method(method.fast_method),
            slow_method=normalize_base_method(method.slow_method),
            fast_substeps=resolve_fast_substeps(method, options.timescale_ratio),
            slow_substeps=method.slow_substeps,
            newton=NewtonConfig(rtol=options.rtol, atol=options.atol),
        )
    if isinstance(method, Extrapolated):
        return ExtrapolatedScheme(
            rhs,
            base_ratio=method.base_ratio,
            levels=method.levels,
            slow_coupling=method.slow_coupling,
            rtol=options.rtol,
            atol=options.atol,
        )
    raise TypeError(_UNKNOWN_METHOD_ERROR_MSG.format(method=method))
