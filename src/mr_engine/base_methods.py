# src/mr_engine/base_methods.py
"""Single-rate stepping primitives used inside the multirate schemes.

Each primitive advances one partition y' = f(t, y) with the other partition
held by the caller's closure. Supported methods (keyword ``method=``):
    - "euler":          Explicit Euler (order 1).
    - "heun":           Explicit Heun / RK2 (order 2).
    - "rk4":            Classical 4-stage Runge-Kutta (order 4).
    - "implicit-euler": Backward Euler (order 1), simplified Newton iteration
                        with a forward-difference Jacobian factored once per
                        step via scipy.linalg.lu_factor.

Failures (singular Newton matrix, non-convergence, non-finite iterates) raise
DivergenceError; the driver attaches the partial trajectory.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, Literal

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve

from .errors import DivergenceError, raise_invalid_configuration

SingleRHS = Callable[[float, NDArray[np.floating]], NDArray[np.floating]]
BaseMethodName = Literal["euler", "heun", "rk4", "implicit-euler"]

BASE_METHODS: Final[tuple[str, ...]] = ("euler", "heun", "rk4", "implicit-euler")

_UNKNOWN_BASE_METHOD_DETAIL = "expected one of {allowed}"
_SINGULAR_NEWTON_MSG = "implicit-euler Newton matrix is singular at t={t:.6g}"
_NEWTON_NONFINITE_MSG = "implicit-euler Newton iterate is non-finite at t={t:.6g}"
_NEWTON_NO_CONVERGENCE_MSG = (
    "implicit-euler Newton iteration did not converge in {max_iter} iterations "
    "at t={t:.6g} (last scaled update norm {norm:.3g})"
)


@dataclass(slots=True, frozen=True)
class NewtonConfig:
    """Newton iteration controls for implicit base methods.

    Attributes:
        rtol: Relative tolerance on the Newton update.
        atol: Absolute tolerance on the Newton update.
        max_iter: Maximum Newton iterations per step.
    """

    rtol: float = 1e-6
    atol: float = 1e-9
    max_iter: int = 10


def normalize_base_method(method: str) -> BaseMethodName:
    """Normalize and validate a base method string.

    Args:
        method: User-provided method string.

    Returns:
        Normalized method literal.
    """
    method_norm = str(method).strip().lower()
    if method_norm not in BASE_METHODS:
        raise_invalid_configuration(
            field="base method",
            value=method,
            detail=_UNKNOWN_BASE_METHOD_DETAIL.format(allowed=BASE_METHODS),
        )
    return method_norm  # type: ignore[return-value]


# ------------------------------------------------------------------
# One-step kernels
# ------------------------------------------------------------------


def euler_step(
    f: SingleRHS, t: float, y: NDArray[np.floating], h: float
) -> NDArray[np.floating]:
    """Explicit Euler step."""
    return y + h * f(t, y)


def heun_step(
    f: SingleRHS, t: float, y: NDArray[np.floating], h: float
) -> NDArray[np.floating]:
    """Explicit Heun (RK2) step."""
    k1 = f(t, y)
    k2 = f(t + h, y + h * k1)
    return y + (0.5 * h) * (k1 + k2)


def rk4_step(
    f: SingleRHS, t: float, y: NDArray[np.floating], h: float
) -> NDArray[np.floating]:
    """Classical fourth-order Runge-Kutta step."""
    half = 0.5 * h
    k1 = f(t, y)
    k2 = f(t + half, y + half * k1)
    k3 = f(t + half, y + half * k2)
    k4 = f(t + h, y + h * k3)
    return y + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


def _fd_jacobian(
    f: SingleRHS,
    t: float,
    y: NDArray[np.floating],
    f0: NDArray[np.floating],
) -> NDArray[np.floating]:
    """Forward-difference Jacobian of f at (t, y)."""
    n = y.size
    jac = np.empty((n, n), dtype=np.float64)
    sqrt_eps = float(np.sqrt(np.finfo(np.float64).eps))
    y_pert = y.copy()
    for j in range(n):
        delta = sqrt_eps * max(1.0, abs(float(y[j])))
        y_pert[j] = y[j] + delta
        jac[:, j] = (f(t, y_pert) - f0) / delta
        y_pert[j] = y[j]
    return jac


def implicit_euler_step(
    f: SingleRHS,
    t: float,
    y: NDArray[np.floating],
    h: float,
    *,
    newton: NewtonConfig,
) -> NDArray[np.floating]:
    """Backward Euler step solved with a simplified Newton iteration.

    Solves z - y - h f(t+h, z) = 0 starting from the explicit Euler predictor.

    Args:
        f: Right-hand side.
        t: Step start time.
        y: State at t.
        h: Step size.
        newton: Newton iteration controls.

    Raises:
        DivergenceError: If the Newton matrix is singular or the iteration
            fails to converge to a finite value.

    Returns:
        State at t + h.
    """
    t_new = t + h
    z = y + h * f(t, y)
    f_z = f(t_new, z)
    if not np.all(np.isfinite(f_z)):
        raise DivergenceError(_NEWTON_NONFINITE_MSG.format(t=t_new))

    newton_matrix = np.eye(y.size) - h * _fd_jacobian(f, t_new, z, f_z)
    with warnings.catch_warnings():
        warnings.simplefilter("error", LinAlgWarning)
        try:
            lu_piv = lu_factor(newton_matrix)
        except (LinAlgWarning, ValueError) as exc:
            raise DivergenceError(_SINGULAR_NEWTON_MSG.format(t=t_new)) from exc

    norm = float("inf")
    for _ in range(newton.max_iter):
        residual = z - y - h * f_z
        dz = lu_solve(lu_piv, -residual)
        if not np.all(np.isfinite(dz)):
            raise DivergenceError(_NEWTON_NONFINITE_MSG.format(t=t_new))
        z = z + dz

        scale = newton.atol + newton.rtol * np.abs(z)
        norm = float(np.sqrt(np.mean((dz / scale) ** 2)))
        if norm <= 1.0:
            return z
        f_z = f(t_new, z)
        if not np.all(np.isfinite(f_z)):
            raise DivergenceError(_NEWTON_NONFINITE_MSG.format(t=t_new))

    raise DivergenceError(
        _NEWTON_NO_CONVERGENCE_MSG.format(max_iter=newton.max_iter, t=t_new, norm=norm)
    )


# ------------------------------------------------------------------
# Multi-step driver
# ------------------------------------------------------------------


def integrate(
    method: BaseMethodName,
    f: SingleRHS,
    t: float,
    y: NDArray[np.floating],
    span: float,
    n_steps: int,
    *,
    newton: NewtonConfig | None = None,
) -> NDArray[np.floating]:
    """Advance y' = f(t, y) across [t, t + span] in n_steps equal steps.

    Args:
        method: Base method name.
        f: Right-hand side.
        t: Start time.
        y: State at t (not modified).
        span: Interval length.
        n_steps: Number of equal steps.
        newton: Newton controls for implicit methods.

    Raises:
        RuntimeError: If method is not a known base method.

    Returns:
        State at t + span.
    """
    h = span / n_steps
    y_curr = np.array(y, dtype=np.float64)
    for i in range(n_steps):
        t_i = t + i * h
        if method == "rk4":
            y_curr = rk4_step(f, t_i, y_curr, h)
        elif method == "heun":
            y_curr = heun_step(f, t_i, y_curr, h)
        elif method == "euler":
            y_curr = euler_step(f, t_i, y_curr, h)
        elif method == "implicit-euler":
            y_curr = implicit_euler_step(
                f, t_i, y_curr, h, newton=newton or NewtonConfig()
            )
        else:
            msg = f"Unknown base method: {method}"
            raise RuntimeError(msg)
    return y_curr
