"""Tests for mr_engine.base_methods single-rate stepping primitives."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from mr_engine import DivergenceError, InvalidConfigurationError
from mr_engine.base_methods import (
    BASE_METHODS,
    NewtonConfig,
    implicit_euler_step,
    integrate,
    normalize_base_method,
)

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]

_TIGHT_NEWTON = NewtonConfig(rtol=1e-10, atol=1e-12, max_iter=10)


def _decay(_t: float, y: FloatArray) -> FloatArray:
    return -y


def _error_at(method: str, n_steps: int) -> float:
    """Absolute error of y' = -y, y(0) = 1 at t = 1 after n_steps steps.

    Args:
        method: Base method name.
        n_steps: Number of equal steps.

    Returns:
        |y_num(1) - exp(-1)|.
    """
    y = integrate(
        normalize_base_method(method),
        _decay,
        0.0,
        np.array([1.0]),
        1.0,
        n_steps,
        newton=_TIGHT_NEWTON,
    )
    return float(abs(y[0] - np.exp(-1.0)))


# -----------------------------------------------------------------------------
# Method names
# -----------------------------------------------------------------------------


def test_normalize_base_method_strips_and_lowercases() -> None:
    """Method names are case- and whitespace-insensitive."""
    assert normalize_base_method("  RK4 ") == "rk4"
    assert normalize_base_method("Implicit-Euler") == "implicit-euler"


def test_normalize_base_method_rejects_unknown() -> None:
    """Unknown base methods raise InvalidConfigurationError listing the options."""
    with pytest.raises(InvalidConfigurationError, match="expected one of"):
        normalize_base_method("bdf2")


# -----------------------------------------------------------------------------
# Convergence orders
# -----------------------------------------------------------------------------

NOMINAL_ORDERS = {"euler": 1, "heun": 2, "rk4": 4, "implicit-euler": 1}


def test_every_base_method_is_order_checked() -> None:
    """The order table below covers exactly BASE_METHODS."""
    assert set(NOMINAL_ORDERS) == set(BASE_METHODS)


@pytest.mark.parametrize(("method", "order"), NOMINAL_ORDERS.items())
def test_observed_order_matches_nominal(method: str, order: int) -> None:
    """Halving the step shrinks the error by about 2**order."""
    err_coarse = _error_at(method, 20)
    err_fine = _error_at(method, 40)
    observed = np.log2(err_coarse / err_fine)

    assert observed == pytest.approx(order, abs=0.2)


def test_integrate_does_not_modify_input() -> None:
    """integrate returns a new array and leaves the initial state alone."""
    y0 = np.array([1.0, 2.0])
    out = integrate("rk4", _decay, 0.0, y0, 0.5, 5)

    np.testing.assert_array_equal(y0, [1.0, 2.0])
    assert out is not y0


def test_integrate_rejects_unknown_method() -> None:
    """integrate guards against names that bypassed normalization."""
    with pytest.raises(RuntimeError, match="Unknown base method"):
        integrate("midpoint", _decay, 0.0, np.array([1.0]), 1.0, 1)


# -----------------------------------------------------------------------------
# Implicit Euler
# -----------------------------------------------------------------------------


def test_implicit_euler_is_stable_where_explicit_euler_explodes() -> None:
    """Backward Euler damps a stiff decay that forward Euler amplifies."""

    def stiff(_t: float, y: FloatArray) -> FloatArray:
        return -1000.0 * y

    y0 = np.array([1.0])
    y_implicit = integrate("implicit-euler", stiff, 0.0, y0, 1.0, 10)
    y_explicit = integrate("euler", stiff, 0.0, y0, 1.0, 10)

    assert np.all(np.isfinite(y_implicit))
    assert abs(y_implicit[0]) < 1e-6
    assert abs(y_explicit[0]) > 1e10


def test_implicit_euler_matches_closed_form_on_linear_problem() -> None:
    """For y' = lam*y one backward Euler step gives y / (1 - h*lam)."""
    lam, h = -50.0, 0.1
    y = implicit_euler_step(
        lambda _t, z: lam * z, 0.0, np.array([2.0]), h, newton=_TIGHT_NEWTON
    )
    assert y[0] == pytest.approx(2.0 / (1.0 - h * lam), rel=1e-8)


def test_implicit_euler_singular_newton_matrix_raises() -> None:
    """A singular I - h*J is reported as DivergenceError."""

    def growth(_t: float, y: FloatArray) -> FloatArray:
        return y

    with pytest.raises(DivergenceError, match="singular"):
        implicit_euler_step(growth, 0.0, np.array([0.0]), 1.0, newton=NewtonConfig())


def test_implicit_euler_non_finite_newton_evaluation_raises() -> None:
    """A right-hand side turning non-finite mid-iteration raises DivergenceError."""
    calls: list[float] = []

    def decay_then_nan(t: float, y: FloatArray) -> FloatArray:
        # predictor, f at the predictor, one Jacobian column; then NaN
        calls.append(t)
        if len(calls) > 3:
            return np.full_like(y, np.nan)
        return -y

    with pytest.raises(DivergenceError, match="non-finite"):
        implicit_euler_step(
            decay_then_nan, 0.0, np.array([1.0]), 0.5, newton=_TIGHT_NEWTON
        )
    assert len(calls) == 4


def test_implicit_euler_non_convergence_raises() -> None:
    """Exhausting max_iter without meeting the tolerance raises DivergenceError."""

    def cubic(_t: float, y: FloatArray) -> FloatArray:
        return -(y**3)

    with pytest.raises(DivergenceError, match="did not converge"):
        implicit_euler_step(
            cubic,
            0.0,
            np.array([10.0]),
            1.0,
            newton=NewtonConfig(rtol=1e-14, atol=1e-14, max_iter=1),
        )
