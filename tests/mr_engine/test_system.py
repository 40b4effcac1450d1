"""Unit tests for mr_engine.system (problem contract and evaluation adapter)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from mr_engine import DimensionMismatchError, FunctionSystem, MultirateSystem
from mr_engine.system import PartitionedRHS

if TYPE_CHECKING:
    from conftest import ChemicalReaction
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]


def _zeros_like_slow(_t: float, y_slow: FloatArray, _y_fast: FloatArray) -> FloatArray:
    return np.zeros_like(y_slow)


def _zeros_like_fast(_t: float, _y_slow: FloatArray, y_fast: FloatArray) -> FloatArray:
    return np.zeros_like(y_fast)


def test_function_system_satisfies_protocol() -> None:
    """FunctionSystem is recognized as a MultirateSystem at runtime."""
    system = FunctionSystem(
        n_slow=1, n_fast=2, slow=_zeros_like_slow, fast=_zeros_like_fast
    )
    assert isinstance(system, MultirateSystem)
    assert system.slow_dim() == 1
    assert system.fast_dim() == 2


def test_class_system_satisfies_protocol(reactions: ChemicalReaction) -> None:
    """A plain class with the four methods is a MultirateSystem."""
    assert isinstance(reactions, MultirateSystem)
    assert not isinstance(object(), MultirateSystem)


def test_partitioned_rhs_passes_read_only_views() -> None:
    """User callbacks receive views they cannot write through."""
    seen: list[bool] = []

    def slow(_t: float, y_slow: FloatArray, y_fast: FloatArray) -> FloatArray:
        seen.extend([y_slow.flags.writeable, y_fast.flags.writeable])
        with pytest.raises(ValueError, match="read-only"):
            y_slow[0] = 99.0
        return -y_slow

    rhs = PartitionedRHS(
        FunctionSystem(n_slow=1, n_fast=1, slow=slow, fast=_zeros_like_fast)
    )
    ys = np.array([1.0])
    out = rhs.slow(0.0, ys, np.array([2.0]))

    assert seen == [False, False]
    assert ys[0] == 1.0
    np.testing.assert_array_equal(out, [-1.0])


def test_partitioned_rhs_coerces_and_counts() -> None:
    """Results are float64 arrays; slow and fast evaluations are counted apart."""

    def slow(_t: float, _y_slow: FloatArray, _y_fast: FloatArray) -> list[int]:
        return [1]

    rhs = PartitionedRHS(
        FunctionSystem(n_slow=1, n_fast=2, slow=slow, fast=_zeros_like_fast)
    )
    out = rhs.slow(0.0, np.zeros(1), np.zeros(2))
    rhs.fast(0.0, np.zeros(1), np.zeros(2))
    rhs.fast(0.1, np.zeros(1), np.zeros(2))

    assert out.dtype == np.float64
    assert rhs.n_slow_evals == 1
    assert rhs.n_fast_evals == 2


@pytest.mark.parametrize("partition", ["slow", "fast"])
def test_partitioned_rhs_rejects_wrong_derivative_length(partition: str) -> None:
    """A derivative of the wrong length raises DimensionMismatchError."""

    def bad(_t: float, _y_slow: FloatArray, _y_fast: FloatArray) -> FloatArray:
        return np.zeros(5)

    slow = bad if partition == "slow" else _zeros_like_slow
    fast = bad if partition == "fast" else _zeros_like_fast
    rhs = PartitionedRHS(FunctionSystem(n_slow=1, n_fast=2, slow=slow, fast=fast))

    with pytest.raises(DimensionMismatchError, match=f"{partition}_rhs"):
        getattr(rhs, partition)(0.0, np.zeros(1), np.zeros(2))


def test_split_returns_copies_and_join_restores(reactions: ChemicalReaction) -> None:
    """split yields independent slow/fast copies; join concatenates them back."""
    rhs = PartitionedRHS(reactions)
    y = np.array([0.1, 0.6, 0.3])

    y_slow, y_fast = rhs.split(y)
    y_slow[0] = -1.0

    np.testing.assert_array_equal(y_fast, [0.6, 0.3])
    assert y[0] == 0.1
    np.testing.assert_array_equal(rhs.join(np.array([0.1]), y_fast), y)
