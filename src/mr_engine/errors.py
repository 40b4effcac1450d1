# src/mr_engine/errors.py
"""Error types and standardized raisers for mr_engine.

This module centralizes:
- explicit error classes with actionable messages, and
- small helpers that format those messages consistently at raise sites.

Design intent:
- every error also subclasses the matching builtin (ValueError, ArithmeticError,
  RuntimeError) so callers can catch either the library type or the builtin
- failures during stepping carry enough context (last valid time, step index,
  partial trajectory) to resume or diagnose
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

if TYPE_CHECKING:
    from .trajectory import Trajectory


class MultirateError(Exception):
    """Base exception for mr_engine errors."""


class InvalidConfigurationError(MultirateError, ValueError):
    """Raised when solver options or solve arguments are malformed."""


class DimensionMismatchError(MultirateError, ValueError):
    """Raised when a state or derivative length disagrees with the partition.

    Attributes:
        t_last: Start time of the macro step whose evaluation failed. None when
            raised outside the stepping loop.
        step_index: Number of macro steps completed before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        t_last: float | None = None,
        step_index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.t_last = t_last
        self.step_index = step_index


class DivergenceError(MultirateError, ArithmeticError):
    """Raised when integration produces a non-finite value.

    Attributes:
        t_last: Time of the last finite sample, if known.
        step_index: Number of macro steps completed before the failure.
        trajectory: Partial trajectory up to the last successful step. None when
            the error was raised below the solver driver.
    """

    def __init__(
        self,
        message: str,
        *,
        t_last: float | None = None,
        step_index: int | None = None,
        trajectory: Trajectory | None = None,
    ) -> None:
        super().__init__(message)
        self.t_last = t_last
        self.step_index = step_index
        self.trajectory = trajectory


class StepBudgetExceededError(MultirateError, RuntimeError):
    """Raised by Trajectory.raise_for_status when max_steps ran out before t_end."""

    def __init__(self, message: str, *, t_last: float, step_index: int) -> None:
        super().__init__(message)
        self.t_last = t_last
        self.step_index = step_index


def raise_invalid_configuration(
    *,
    field: str,
    value: object,
    detail: str | None = None,
) -> NoReturn:
    """Raise a standardized InvalidConfigurationError.

    Args:
        field: Name of the offending option or argument.
        value: Offending value.
        detail: Optional human-readable constraint description.

    Raises:
        InvalidConfigurationError: Always.
    """
    parts: list[str] = [f"Invalid multirate configuration: {field}={value!r}."]
    if detail:
        parts.append(f"Detail: {detail}")
    raise InvalidConfigurationError(" ".join(parts))


def raise_dimension_mismatch(*, name: str, expected: int, got: object) -> NoReturn:
    """Raise a standardized DimensionMismatchError.

    Args:
        name: Name of the object with the length issue.
        expected: Expected length.
        got: Actual observed shape/length.

    Raises:
        DimensionMismatchError: Always.
    """
    msg = f"{name} has an invalid shape. Expected length {expected}. Got: {got!r}."
    raise DimensionMismatchError(msg)
