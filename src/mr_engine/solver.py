# src/mr_engine/solver.py
"""Multirate solver driver.

The driver owns validated :class:`mr_engine.options.MultirateOptions` and runs
the macro-step loop for one solve call:

    INITIALIZED -> STEPPING -> {COMPLETED, FAILED}

- INITIALIZED: options were validated at construction; the call arguments
  (system, t_span, y0) are validated and the trajectory is seeded with (t0, y0).
- STEPPING: the configured step scheme advances one macro interval at a time.
  Each accepted step appends (t, y) to the trajectory.
- COMPLETED: time reached t_end (status COMPLETED), or the step budget ran out
  first (status STEP_BUDGET_EXCEEDED). Both return a Trajectory.
- FAILED: a scheme raised an arithmetic failure or produced a non-finite state.
  DivergenceError is raised with the partial trajectory attached.

Macro-step times are t0 + k*H (no accumulation). The final step is shortened so
the last sample lands exactly on t_end; a remainder below a few ulps is absorbed
into the preceding step instead of producing a degenerate step.

A solver holds no per-solve state; every solve builds its own evaluation
adapter, scheme and trajectory buffer, so one instance can be reused for
independent sequential solves.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Final, NoReturn

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import (
    DimensionMismatchError,
    DivergenceError,
    raise_dimension_mismatch,
    raise_invalid_configuration,
)
from .options import MultirateOptions, validate_options, warn_on_timescale_hint
from .schemes import build_scheme
from .system import MultirateSystem, PartitionedRHS
from .trajectory import SolveStatus, Trajectory, TrajectoryBuffer

_logger = logging.getLogger(__name__)

_ENDPOINT_ULPS: Final[float] = 8.0
_MAX_INITIAL_SAMPLES: Final[float] = 4096.0

_SYSTEM_TYPE_ERROR_MSG = (
    "system must implement slow_rhs, fast_rhs, slow_dim and fast_dim; got {kind}"
)
_T_SPAN_DETAIL = "t_span must be two finite times with t_end >= t_start"
_Y0_FINITE_DETAIL = "initial state must be finite"
_PARTITION_DIM_DETAIL = "partition dimensions must be non-negative with a positive sum"
_NONFINITE_STATE_MSG = "non-finite state produced on step {step} ending at t={t:.6g}"
_SCHEME_FAILURE_MSG = "step {step} starting at t={t:.6g} failed: {reason}"


class SolverState(Enum):
    """Driver state machine states."""

    INITIALIZED = "initialized"
    STEPPING = "stepping"
    COMPLETED = "completed"
    FAILED = "failed"


class MultirateSolver:
    """Macro-step driver for multirate step schemes."""

    def __init__(self, options: MultirateOptions | None = None) -> None:
        """Initialize MultirateSolver.

        Args:
            options: Solver options. If None, defaults are used.

        Raises:
            InvalidConfigurationError: If options are malformed.
        """
        opts = options or MultirateOptions()
        validate_options(opts)
        warn_on_timescale_hint(opts)
        self.options = opts

    # ------------------------------------------------------------------
    # Argument validation
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_t_span(t_span: Sequence[float]) -> tuple[float, float]:
        if len(t_span) != 2:
            raise_invalid_configuration(
                field="t_span", value=t_span, detail=_T_SPAN_DETAIL
            )
        t_start, t_end = float(t_span[0]), float(t_span[1])
        if not (math.isfinite(t_start) and math.isfinite(t_end)) or t_end < t_start:
            raise_invalid_configuration(
                field="t_span", value=t_span, detail=_T_SPAN_DETAIL
            )
        return t_start, t_end

    @staticmethod
    def _resolve_rhs(system: MultirateSystem) -> PartitionedRHS:
        if not isinstance(system, MultirateSystem):
            raise TypeError(_SYSTEM_TYPE_ERROR_MSG.format(kind=type(system).__name__))
        rhs = PartitionedRHS(system)
        if rhs.n_slow < 0 or rhs.n_fast < 0 or rhs.n_slow + rhs.n_fast == 0:
            raise_invalid_configuration(
                field="(slow_dim, fast_dim)",
                value=(rhs.n_slow, rhs.n_fast),
                detail=_PARTITION_DIM_DETAIL,
            )
        return rhs

    @staticmethod
    def _resolve_y0(y0: ArrayLike, dim: int) -> NDArray[np.floating]:
        y0_arr = np.array(y0, dtype=np.float64)
        if y0_arr.ndim != 1 or y0_arr.size != dim:
            raise_dimension_mismatch(name="y0", expected=dim, got=y0_arr.shape)
        if not np.all(np.isfinite(y0_arr)):
            raise_invalid_configuration(
                field="y0", value=y0_arr.tolist(), detail=_Y0_FINITE_DETAIL
            )
        return y0_arr

    def _capacity(self, t_start: float, t_end: float) -> int:
        # the ratio may overflow to inf; the buffer grows past this by doubling
        expected = (t_end - t_start) / self.options.macro_step
        bounded = min(expected, float(self.options.max_steps), _MAX_INITIAL_SAMPLES)
        return math.ceil(bounded) + 1

    # ------------------------------------------------------------------
    # Public solve
    # ------------------------------------------------------------------

    def solve(
        self,
        system: MultirateSystem,
        t_span: Sequence[float],
        y0: ArrayLike,
    ) -> Trajectory:
        """Integrate system over t_span starting from y0.

        Args:
            system: Multirate problem definition.
            t_span: (t_start, t_end).
            y0: Initial full state, slow components first.

        Raises:
            TypeError: If system does not implement the MultirateSystem contract.
            InvalidConfigurationError: If t_span or y0 values are invalid.
            DimensionMismatchError: If y0 length differs from slow_dim + fast_dim,
                or a right-hand side returns the wrong length mid-run (then
                ``exc.t_last`` and ``exc.step_index`` locate the failing step).
            DivergenceError: If a step fails or produces a non-finite state. The
                partial trajectory is attached as ``exc.trajectory``.

        Returns:
            Trajectory with status COMPLETED or STEP_BUDGET_EXCEEDED.
        """
        opts = self.options
        rhs = self._resolve_rhs(system)
        t_start, t_end = self._resolve_t_span(t_span)
        y0_arr = self._resolve_y0(y0, rhs.n_slow + rhs.n_fast)

        run = _SolveRun(
            rhs=rhs,
            buffer=TrajectoryBuffer(y0_arr.size, self._capacity(t_start, t_end)),
            t_end=t_end,
            max_steps=opts.max_steps,
        )
        run.buffer.append(t_start, y0_arr)
        scheme = build_scheme(opts, rhs)
        _logger.debug(
            "%s solve: t=[%g, %g], H=%g, dims=(%d, %d)",
            type(opts.method).__name__,
            t_start,
            t_end,
            opts.macro_step,
            rhs.n_slow,
            rhs.n_fast,
        )

        y_slow, y_fast = rhs.split(y0_arr)
        macro_step = float(opts.macro_step)
        tiny = _ENDPOINT_ULPS * float(np.finfo(np.float64).eps)
        tiny *= max(abs(t_start), abs(t_end), macro_step)

        run.transition(SolverState.STEPPING)
        t = t_start
        k = 0
        while t < t_end:
            if k >= opts.max_steps:
                run.status = SolveStatus.STEP_BUDGET_EXCEEDED
                break

            t_next = t_start + (k + 1) * macro_step
            if t_next >= t_end - tiny:
                t_next = t_end

            try:
                with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
                    result = scheme.advance(t, t_next - t, y_slow, y_fast)
            except ArithmeticError as exc:
                run.fail(_SCHEME_FAILURE_MSG.format(step=k, t=t, reason=exc), exc)
            except DimensionMismatchError as exc:
                run.transition(SolverState.FAILED)
                exc.t_last = t
                exc.step_index = k
                raise

            y_next = rhs.join(result.y_slow, result.y_fast)
            if not np.all(np.isfinite(y_next)):
                run.fail(_NONFINITE_STATE_MSG.format(step=k, t=t_next), None)

            run.buffer.append(t_next, y_next, result.error_norm)
            y_slow, y_fast = result.y_slow, result.y_fast
            t = t_next
            k += 1

        if run.status is SolveStatus.STEP_BUDGET_EXCEEDED:
            _logger.warning(
                "step budget of %d exhausted at t=%g before t_end=%g",
                opts.max_steps,
                t,
                t_end,
            )
        run.transition(SolverState.COMPLETED)
        return run.freeze()


@dataclass(slots=True)
class _SolveRun:
    """Mutable bookkeeping for one solve call.

    Attributes:
        rhs: Evaluation adapter (also holds evaluation counters).
        buffer: Trajectory sample buffer.
        t_end: Requested end time.
        max_steps: Step budget.
        status: Outcome recorded so far.
        state: Current driver state.
        started: perf_counter timestamp at which stepping began.
    """

    rhs: PartitionedRHS
    buffer: TrajectoryBuffer
    t_end: float
    max_steps: int
    status: SolveStatus = SolveStatus.COMPLETED
    state: SolverState = SolverState.INITIALIZED
    started: float = field(default_factory=time.perf_counter)

    def transition(self, new_state: SolverState) -> None:
        """Move the state machine and log the transition."""
        _logger.debug(
            "%s -> %s at step %d (%d slow / %d fast evals)",
            self.state.value,
            new_state.value,
            len(self.buffer) - 1,
            self.rhs.n_slow_evals,
            self.rhs.n_fast_evals,
        )
        if new_state is SolverState.STEPPING:
            self.started = time.perf_counter()
        self.state = new_state

    def freeze(self) -> Trajectory:
        """Freeze the samples written so far into a Trajectory."""
        return self.buffer.freeze(
            slow_dim=self.rhs.n_slow,
            status=self.status,
            t_end=self.t_end,
            max_steps=self.max_steps,
            n_slow_evals=self.rhs.n_slow_evals,
            n_fast_evals=self.rhs.n_fast_evals,
            wall_time=time.perf_counter() - self.started,
        )

    def fail(self, message: str, cause: BaseException | None) -> NoReturn:
        """Freeze the partial trajectory and raise DivergenceError.

        Args:
            message: Failure description.
            cause: Underlying exception, if any.

        Raises:
            DivergenceError: Always.
        """
        self.status = SolveStatus.DIVERGED
        self.transition(SolverState.FAILED)
        partial = self.freeze()
        raise DivergenceError(
            message,
            t_last=partial.t_final,
            step_index=partial.n_steps,
            trajectory=partial,
        ) from cause


def construct_solver(options: MultirateOptions | None = None) -> MultirateSolver:
    """Validate options and build a MultirateSolver.

    Args:
        options: Solver options. If None, defaults are used.

    Returns:
        Configured solver.
    """
    return MultirateSolver(options)


def solve(
    solver: MultirateSolver,
    system: MultirateSystem,
    t_span: Sequence[float],
    y0: ArrayLike,
) -> Trajectory:
    """Run solver.solve(system, t_span, y0).

    Args:
        solver: Configured solver.
        system: Multirate problem definition.
        t_span: (t_start, t_end).
        y0: Initial full state, slow components first.

    Returns:
        Trajectory produced by the solve.
    """
    return solver.solve(system, t_span, y0)
