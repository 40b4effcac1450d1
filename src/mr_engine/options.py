# src/mr_engine/options.py
"""Native configuration objects for the multirate solver.

The method variant is a closed union of frozen dataclasses:

    MultirateMethod = ExplicitMRK | CompoundFastSlow | Extrapolated

Each variant carries only its own parameters. :func:`validate_options` checks
every field exhaustively and raises InvalidConfigurationError on the first
violation; the solver calls it at construction time.
"""

from __future__ import annotations

import math
import numbers
import warnings
from dataclasses import dataclass
from typing import Final, Literal, TypeAlias

from .base_methods import normalize_base_method
from .errors import raise_invalid_configuration

SlowCoupling = Literal["frozen", "interpolated"]

_SLOW_COUPLINGS: Final[tuple[str, ...]] = ("frozen", "interpolated")

# Below this separation the compound splitting error is rarely acceptable.
COMPOUND_MIN_SEPARATION: Final[float] = 10.0

_POSITIVE_INT_DETAIL = "must be a positive integer"
_POSITIVE_FLOAT_DETAIL = "must be a finite float > 0"
_COUPLING_DETAIL = "expected one of {allowed}"
_UNKNOWN_METHOD_DETAIL = "expected ExplicitMRK, CompoundFastSlow or Extrapolated"
_UNDER_RESOLVED_WARN_MSG = (
    "{name} resolves {resolution} fast micro-steps per macro step, fewer than "
    "the time-scale separation hint {ratio:g}; the fast subsystem may be "
    "under-resolved."
)
_COMPOUND_SEPARATION_WARN_MSG = (
    "CompoundFastSlow freezes each partition while the other advances; the "
    "time-scale separation hint {ratio:g} is below {minimum:g}, so the "
    "splitting error may dominate."
)


@dataclass(slots=True, frozen=True)
class ExplicitMRK:
    """Explicit multirate Runge-Kutta variant.

    Attributes:
        macro_steps: Number of equal sub-intervals per macro step (slow RK4 steps).
        micro_steps: Number of fast RK4 micro-steps per sub-interval.
        slow_coupling: Slow value seen by the fast subsystem inside a
            sub-interval: "frozen" (start value) or "interpolated" (linear
            between the start value and an Euler prediction of the end value).
    """

    macro_steps: int = 4
    micro_steps: int = 10
    slow_coupling: SlowCoupling = "frozen"


@dataclass(slots=True, frozen=True)
class CompoundFastSlow:
    """Compound fast/slow variant with an independent base method per partition.

    Attributes:
        fast_method: Base method for the fast partition.
        slow_method: Base method for the slow partition.
        fast_substeps: Equal base-method steps across the macro interval for the
            fast partition. None resolves from the time-scale hint (or 1).
        slow_substeps: Equal base-method steps across the macro interval for the
            slow partition.
    """

    fast_method: str = "rk4"
    slow_method: str = "rk4"
    fast_substeps: int | None = None
    slow_substeps: int = 1


@dataclass(slots=True, frozen=True)
class Extrapolated:
    """Richardson-extrapolated explicit multirate variant.

    Attributes:
        base_ratio: Fast micro-steps per sub-interval at every level.
        levels: Number of extrapolation levels; level j uses 2**j sub-intervals.
        slow_coupling: Slow coupling mode of the underlying explicit MRK runs.
    """

    base_ratio: int = 4
    levels: int = 2
    slow_coupling: SlowCoupling = "frozen"


MultirateMethod: TypeAlias = ExplicitMRK | CompoundFastSlow | Extrapolated


@dataclass(slots=True, frozen=True)
class MultirateOptions:
    """Configuration for MultirateSolver.

    Attributes:
        method: Step scheme variant and its parameters.
        macro_step: Macro step size H.
        rtol: Relative tolerance (Newton iterations, error-norm diagnostics).
        atol: Absolute tolerance (Newton iterations, error-norm diagnostics).
        max_steps: Maximum number of macro steps per solve.
        timescale_ratio: Optional fast/slow time-scale separation hint, used for
            diagnostics and for resolving CompoundFastSlow.fast_substeps.
    """

    method: MultirateMethod = ExplicitMRK()
    macro_step: float = 0.01
    rtol: float = 1e-6
    atol: float = 1e-9
    max_steps: int = 100_000
    timescale_ratio: float | None = None


# ------------------------------------------------------------------
# Validation helpers
# ------------------------------------------------------------------


def _require_positive_int(field: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise_invalid_configuration(
            field=field, value=value, detail=_POSITIVE_INT_DETAIL
        )
    if value <= 0:
        raise_invalid_configuration(
            field=field, value=value, detail=_POSITIVE_INT_DETAIL
        )


def _require_positive_float(field: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise_invalid_configuration(
            field=field, value=value, detail=_POSITIVE_FLOAT_DETAIL
        )
    if not math.isfinite(float(value)) or float(value) <= 0.0:
        raise_invalid_configuration(
            field=field, value=value, detail=_POSITIVE_FLOAT_DETAIL
        )


def _require_coupling(field: str, value: object) -> None:
    if value not in _SLOW_COUPLINGS:
        raise_invalid_configuration(
            field=field,
            value=value,
            detail=_COUPLING_DETAIL.format(allowed=_SLOW_COUPLINGS),
        )


def validate_method(method: MultirateMethod) -> None:
    """Validate a method variant's parameters.

    Args:
        method: Method variant.
    """
    if isinstance(method, ExplicitMRK):
        _require_positive_int("ExplicitMRK.macro_steps", method.macro_steps)
        _require_positive_int("ExplicitMRK.micro_steps", method.micro_steps)
        _require_coupling("ExplicitMRK.slow_coupling", method.slow_coupling)
        return
    if isinstance(method, CompoundFastSlow):
        normalize_base_method(method.fast_method)
        normalize_base_method(method.slow_method)
        if method.fast_substeps is not None:
            _require_positive_int(
                "CompoundFastSlow.fast_substeps", method.fast_substeps
            )
        _require_positive_int("CompoundFastSlow.slow_substeps", method.slow_substeps)
        return
    if isinstance(method, Extrapolated):
        _require_positive_int("Extrapolated.base_ratio", method.base_ratio)
        _require_positive_int("Extrapolated.levels", method.levels)
        _require_coupling("Extrapolated.slow_coupling", method.slow_coupling)
        return
    raise_invalid_configuration(
        field="method", value=method, detail=_UNKNOWN_METHOD_DETAIL
    )


def validate_options(options: MultirateOptions) -> None:
    """Validate a full MultirateOptions object.

    Args:
        options: Options to validate.
    """
    validate_method(options.method)
    _require_positive_float("macro_step", options.macro_step)
    _require_positive_float("rtol", options.rtol)
    _require_positive_float("atol", options.atol)
    _require_positive_int("max_steps", options.max_steps)
    if options.timescale_ratio is not None:
        _require_positive_float("timescale_ratio", options.timescale_ratio)


def fast_resolution(method: MultirateMethod) -> int:
    """Return the number of fast micro-steps per macro step at the finest level.

    Args:
        method: Validated method variant.

    Returns:
        Fast micro-steps per macro step (CompoundFastSlow counts fast_substeps,
        with None treated as 1).
    """
    if isinstance(method, ExplicitMRK):
        return method.macro_steps * method.micro_steps
    if isinstance(method, Extrapolated):
        return method.base_ratio * 2 ** (method.levels - 1)
    return method.fast_substeps or 1


def resolve_fast_substeps(
    method: CompoundFastSlow, timescale_ratio: float | None
) -> int:
    """Resolve CompoundFastSlow.fast_substeps against the time-scale hint."""
    if method.fast_substeps is not None:
        return method.fast_substeps
    if timescale_ratio is None:
        return 1
    return max(1, math.ceil(timescale_ratio))


def warn_on_timescale_hint(options: MultirateOptions) -> None:
    """Emit RuntimeWarning when the hint disagrees with the chosen resolution.

    Args:
        options: Validated options.
    """
    ratio = options.timescale_ratio
    if ratio is None:
        return

    method = options.method
    if isinstance(method, CompoundFastSlow):
        if ratio < COMPOUND_MIN_SEPARATION:
            warnings.warn(
                _COMPOUND_SEPARATION_WARN_MSG.format(
                    ratio=ratio, minimum=COMPOUND_MIN_SEPARATION
                ),
                RuntimeWarning,
                stacklevel=3,
            )
        return

    resolution = fast_resolution(method)
    if resolution < ratio:
        warnings.warn(
            _UNDER_RESOLVED_WARN_MSG.format(
                name=type(method).__name__, resolution=resolution, ratio=ratio
            ),
            RuntimeWarning,
            stacklevel=3,
        )
