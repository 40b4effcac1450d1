"""mr_engine multirate ODE integration package."""

from __future__ import annotations

from .errors import (
    DimensionMismatchError,
    DivergenceError,
    InvalidConfigurationError,
    MultirateError,
    StepBudgetExceededError,
)
from .options import (
    CompoundFastSlow,
    ExplicitMRK,
    Extrapolated,
    MultirateMethod,
    MultirateOptions,
)
from .solver import MultirateSolver, SolverState, construct_solver, solve
from .system import FunctionSystem, MultirateSystem
from .trajectory import SolveStatus, Trajectory

__all__ = [
    "CompoundFastSlow",
    "DimensionMismatchError",
    "DivergenceError",
    "ExplicitMRK",
    "Extrapolated",
    "FunctionSystem",
    "InvalidConfigurationError",
    "MultirateError",
    "MultirateMethod",
    "MultirateOptions",
    "MultirateSolver",
    "MultirateSystem",
    "SolveStatus",
    "SolverState",
    "StepBudgetExceededError",
    "Trajectory",
    "construct_solver",
    "solve",
]

__version__ = "0.1.0"
