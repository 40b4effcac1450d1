# src/mr_engine/config.py
"""Declarative configuration models for mr_engine.

This module defines pydantic models for YAML/JSON-style configuration and
translates them into native :class:`mr_engine.options.MultirateOptions`.

Notes:
    - The method block is a discriminated union keyed by ``kind``
      ("explicit-mrk", "compound-fast-slow", "extrapolated").
    - Unknown fields are rejected (``extra="forbid"``) so typos fail loudly.
    - :func:`load_options` re-raises pydantic validation failures as
      InvalidConfigurationError, keeping one error taxonomy for callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidConfigurationError
from .options import (
    CompoundFastSlow,
    ExplicitMRK,
    Extrapolated,
    MultirateMethod,
    MultirateOptions,
    validate_options,
)

BaseMethodField = Literal["euler", "heun", "rk4", "implicit-euler"]
SlowCouplingField = Literal["frozen", "interpolated"]


class ExplicitMRKConfig(BaseModel):
    """Explicit multirate Runge-Kutta method block."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["explicit-mrk"] = "explicit-mrk"
    macro_steps: int = Field(default=4, gt=0)
    micro_steps: int = Field(default=10, gt=0)
    slow_coupling: SlowCouplingField = "frozen"

    def to_method(self) -> ExplicitMRK:
        """Convert to the native method variant."""
        return ExplicitMRK(
            macro_steps=self.macro_steps,
            micro_steps=self.micro_steps,
            slow_coupling=self.slow_coupling,
        )


class CompoundFastSlowConfig(BaseModel):
    """Compound fast/slow method block."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["compound-fast-slow"] = "compound-fast-slow"
    fast_method: BaseMethodField = "rk4"
    slow_method: BaseMethodField = "rk4"
    fast_substeps: int | None = Field(default=None, gt=0)
    slow_substeps: int = Field(default=1, gt=0)

    def to_method(self) -> CompoundFastSlow:
        """Convert to the native method variant."""
        return CompoundFastSlow(
            fast_method=self.fast_method,
            slow_method=self.slow_method,
            fast_substeps=self.fast_substeps,
            slow_substeps=self.slow_substeps,
        )


class ExtrapolatedConfig(BaseModel):
    """Richardson-extrapolated method block."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["extrapolated"] = "extrapolated"
    base_ratio: int = Field(default=4, gt=0)
    levels: int = Field(default=2, gt=0)
    slow_coupling: SlowCouplingField = "frozen"

    def to_method(self) -> Extrapolated:
        """Convert to the native method variant."""
        return Extrapolated(
            base_ratio=self.base_ratio,
            levels=self.levels,
            slow_coupling=self.slow_coupling,
        )


MethodConfig = Annotated[
    ExplicitMRKConfig | CompoundFastSlowConfig | ExtrapolatedConfig,
    Field(discriminator="kind"),
]


class MultirateEngineConfig(BaseModel):
    """Configuration schema for a multirate solve.

    This model mirrors MultirateOptions field by field with YAML-friendly
    defaults and validation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: MethodConfig = Field(
        default_factory=ExplicitMRKConfig,
        description="Step scheme variant and its parameters",
    )
    macro_step: float = Field(default=0.01, gt=0.0, allow_inf_nan=False)
    rtol: float = Field(default=1e-6, gt=0.0, allow_inf_nan=False)
    atol: float = Field(default=1e-9, gt=0.0, allow_inf_nan=False)
    max_steps: int = Field(default=100_000, gt=0)
    timescale_ratio: float | None = Field(default=None, gt=0.0, allow_inf_nan=False)

    def to_options(self) -> MultirateOptions:
        """Convert this config to native MultirateOptions.

        Returns:
            Validated MultirateOptions instance.
        """
        method: MultirateMethod = self.method.to_method()
        options = MultirateOptions(
            method=method,
            macro_step=self.macro_step,
            rtol=self.rtol,
            atol=self.atol,
            max_steps=self.max_steps,
            timescale_ratio=self.timescale_ratio,
        )
        validate_options(options)
        return options


def load_options(data: Mapping[str, object]) -> MultirateOptions:
    """Build MultirateOptions from a plain mapping (for example parsed YAML).

    Args:
        data: Mapping following the MultirateEngineConfig schema.

    Raises:
        InvalidConfigurationError: If the mapping fails schema validation.

    Returns:
        Validated MultirateOptions.
    """
    try:
        config = MultirateEngineConfig.model_validate(dict(data))
    except ValidationError as exc:
        msg = f"Invalid multirate configuration mapping: {exc}"
        raise InvalidConfigurationError(msg) from exc
    return config.to_options()
