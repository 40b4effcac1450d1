"""Tests for the pydantic configuration layer in mr_engine.config."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mr_engine import (
    CompoundFastSlow,
    ExplicitMRK,
    Extrapolated,
    InvalidConfigurationError,
    MultirateOptions,
)
from mr_engine.config import (
    CompoundFastSlowConfig,
    ExplicitMRKConfig,
    MultirateEngineConfig,
    load_options,
)


def test_empty_mapping_gives_default_options() -> None:
    """An empty mapping maps to MultirateOptions() exactly."""
    assert load_options({}) == MultirateOptions()


@pytest.mark.parametrize(
    ("block", "expected"),
    [
        (
            {"kind": "explicit-mrk", "macro_steps": 3, "micro_steps": 12},
            ExplicitMRK(macro_steps=3, micro_steps=12),
        ),
        (
            {
                "kind": "compound-fast-slow",
                "fast_method": "implicit-euler",
                "slow_method": "heun",
                "fast_substeps": 4,
            },
            CompoundFastSlow(
                fast_method="implicit-euler", slow_method="heun", fast_substeps=4
            ),
        ),
        (
            {"kind": "extrapolated", "base_ratio": 6, "slow_coupling": "interpolated"},
            Extrapolated(base_ratio=6, slow_coupling="interpolated"),
        ),
    ],
)
def test_method_block_selects_variant(
    block: dict[str, object],
    expected: ExplicitMRK | CompoundFastSlow | Extrapolated,
) -> None:
    """The kind discriminator picks the matching native variant."""
    options = load_options({"method": block, "macro_step": 0.05})
    assert options.method == expected
    assert options.macro_step == 0.05


def test_scalar_fields_round_trip() -> None:
    """Top-level numeric fields map one to one onto MultirateOptions."""
    options = load_options(
        {
            "macro_step": 0.002,
            "rtol": 1e-4,
            "atol": 1e-7,
            "max_steps": 42,
            "timescale_ratio": 25.0,
        }
    )
    assert options == MultirateOptions(
        macro_step=0.002, rtol=1e-4, atol=1e-7, max_steps=42, timescale_ratio=25.0
    )


@pytest.mark.parametrize(
    "data",
    [
        pytest.param({"method": {"kind": "rosenbrock"}}, id="unknown-kind"),
        pytest.param(
            {"method": {"kind": "explicit-mrk", "stages": 3}}, id="extra-field"
        ),
        pytest.param({"macro_step": -1.0}, id="negative-H"),
        pytest.param({"macro_step": "inf"}, id="infinite-H"),
        pytest.param({"max_steps": 0}, id="zero-budget"),
        pytest.param({"method": {"kind": "extrapolated", "levels": 0}}, id="levels0"),
        pytest.param(
            {"method": {"kind": "compound-fast-slow", "fast_method": "bdf"}},
            id="unknown-base-method",
        ),
        pytest.param({"tolerance": 1e-3}, id="typo"),
    ],
)
def test_invalid_mapping_raises_library_error(data: dict[str, object]) -> None:
    """Schema failures surface as InvalidConfigurationError chained to pydantic."""
    with pytest.raises(InvalidConfigurationError) as excinfo:
        load_options(data)
    assert isinstance(excinfo.value.__cause__, ValidationError)


def test_models_are_frozen() -> None:
    """Config models are immutable once validated."""
    config = MultirateEngineConfig()
    with pytest.raises(ValidationError):
        config.macro_step = 1.0  # type: ignore[misc]


def test_method_models_convert_directly() -> None:
    """Each method block converts to its native variant on its own."""
    assert ExplicitMRKConfig().to_method() == ExplicitMRK()
    assert CompoundFastSlowConfig(fast_substeps=3).to_method() == CompoundFastSlow(
        fast_substeps=3
    )
