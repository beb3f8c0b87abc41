"""Analysis configuration.

All parameters are supplied by the caller and validated at entry; nothing in
the pipeline hard-codes percentiles or buffer distances.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.parameter_sets import (
    HISTOGRAM_BIN_WIDTH_DEG,
    PARAMETER_SETS,
    TRADEOFF_PERCENTILES,
)

DEFAULT_MAX_CELL_BUDGET = 50_000_000


class AnalysisConfig(BaseModel):
    """Validated parameters for one lineament analysis run.

    Invariants:
        AC-1: percentile and every percentile_list entry in [0, 100]
        AC-2: histogram_bin_width_deg > 0 and divides 180 evenly
        AC-3: percentile_list and buffer_distances_m are non-empty
        AC-4: buffer distances >= 0
    """

    percentile: float = Field(default=85.0, ge=0, le=100)
    # Absolute magnitude cutoff; replaces the percentile for the primary zone
    threshold_value: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    percentile_list: tuple[float, ...] = TRADEOFF_PERCENTILES
    histogram_bin_width_deg: float = Field(default=HISTOGRAM_BIN_WIDTH_DEG, gt=0)
    buffer_distances_m: tuple[float, ...] = (1000.0, 3000.0, 6000.0)
    max_cell_budget: int = Field(default=DEFAULT_MAX_CELL_BUDGET, gt=0)
    cell_size_override_m: float | None = Field(default=None, gt=0)
    max_workers: int | None = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("percentile_list")
    @classmethod
    def validate_percentiles(cls, values: tuple[float, ...]) -> tuple[float, ...]:
        if not values:
            raise ValueError("percentile_list cannot be empty")
        for p in values:
            if not (0 <= p <= 100):
                raise ValueError(f"percentile out of range: {p}")
        return values

    @field_validator("histogram_bin_width_deg")
    @classmethod
    def validate_bin_width(cls, value: float) -> float:
        n_bins = round(180.0 / value)
        if n_bins < 1 or not math.isclose(n_bins * value, 180.0):
            raise ValueError(f"histogram_bin_width_deg must divide 180, got {value}")
        return value

    @field_validator("buffer_distances_m")
    @classmethod
    def validate_buffers(cls, values: tuple[float, ...]) -> tuple[float, ...]:
        if not values:
            raise ValueError("buffer_distances_m cannot be empty")
        for d in values:
            if not (math.isfinite(d) and d >= 0):
                raise ValueError(f"buffer distance must be finite and >= 0: {d}")
        return values

    @classmethod
    def from_parameter_set(cls, name: str, **overrides: Any) -> "AnalysisConfig":
        """Build a config from a published parameter set ("top15" or "top30").

        Raises:
            KeyError: If the parameter set is unknown
        """
        if name not in PARAMETER_SETS:
            raise KeyError(
                f"Unknown parameter set {name!r}; expected one of {sorted(PARAMETER_SETS)}"
            )
        return cls(**{**PARAMETER_SETS[name], **overrides})
