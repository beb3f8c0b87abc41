"""Single source of truth for the published analysis parameter sets.

Two configurations of the Sobel lineament workflow were published and differ
only in threshold percentile and fault buffer distances:
- "top15": 85th percentile (strongest 15% of gradients), 1/3/6 km buffers
- "top30": 70th percentile (strongest 30% of gradients), 1/5/10 km buffers

Used by both application.config (named presets) and the tests.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

# Sorted by name for deterministic iteration.
PARAMETER_SETS: Mapping[str, Mapping[str, Any]] = MappingProxyType(
    {
        "top15": MappingProxyType(
            {
                "percentile": 85.0,
                "buffer_distances_m": (1000.0, 3000.0, 6000.0),
            }
        ),
        "top30": MappingProxyType(
            {
                "percentile": 70.0,
                "buffer_distances_m": (1000.0, 5000.0, 10000.0),
            }
        ),
    }
)

# Trade-off sweep and histogram step shared by both sets
TRADEOFF_PERCENTILES: tuple[float, ...] = (70.0, 75.0, 80.0, 85.0, 90.0, 95.0)
HISTOGRAM_BIN_WIDTH_DEG: float = 15.0
