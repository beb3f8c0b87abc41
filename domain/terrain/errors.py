"""Terrain Bounded Context - Error Hierarchy.

Custom exceptions for raster operations.

Recoverable conditions (empty region, out-of-coverage points) are raised here
and converted into result-level flags by the batch services that catch them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.terrain.value_objects import BoundingBox


class TerrainError(Exception):
    """Base error for terrain operations."""


class EmptyRegionError(TerrainError):
    """A reduction was requested over a region with zero valid cells.

    Recoverable: batch callers report it as an ``empty_region`` flag.
    """


# ---------------------------------------------------------------------------
# Sampling Errors
# ---------------------------------------------------------------------------
class PointOutOfCoverageError(TerrainError):
    """Point is outside the raster extent.

    Attributes:
        x: Easting / longitude of the offending point (grid CRS)
        y: Northing / latitude of the offending point (grid CRS)
        bounds: The grid's BoundingBox
    """

    def __init__(self, x: float, y: float, bounds: "BoundingBox") -> None:
        self.x = x
        self.y = y
        self.bounds = bounds
        super().__init__(
            f"Point ({x:.6f}, {y:.6f}) outside raster extent "
            f"[x: {bounds.min_x:.6f} to {bounds.max_x:.6f}, "
            f"y: {bounds.min_y:.6f} to {bounds.max_y:.6f}]"
        )
