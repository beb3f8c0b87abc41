"""Domain Port(s) for Elevation Input.

Defines interfaces (Protocols) that external raster sources must implement.
No concrete I/O here.
"""

from __future__ import annotations

from typing import Protocol

from .value_objects import ElevationGrid


class ElevationSource(Protocol):
    """Port for obtaining an already-loaded elevation grid.

    Implementations live outside the domain (GeoTIFF readers, cloud
    catalogues, in-memory fixtures).
    """

    def load_elevation(self) -> ElevationGrid:
        """Return the elevation grid to analyse."""
        ...
