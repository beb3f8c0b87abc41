"""Domain Port(s) for Reference Feature Input.

Defines interfaces (Protocols) that external vector sources must implement.
No concrete I/O here.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .value_objects import PointFeature, ReferenceFeature


class PointFeatureSource(Protocol):
    """Port for point observations (e.g. deposit inventories)."""

    def load_points(self) -> Sequence[PointFeature]:
        """Return point features in the elevation grid's CRS."""
        ...


class ReferenceFeatureSource(Protocol):
    """Port for line/polygon observations (e.g. fault maps)."""

    def load_references(self) -> Sequence[ReferenceFeature]:
        """Return reference features in the elevation grid's CRS."""
        ...
