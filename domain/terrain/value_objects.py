"""Terrain Bounded Context - Value Objects.

Immutable data structures for elevation rasters and the fields derived from
them. All validation occurs at construction time via Pydantic, so malformed
inputs are rejected before they reach the pipeline.

Array-holding objects always store OWNED, read-only copies: a value object
never changes (or is changed through) a caller-provided array.
"""

from __future__ import annotations

import numpy as np
from affine import Affine
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pyproj import CRS
from pyproj.exceptions import CRSError

# ---------------------------------------------------------------------------
# Numeric Constants
# ---------------------------------------------------------------------------
AREA_TOLERANCE_PCT = 1e-6  # For share/complement invariants


def _frozen(array: NDArray, dtype: type) -> NDArray:
    """Return an owned, C-contiguous, read-only copy of ``array``."""
    owned = np.array(array, dtype=dtype, copy=True, order="C")
    owned.flags.writeable = False
    return owned


class BoundingBox(BaseModel):
    """Raster extent in the grid's own CRS (Value Object)."""

    min_x: float  # Western boundary
    min_y: float  # Southern boundary
    max_x: float  # Eastern boundary
    max_y: float  # Northern boundary

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_bounds(self) -> "BoundingBox":
        if not (self.min_x < self.max_x):
            raise ValueError(
                f"Invalid x ordering: min_x={self.min_x} >= max_x={self.max_x}"
            )
        if not (self.min_y < self.max_y):
            raise ValueError(
                f"Invalid y ordering: min_y={self.min_y} >= max_y={self.max_y}"
            )
        return self

    @classmethod
    def from_transform(cls, transform: Affine, shape: tuple[int, int]) -> "BoundingBox":
        """Extent of a ``shape`` raster whose transform maps (col, row) -> (x, y)."""
        height, width = shape
        left, top = transform @ (0, 0)
        right, bottom = transform @ (width, height)
        return cls(
            min_x=min(left, right),
            min_y=min(top, bottom),
            max_x=max(left, right),
            max_y=max(top, bottom),
        )

    def contains(self, x: float, y: float) -> bool:
        """Check if (x, y) lies within the extent (inclusive on all edges)."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


# ---------------------------------------------------------------------------
# ElevationGrid
# ---------------------------------------------------------------------------
class ElevationGrid(BaseModel):
    """Immutable elevation raster with geospatial reference (Value Object).

    Invariants:
        EG-1: data is 2D and non-empty
        EG-2: transform has no rotation and non-zero pixel size
        EG-3: valid_mask has the data's shape
        EG-4: every valid cell holds a finite elevation
        EG-5: at least one valid cell

    When ``valid_mask`` is omitted it is derived as "not NaN". Infinite
    samples are never treated as NoData; they are rejected.
    """

    data: NDArray[np.float64]  # 2D elevations (height x width), read-only
    transform: tuple[float, float, float, float, float, float]  # Affine a..f
    crs: str  # Any pyproj-understood CRS string, e.g. "EPSG:32642"
    valid_mask: NDArray[np.bool_] | None = None  # True = usable cell

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_grid(self) -> "ElevationGrid":
        data = np.asarray(self.data)
        # EG-1
        if data.ndim != 2:
            raise ValueError(f"Data must be 2D, got {data.ndim}D")
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ValueError(f"Data cannot be empty: {data.shape}")
        if not np.issubdtype(data.dtype, np.number):
            raise ValueError(f"Data must be numeric, got {data.dtype}")

        # EG-2
        a, b, _, d, e, _ = self.transform
        if b != 0 or d != 0:
            raise ValueError("Rotated geotransforms are not supported")
        if a == 0 or e == 0:
            raise ValueError("Invalid transform scale (zero)")
        if not np.all(np.isfinite(self.transform)):
            raise ValueError("Invalid (NaN/Inf) transform values")

        try:
            CRS.from_user_input(self.crs)
        except CRSError as exc:
            raise ValueError(f"Unrecognised CRS: {self.crs!r}") from exc

        data = data.astype(np.float64)
        if np.isinf(data).any() and self.valid_mask is None:
            raise ValueError("Elevation contains infinite values")

        # EG-3
        if self.valid_mask is None:
            valid = ~np.isnan(data)
        else:
            valid = np.asarray(self.valid_mask, dtype=bool)
            if valid.shape != data.shape:
                raise ValueError(
                    f"valid_mask shape {valid.shape} != data shape {data.shape}"
                )
        # EG-4
        if not np.isfinite(data[valid]).all():
            raise ValueError("Valid cells must hold finite elevations")
        # EG-5
        if not valid.any():
            raise ValueError("Grid contains 100% NoData")

        # Invalid cells always read as NaN downstream
        data = np.where(valid, data, np.nan)
        object.__setattr__(self, "data", _frozen(data, np.float64))
        object.__setattr__(self, "valid_mask", _frozen(valid, np.bool_))
        return self

    @classmethod
    def from_affine(
        cls,
        data: NDArray,
        transform: Affine,
        crs: str,
        valid_mask: NDArray | None = None,
    ) -> "ElevationGrid":
        """Build a grid from an ``affine.Affine`` geotransform."""
        return cls(
            data=np.asarray(data),
            transform=tuple(transform)[:6],
            crs=crs,
            valid_mask=valid_mask,
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape  # type: ignore[return-value]

    @property
    def affine(self) -> Affine:
        return Affine(*self.transform)

    @property
    def pixel_size(self) -> tuple[float, float]:
        """(x_res, y_res) absolute pixel size in CRS units."""
        return (abs(self.transform[0]), abs(self.transform[4]))

    @property
    def bounds(self) -> BoundingBox:
        return BoundingBox.from_transform(self.affine, self.shape)

    @property
    def crs_info(self) -> CRS:
        return CRS.from_user_input(self.crs)

    @property
    def is_geographic(self) -> bool:
        return bool(self.crs_info.is_geographic)


# ---------------------------------------------------------------------------
# GradientField
# ---------------------------------------------------------------------------
class GradientField(BaseModel):
    """Sobel derivatives, magnitude and lineament strike (Value Object).

    Invariants:
        GF-1: all arrays share one 2D shape
        GF-2: magnitude >= 0 wherever valid
        GF-3: orientation in [0, 180) wherever valid, NaN elsewhere
    """

    gx: NDArray[np.float64]
    gy: NDArray[np.float64]
    magnitude: NDArray[np.float64]
    orientation: NDArray[np.float64]  # Strike in degrees, [0, 180)
    valid: NDArray[np.bool_]
    transform: tuple[float, float, float, float, float, float]  # Source grid's

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_field(self) -> "GradientField":
        shape = np.shape(self.magnitude)
        for name in ("gx", "gy", "orientation", "valid"):
            if np.shape(getattr(self, name)) != shape:
                raise ValueError(f"{name} shape != magnitude shape {shape}")

        valid = np.asarray(self.valid, dtype=bool)
        magnitude = np.asarray(self.magnitude, dtype=np.float64)
        orientation = np.asarray(self.orientation, dtype=np.float64)
        if (magnitude[valid] < 0).any():
            raise ValueError("Magnitude must be non-negative")
        strike = orientation[valid]
        if ((strike < 0) | (strike >= 180)).any():
            raise ValueError("Orientation must lie in [0, 180)")

        for name in ("gx", "gy", "magnitude", "orientation"):
            object.__setattr__(self, name, _frozen(getattr(self, name), np.float64))
        object.__setattr__(self, "valid", _frozen(valid, np.bool_))
        return self

    def masked_orientation(self, mask: NDArray[np.bool_]) -> NDArray[np.float64]:
        """Return orientation restricted to ``mask`` (NaN elsewhere)."""
        return np.where(mask & self.valid, self.orientation, np.nan)


# ---------------------------------------------------------------------------
# Threshold
# ---------------------------------------------------------------------------
class Threshold(BaseModel):
    """P-th percentile of magnitude over a region (Value Object).

    ``approximate`` is True when the cell budget forced subsampling; the
    value is then an estimate from ``sampled_cell_count`` cells.

    ``fixed`` marks an absolute cutoff supplied by the caller; ``percentile``
    is then its percentile rank among the valid cells.
    """

    percentile: float = Field(ge=0, le=100)
    value: float
    valid_cell_count: int = Field(ge=1)
    sampled_cell_count: int = Field(ge=1)
    approximate: bool = False
    fixed: bool = False

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# ZoneMask
# ---------------------------------------------------------------------------
class ZoneMask(BaseModel):
    """Binary high-gradient zone for one threshold (Value Object).

    Invariants:
        ZM-1: mask and region share one 2D shape
        ZM-2: mask implies region (no zone cell outside the analysis region)
    """

    mask: NDArray[np.bool_]
    region: NDArray[np.bool_]  # Valid cells inside the region of interest
    threshold: Threshold
    transform: tuple[float, float, float, float, float, float]

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_mask(self) -> "ZoneMask":
        mask = np.asarray(self.mask, dtype=bool)
        region = np.asarray(self.region, dtype=bool)
        if mask.ndim != 2 or mask.shape != region.shape:
            raise ValueError(
                f"mask shape {mask.shape} must be 2D and match region {region.shape}"
            )
        if (mask & ~region).any():
            raise ValueError("Zone cells must lie inside the region")
        object.__setattr__(self, "mask", _frozen(mask, np.bool_))
        object.__setattr__(self, "region", _frozen(region, np.bool_))
        return self

    @property
    def shape(self) -> tuple[int, int]:
        return self.mask.shape  # type: ignore[return-value]

    @property
    def affine(self) -> Affine:
        return Affine(*self.transform)

    @property
    def bounds(self) -> BoundingBox:
        return BoundingBox.from_transform(self.affine, self.shape)

    @property
    def cell_count(self) -> int:
        return int(self.mask.sum())


class ZoneArea(BaseModel):
    """Zone vs. region area in square metres (Value Object)."""

    total_area_m2: float = Field(gt=0)
    zone_area_m2: float = Field(ge=0)
    share_pct: float = Field(ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_area(self) -> "ZoneArea":
        if self.share_pct > 100 + AREA_TOLERANCE_PCT:
            raise ValueError(f"share_pct > 100: {self.share_pct}")
        expected = self.zone_area_m2 / self.total_area_m2 * 100.0
        if abs(self.share_pct - expected) > AREA_TOLERANCE_PCT:
            raise ValueError(
                f"share_pct ({self.share_pct}) must equal zone/total ({expected})"
            )
        return self

    @property
    def background_area_m2(self) -> float:
        return self.total_area_m2 - self.zone_area_m2

    @property
    def complement_share_pct(self) -> float:
        return self.background_area_m2 / self.total_area_m2 * 100.0


# ---------------------------------------------------------------------------
# OrientationBin
# ---------------------------------------------------------------------------
class OrientationBin(BaseModel):
    """Pixel count for one half-open strike interval [start, end)."""

    bin_start_deg: float = Field(ge=0, lt=180)
    bin_end_deg: float = Field(gt=0, le=180)
    count: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# DistanceFields
# ---------------------------------------------------------------------------
class DistanceFields(BaseModel):
    """Euclidean distances to the opposite mask class, in metres.

    Fields:
        dist_inside_m: zone cells -> nearest background cell (0 in background)
        dist_outside_m: background cells -> nearest zone cell (0 in zone)
        edge_distance_m: distance beyond the boundary-adjacent band; exactly 0
            for cells with a 4-neighbour of the opposite class
    """

    dist_inside_m: NDArray[np.float64]
    dist_outside_m: NDArray[np.float64]
    edge_distance_m: NDArray[np.float64]
    cell_size_m: float = Field(gt=0)
    approximate: bool = False

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_fields(self) -> "DistanceFields":
        shape = np.shape(self.edge_distance_m)
        for name in ("dist_inside_m", "dist_outside_m", "edge_distance_m"):
            values = np.asarray(getattr(self, name), dtype=np.float64)
            if values.shape != shape:
                raise ValueError(f"{name} shape {values.shape} != {shape}")
            if not np.isfinite(values).all() or (values < 0).any():
                raise ValueError(f"{name} must be finite and non-negative")
            object.__setattr__(self, name, _frozen(values, np.float64))
        return self

    @property
    def distance_to_zone_m(self) -> NDArray[np.float64]:
        """Zone/background field: distance from each cell to the zone."""
        return self.dist_outside_m
