"""Terrain Bounded Context - Domain Services.

Pure raster logic for lineament zone extraction:
Sobel gradient -> percentile threshold -> zone mask -> orientation histogram
and distance transforms. NO I/O operations - grids and region polygons are
supplied by callers through the domain ports in `repositories.py`.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from numpy.typing import NDArray
from pyproj import CRS, Geod
from rasterio.features import geometry_mask
from scipy import ndimage
from shapely.geometry.base import BaseGeometry

from domain.terrain.errors import EmptyRegionError, PointOutOfCoverageError
from domain.terrain.value_objects import (
    BoundingBox,
    DistanceFields,
    ElevationGrid,
    GradientField,
    OrientationBin,
    Threshold,
    ZoneArea,
    ZoneMask,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SOBEL_KX = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64)
SOBEL_KY = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.float64)

HALF_CIRCLE_DEG = 180.0

# Fallback ellipsoid when a geographic CRS carries no datum (same as GPS)
_geod = Geod(ellps="WGS84")


# ---------------------------------------------------------------------------
# Gradient
# ---------------------------------------------------------------------------
def gradient_field(grid: ElevationGrid) -> GradientField:
    """Compute Sobel derivatives, magnitude and lineament strike.

    Border policy: edge replication (``mode="nearest"``). A cell is valid only
    if its whole 3x3 window (after replication) holds valid elevations.

    Strike is the gradient direction rotated by 90 degrees (a ridge or valley
    gradient is perpendicular to the lineament it marks), folded into the
    half circle [0, 180).
    """
    # Fill NoData temporarily; affected windows are masked out below
    filled = np.where(grid.valid_mask, grid.data, 0.0)
    gx = ndimage.convolve(filled, SOBEL_KX, mode="nearest")
    gy = ndimage.convolve(filled, SOBEL_KY, mode="nearest")

    valid = ndimage.binary_erosion(
        grid.valid_mask, structure=np.ones((3, 3), dtype=bool), border_value=1
    )
    gx = np.where(valid, gx, np.nan)
    gy = np.where(valid, gy, np.nan)
    magnitude = np.hypot(gx, gy)

    theta = np.degrees(np.arctan2(gy, gx))
    theta_half = np.mod(theta + 360.0, HALF_CIRCLE_DEG)
    orientation = np.mod(theta_half + 90.0, HALF_CIRCLE_DEG)
    # Rounding can land exactly on 180
    orientation = np.where(orientation >= HALF_CIRCLE_DEG, 0.0, orientation)

    logger.debug(
        "Gradient: %dx%d grid, %d valid cells",
        grid.shape[1],
        grid.shape[0],
        int(valid.sum()),
    )
    return GradientField(
        gx=gx,
        gy=gy,
        magnitude=magnitude,
        orientation=orientation,
        valid=valid,
        transform=grid.transform,
    )


# ---------------------------------------------------------------------------
# Region of Interest
# ---------------------------------------------------------------------------
def region_mask(grid: ElevationGrid, region: BaseGeometry | None = None) -> NDArray[np.bool_]:
    """Rasterize the region polygon and intersect it with the valid-data mask.

    A cell belongs to the region when its centre falls inside the polygon.
    ``region=None`` means the whole grid.

    Raises:
        ValueError: If the region is not a valid polygonal geometry
    """
    if region is None:
        return grid.valid_mask.copy()
    if region.geom_type not in ("Polygon", "MultiPolygon") or not region.is_valid:
        raise ValueError(f"Region must be a valid (Multi)Polygon, got {region.geom_type}")
    if region.is_empty:
        return np.zeros(grid.shape, dtype=bool)

    inside = geometry_mask(
        [region], out_shape=grid.shape, transform=grid.affine, invert=True
    )
    return grid.valid_mask & inside


# ---------------------------------------------------------------------------
# Percentile Threshold
# ---------------------------------------------------------------------------
def percentile_threshold(
    values: NDArray[np.float64],
    percentile: float,
    region: NDArray[np.bool_] | None = None,
    max_cell_budget: int | None = None,
) -> Threshold:
    """Return the P-th percentile of finite ``values`` inside ``region``.

    Above ``max_cell_budget`` valid cells, a deterministic regular-stride
    subsample of at most ``max_cell_budget`` cells is used instead and the
    Threshold is tagged approximate.

    Args:
        values: Raster of values (typically gradient magnitude), NaN = invalid
        percentile: Target percentile in [0, 100]
        region: Optional boolean mask limiting the reduction
        max_cell_budget: Maximum number of cells reduced at full resolution

    Returns:
        Threshold with value, counts and approximate flag

    Raises:
        ValueError: If percentile is outside [0, 100] or the budget is not positive
        EmptyRegionError: If the region holds zero valid cells
    """
    if not (0 <= percentile <= 100):
        raise ValueError(f"percentile must be in [0, 100], got {percentile}")
    if max_cell_budget is not None and max_cell_budget <= 0:
        raise ValueError("max_cell_budget must be positive")

    selection = np.isfinite(values)
    if region is not None:
        selection &= region
    samples = values[selection]
    valid_count = int(samples.size)
    if valid_count == 0:
        raise EmptyRegionError(f"No valid cells to compute P{percentile:g}")

    approximate = False
    if max_cell_budget is not None and valid_count > max_cell_budget:
        stride = math.ceil(valid_count / max_cell_budget)
        samples = samples[::stride]
        approximate = True
        logger.warning(
            "P%g over %d cells exceeds budget %d; using every %dth cell (approximate)",
            percentile,
            valid_count,
            max_cell_budget,
            stride,
        )

    value = float(np.percentile(samples, percentile))
    logger.debug("Threshold P%g = %.6g over %d cells", percentile, value, samples.size)
    return Threshold(
        percentile=percentile,
        value=value,
        valid_cell_count=valid_count,
        sampled_cell_count=int(samples.size),
        approximate=approximate,
    )


def fixed_threshold(
    values: NDArray[np.float64],
    value: float,
    region: NDArray[np.bool_] | None = None,
) -> Threshold:
    """Wrap an absolute cutoff (e.g. a magnitude of 23.9) as a Threshold.

    The reported percentile is the cutoff's rank: the share of valid region
    cells whose value lies below it.

    Raises:
        ValueError: If value is not finite
        EmptyRegionError: If the region holds zero valid cells
    """
    if not math.isfinite(value):
        raise ValueError(f"Threshold value must be finite, got {value}")

    selection = np.isfinite(values)
    if region is not None:
        selection &= region
    samples = values[selection]
    if samples.size == 0:
        raise EmptyRegionError(f"No valid cells to rank threshold {value:g}")

    rank = float((samples < value).sum()) / samples.size * 100.0
    logger.debug("Fixed threshold %.6g ranks at P%.2f", value, rank)
    return Threshold(
        percentile=rank,
        value=float(value),
        valid_cell_count=int(samples.size),
        sampled_cell_count=int(samples.size),
        fixed=True,
    )


# ---------------------------------------------------------------------------
# Zone Mask
# ---------------------------------------------------------------------------
def zone_mask(
    gradient: GradientField, threshold: Threshold, region: NDArray[np.bool_]
) -> ZoneMask:
    """Build the binary zone: valid, inside region, magnitude >= threshold.

    Cells with no valid magnitude are never part of the zone.
    """
    region = np.asarray(region, dtype=bool) & gradient.valid
    magnitude = np.where(region, gradient.magnitude, -np.inf)
    mask = magnitude >= threshold.value
    return ZoneMask(
        mask=mask,
        region=region,
        threshold=threshold,
        transform=gradient.transform,
    )


# ---------------------------------------------------------------------------
# Cell Areas
# ---------------------------------------------------------------------------
def metres_per_unit(crs: CRS) -> float:
    """Linear unit of a projected CRS expressed in metres."""
    if not crs.axis_info:
        return 1.0
    return float(crs.axis_info[0].unit_conversion_factor)


def _geod_for(crs: CRS) -> Geod:
    return crs.get_geod() or _geod


def cell_areas(grid: ElevationGrid) -> NDArray[np.float64]:
    """Per-cell ground area in square metres.

    Projected grids have uniform cells. Geographic grids do not: each row is
    measured as a geodesic polygon on the CRS ellipsoid (cells in one row
    share a latitude band and therefore an area).
    """
    height, width = grid.shape
    crs = grid.crs_info
    if not crs.is_geographic:
        scale = metres_per_unit(crs)
        x_res, y_res = grid.pixel_size
        return np.full(grid.shape, x_res * scale * y_res * scale, dtype=np.float64)

    geod = _geod_for(crs)
    transform = grid.affine
    lon0, _ = transform @ (0, 0)
    lon1, _ = transform @ (1, 0)
    row_areas = np.empty(height, dtype=np.float64)
    for row in range(height):
        _, lat_top = transform @ (0, row)
        _, lat_bottom = transform @ (0, row + 1)
        area, _ = geod.polygon_area_perimeter(
            [lon0, lon1, lon1, lon0], [lat_top, lat_top, lat_bottom, lat_bottom]
        )
        row_areas[row] = abs(area)
    return np.repeat(row_areas[:, np.newaxis], width, axis=1)


def zone_area(zone: ZoneMask, areas: NDArray[np.float64]) -> ZoneArea:
    """Sum per-cell areas over the region and over the zone.

    Raises:
        EmptyRegionError: If the region has zero area
    """
    total = float(areas[zone.region].sum())
    if total <= 0:
        raise EmptyRegionError("Region has zero valid area")
    zone_m2 = float(areas[zone.mask].sum())
    return ZoneArea(
        total_area_m2=total,
        zone_area_m2=zone_m2,
        share_pct=zone_m2 / total * 100.0,
    )


# ---------------------------------------------------------------------------
# Nominal Cell Size
# ---------------------------------------------------------------------------
def nominal_cell_size(grid: ElevationGrid) -> float:
    """Side length in metres of a square with the cell's ground area.

    For geographic grids one cell is measured geodesically at the grid centre.
    """
    crs = grid.crs_info
    x_res, y_res = grid.pixel_size
    if not crs.is_geographic:
        scale = metres_per_unit(crs)
        return float(math.sqrt(x_res * y_res) * scale)

    bounds = grid.bounds
    mid_lon = (bounds.min_x + bounds.max_x) / 2
    mid_lat = (bounds.min_y + bounds.max_y) / 2
    geod = _geod_for(crs)
    _, _, x_m = geod.inv(mid_lon, mid_lat, mid_lon + x_res, mid_lat)
    _, _, y_m = geod.inv(mid_lon, mid_lat, mid_lon, mid_lat - y_res)
    return float(math.sqrt(abs(x_m) * abs(y_m)))


# ---------------------------------------------------------------------------
# Orientation Histogram
# ---------------------------------------------------------------------------
def orientation_histogram(
    gradient: GradientField, zone: ZoneMask, bin_width_deg: float
) -> tuple[OrientationBin, ...]:
    """Count zone cells per strike bin [0,w), [w,2w), ..., [180-w,180).

    Empty bins report 0. Counts sum to the number of zone cells with a
    defined orientation.

    Raises:
        ValueError: If bin_width_deg is not positive or does not divide 180
    """
    if bin_width_deg <= 0:
        raise ValueError(f"bin_width_deg must be positive, got {bin_width_deg}")
    n_bins = int(round(HALF_CIRCLE_DEG / bin_width_deg))
    if n_bins < 1 or not math.isclose(n_bins * bin_width_deg, HALF_CIRCLE_DEG):
        raise ValueError(f"bin_width_deg must divide 180 evenly, got {bin_width_deg}")

    strike = gradient.masked_orientation(zone.mask)
    strike = strike[np.isfinite(strike)]
    index = np.floor(strike * n_bins / HALF_CIRCLE_DEG).astype(np.int64)
    index = np.clip(index, 0, n_bins - 1)
    counts = np.bincount(index, minlength=n_bins)

    return tuple(
        OrientationBin(
            bin_start_deg=HALF_CIRCLE_DEG * i / n_bins,
            bin_end_deg=HALF_CIRCLE_DEG * (i + 1) / n_bins,
            count=int(counts[i]),
        )
        for i in range(n_bins)
    )


# ---------------------------------------------------------------------------
# Distance Transforms
# ---------------------------------------------------------------------------
def _block_any(mask: NDArray[np.bool_], factor: int) -> NDArray[np.bool_]:
    """Pool ``mask`` into factor x factor blocks (True if any cell is True)."""
    height, width = mask.shape
    padded = np.zeros(
        (math.ceil(height / factor) * factor, math.ceil(width / factor) * factor),
        dtype=bool,
    )
    padded[:height, :width] = mask
    blocks = padded.reshape(
        padded.shape[0] // factor, factor, padded.shape[1] // factor, factor
    )
    return blocks.any(axis=(1, 3))


def _upsample(values: NDArray[np.float64], factor: int, shape: tuple[int, int]) -> NDArray[np.float64]:
    height, width = shape
    return np.repeat(np.repeat(values, factor, axis=0), factor, axis=1)[:height, :width]


def distance_fields(
    zone: ZoneMask, cell_size_m: float, max_cell_budget: int | None = None
) -> DistanceFields:
    """Euclidean distance of every cell to the nearest cell of the opposite class.

    Distances are computed in cell units and scaled by ``cell_size_m``.
    ``edge_distance_m`` is max(dist_inside, dist_outside) minus one cell, so
    cells with a 4-neighbour across the boundary get exactly 0.

    A mask with no zone cells (or no background cells) has no opposite class;
    the missing distance is then the diagonal of the grid extent.

    Above ``max_cell_budget`` cells the mask is pooled into blocks, the
    transform runs on the coarse grid, and the upsampled result is tagged
    approximate.

    Raises:
        ValueError: If cell_size_m or max_cell_budget is not positive
    """
    if cell_size_m <= 0:
        raise ValueError(f"cell_size_m must be positive, got {cell_size_m}")
    if max_cell_budget is not None and max_cell_budget <= 0:
        raise ValueError("max_cell_budget must be positive")

    mask = zone.mask
    shape = mask.shape
    extent_cells = math.hypot(*shape)

    if not mask.any() or mask.all():
        inside = np.full(shape, extent_cells) if mask.all() else np.zeros(shape)
        outside = np.zeros(shape) if mask.all() else np.full(shape, extent_cells)
        logger.warning("Zone mask has a single class; distances set to extent")
        return DistanceFields(
            dist_inside_m=inside * cell_size_m,
            dist_outside_m=outside * cell_size_m,
            edge_distance_m=np.full(shape, extent_cells * cell_size_m),
            cell_size_m=cell_size_m,
        )

    factor = 1
    if max_cell_budget is not None and mask.size > max_cell_budget:
        factor = math.ceil(math.sqrt(mask.size / max_cell_budget))
        logger.warning(
            "Distance transform over %d cells exceeds budget %d; pooling %dx%d blocks (approximate)",
            mask.size,
            max_cell_budget,
            factor,
            factor,
        )

    if factor == 1:
        inside = ndimage.distance_transform_edt(mask)
        outside = ndimage.distance_transform_edt(~mask)
    else:
        coarse = _block_any(mask, factor)
        if coarse.all():
            coarse_inside = np.full(coarse.shape, math.hypot(*coarse.shape))
            coarse_outside = np.zeros(coarse.shape)
        else:
            coarse_inside = ndimage.distance_transform_edt(coarse)
            coarse_outside = ndimage.distance_transform_edt(~coarse)
        inside = _upsample(coarse_inside, factor, shape) * factor
        outside = _upsample(coarse_outside, factor, shape) * factor
        # Re-impose the full-resolution classes on the coarse estimate
        inside = np.where(mask, np.maximum(inside, 1.0), 0.0)
        outside = np.where(mask, 0.0, np.maximum(outside, 1.0))

    edge = np.maximum(np.maximum(inside, outside) - 1.0, 0.0)
    return DistanceFields(
        dist_inside_m=inside * cell_size_m,
        dist_outside_m=outside * cell_size_m,
        edge_distance_m=edge * cell_size_m,
        cell_size_m=cell_size_m,
        approximate=factor > 1,
    )


# ---------------------------------------------------------------------------
# Point -> Cell
# ---------------------------------------------------------------------------
def cell_index(zone: ZoneMask, x: float, y: float) -> tuple[int, int]:
    """Return (row, col) of the cell containing (x, y).

    The extent is inclusive on all edges; points on the far edges map to the
    last row/column.

    Raises:
        PointOutOfCoverageError: If the point lies outside the raster extent
    """
    bounds: BoundingBox = zone.bounds
    if not (math.isfinite(x) and math.isfinite(y)) or not bounds.contains(x, y):
        raise PointOutOfCoverageError(x, y, bounds)

    height, width = zone.shape
    col_f, row_f = ~zone.affine @ (x, y)
    col = max(0, min(int(math.floor(col_f)), width - 1))
    row = max(0, min(int(math.floor(row_f)), height - 1))
    return row, col
