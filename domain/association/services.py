"""Association Bounded Context - Domain Services.

Relates lineament zones to reference features:
- sample_features: zone membership and distances at point features
- enrichment / enrichment_for_percentile: deposit enrichment index
- overlap_metrics: area precision/recall/F1 against metre-buffered faults
- summarize_distances: distribution of sampled distances

Pure functions over in-memory rasters and features; NO I/O.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

import numpy as np
from numpy.typing import NDArray
from pyproj import Transformer
from pyproj.crs import ProjectedCRS
from pyproj.crs.coordinate_operation import AzimuthalEquidistantConversion
from rasterio.features import geometry_mask
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform as shapely_transform
from shapely.ops import unary_union

from domain.association.value_objects import (
    BufferFrame,
    DistanceSummary,
    EnrichmentResult,
    FeatureRecord,
    OverlapResult,
    PointFeature,
    ReferenceFeature,
    SampleStatus,
)
from domain.terrain.errors import EmptyRegionError, PointOutOfCoverageError
from domain.terrain.services import (
    cell_index,
    metres_per_unit,
    percentile_threshold,
    zone_area,
    zone_mask,
)
from domain.terrain.value_objects import (
    DistanceFields,
    ElevationGrid,
    GradientField,
    Threshold,
    ZoneArea,
    ZoneMask,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Feature Sampling
# ---------------------------------------------------------------------------
def sample_features(
    features: Iterable[PointFeature],
    zone: ZoneMask,
    distances: DistanceFields | None = None,
) -> tuple[FeatureRecord, ...]:
    """Sample zone membership (and distances) at each point feature.

    Nearest-cell policy: a point takes the values of the cell containing it.
    Points outside the raster extent are OUT_OF_COVERAGE; points on a cell
    outside the analysis region are NO_DATA. Both are kept (one record per
    input feature, same order) with no sampled values.

    Args:
        features: Point features in the grid CRS
        zone: Zone mask to test membership against
        distances: Optional distance fields; when omitted only membership is sampled

    Returns:
        Tuple of FeatureRecord, 1:1 with ``features``
    """
    records: list[FeatureRecord] = []
    out_of_coverage = 0
    no_data = 0

    for feature in features:
        base = {
            "feature_id": feature.feature_id,
            "x": feature.x,
            "y": feature.y,
            "properties": feature.properties,
        }
        try:
            row, col = cell_index(zone, feature.x, feature.y)
        except PointOutOfCoverageError:
            out_of_coverage += 1
            records.append(FeatureRecord(status=SampleStatus.OUT_OF_COVERAGE, **base))
            continue

        if not zone.region[row, col]:
            no_data += 1
            records.append(FeatureRecord(status=SampleStatus.NO_DATA, **base))
            continue

        to_zone = to_edge = None
        if distances is not None:
            to_zone = float(distances.distance_to_zone_m[row, col])
            to_edge = float(distances.edge_distance_m[row, col])
        records.append(
            FeatureRecord(
                status=SampleStatus.OK,
                inside_zone=bool(zone.mask[row, col]),
                distance_to_zone_m=to_zone,
                distance_to_edge_m=to_edge,
                **base,
            )
        )

    if out_of_coverage or no_data:
        logger.warning(
            "%d of %d features out of coverage, %d on NoData cells",
            out_of_coverage,
            len(records),
            no_data,
        )
    return tuple(records)


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------
def enrichment(
    records: Sequence[FeatureRecord], area: ZoneArea, threshold: Threshold
) -> EnrichmentResult:
    """Enrichment index of features inside the zone.

    Only in-coverage records enter the denominator. The index is None when
    no feature is in coverage or the zone covers zero area.
    """
    sampled = [r for r in records if r.in_coverage]
    total = len(sampled)
    inside = sum(1 for r in sampled if r.inside_zone)

    inside_pct = inside / total * 100.0 if total else None
    index = None
    if inside_pct is not None and area.share_pct > 0:
        index = inside_pct / area.share_pct

    return EnrichmentResult(
        percentile=threshold.percentile,
        threshold_value=threshold.value,
        zone_area_share_pct=area.share_pct,
        feature_total=total,
        feature_inside=inside,
        feature_inside_pct=inside_pct,
        enrichment_index=index,
        out_of_coverage_count=sum(
            1 for r in records if r.status is SampleStatus.OUT_OF_COVERAGE
        ),
        no_data_count=sum(1 for r in records if r.status is SampleStatus.NO_DATA),
        approximate=threshold.approximate,
    )


def enrichment_for_percentile(
    gradient: GradientField,
    features: Sequence[PointFeature],
    percentile: float,
    region: NDArray[np.bool_],
    areas: NDArray[np.float64],
    max_cell_budget: int | None = None,
) -> EnrichmentResult:
    """Independent threshold -> mask -> sampling -> enrichment run.

    An empty region is reported as a flagged result instead of an error so
    that sibling runs in a trade-off batch are unaffected.
    """
    try:
        threshold = percentile_threshold(
            gradient.magnitude, percentile, region, max_cell_budget
        )
        zone = zone_mask(gradient, threshold, region)
        area = zone_area(zone, areas)
    except EmptyRegionError as e:
        logger.warning("P%g: %s", percentile, e)
        return EnrichmentResult.empty(percentile)

    records = sample_features(features, zone)
    result = enrichment(records, area, threshold)
    logger.debug(
        "P%g: share %.2f%%, inside %s%%, E=%s",
        percentile,
        area.share_pct,
        result.feature_inside_pct,
        result.enrichment_index,
    )
    return result


# ---------------------------------------------------------------------------
# Overlap Validation
# ---------------------------------------------------------------------------
def buffer_frame(grid: ElevationGrid) -> BufferFrame:
    """Pick how metre buffers are applied to geometries in the grid CRS.

    Projected CRSs scale metres to their axis unit. Geographic CRSs get a
    local azimuthal equidistant projection centred on the grid, so a buffer
    has the same ground width in every direction.
    """
    crs = grid.crs_info
    if not crs.is_geographic:
        return BufferFrame(crs=grid.crs, units_per_metre=1.0 / metres_per_unit(crs))

    bounds = grid.bounds
    local = ProjectedCRS(
        conversion=AzimuthalEquidistantConversion(
            latitude_natural_origin=(bounds.min_y + bounds.max_y) / 2,
            longitude_natural_origin=(bounds.min_x + bounds.max_x) / 2,
        ),
        geodetic_crs=crs.geodetic_crs,
    )
    return BufferFrame(crs=grid.crs, local_crs=local.to_wkt())


def _buffer_metres(
    geometry: BaseGeometry, distance_m: float, frame: BufferFrame | None
) -> BaseGeometry:
    if frame is None or frame.local_crs is None:
        scale = 1.0 if frame is None else frame.units_per_metre
        return geometry.buffer(distance_m * scale)

    # pyproj Transformers are not thread-safe; one pair per call
    to_local = Transformer.from_crs(frame.crs, frame.local_crs, always_xy=True)
    to_grid = Transformer.from_crs(frame.local_crs, frame.crs, always_xy=True)
    local = shapely_transform(to_local.transform, geometry)
    return shapely_transform(to_grid.transform, local.buffer(distance_m))


def buffered_reference(
    references: Sequence[ReferenceFeature],
    buffer_distance_m: float,
    frame: BufferFrame | None = None,
    region: BaseGeometry | None = None,
) -> BaseGeometry:
    """Union of reference geometries, buffered by metres and clipped to the region.

    ``frame=None`` buffers in CRS units taken as metres.
    """
    if not (buffer_distance_m >= 0):
        raise ValueError(f"buffer_distance_m must be >= 0, got {buffer_distance_m}")
    merged = unary_union([r.geometry for r in references])
    buffered = _buffer_metres(merged, buffer_distance_m, frame)
    if region is not None:
        buffered = buffered.intersection(region)
    return buffered


def overlap_metrics(
    zone: ZoneMask,
    areas: NDArray[np.float64],
    references: Sequence[ReferenceFeature],
    buffer_distance_m: float,
    frame: BufferFrame | None = None,
    region: BaseGeometry | None = None,
) -> OverlapResult:
    """Area precision, recall and F1 of the zone against one buffered reference.

    The buffer is rasterized with the cell-centre rule and limited to the
    analysis region, so neither side is inflated by area outside the study
    area.

    Args:
        zone: Zone mask (its region bounds both areas)
        areas: Per-cell area in square metres
        references: Line/polygon reference features
        buffer_distance_m: Buffer distance in metres (ground distance)
        frame: How metres map onto the grid CRS (see buffer_frame)
        region: Region polygon to clip the buffer against

    Returns:
        OverlapResult with percentages (None where undefined)
    """
    buffered = buffered_reference(references, buffer_distance_m, frame, region)

    if buffered.is_empty:
        footprint = np.zeros(zone.shape, dtype=bool)
    else:
        footprint = geometry_mask(
            [buffered], out_shape=zone.shape, transform=zone.affine, invert=True
        )
    footprint &= zone.region

    zone_m2 = float(areas[zone.mask].sum())
    reference_m2 = float(areas[footprint].sum())
    intersection_m2 = float(areas[zone.mask & footprint].sum())

    precision = intersection_m2 / zone_m2 * 100.0 if zone_m2 > 0 else None
    recall = intersection_m2 / reference_m2 * 100.0 if reference_m2 > 0 else None
    f1 = None
    if precision is not None and recall is not None and precision + recall > 0:
        f1 = 2 * precision * recall / (precision + recall)
    if f1 is None:
        logger.warning("Buffer %gm: F1 undefined (degenerate overlap)", buffer_distance_m)

    return OverlapResult(
        buffer_distance_m=buffer_distance_m,
        zone_area_m2=zone_m2,
        reference_area_m2=reference_m2,
        intersection_area_m2=intersection_m2,
        precision_pct=precision,
        recall_pct=recall,
        f1_pct=f1,
    )


# ---------------------------------------------------------------------------
# Distance Summaries
# ---------------------------------------------------------------------------
def summarize_distances(
    values: Iterable[float | None], exclude_zero: bool = False
) -> DistanceSummary:
    """Quartiles, extremes and QC counts of sampled distances.

    None and non-finite values are skipped. With ``exclude_zero`` points
    lying in the boundary-adjacent band are dropped as well.
    """
    data = np.array(
        [v for v in values if v is not None and math.isfinite(v)], dtype=np.float64
    )
    if exclude_zero:
        data = data[data > 0]
    if data.size == 0:
        return DistanceSummary(count=0)

    p25, median, p75 = np.percentile(data, [25, 50, 75])
    return DistanceSummary(
        count=int(data.size),
        min=float(data.min()),
        max=float(data.max()),
        p25=float(p25),
        median=float(median),
        p75=float(p75),
        zero_count=int((data == 0).sum()),
        unique_count=int(np.unique(data).size),
    )
