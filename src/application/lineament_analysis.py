"""Lineament analysis orchestration.

Wires the terrain and association services into one run:

1) Sobel gradient of the elevation grid
2) Primary percentile threshold -> zone mask -> zone area share
3) Orientation histogram of the zone
4) Distance fields -> deposit sampling -> enrichment + distance summaries
5) Enrichment trade-off over the configured percentile list
6) Overlap precision/recall/F1 against buffered fault traces

Steps 5 and 6 are batches of independent runs against the same immutable
inputs; they are dispatched on a thread pool and re-assembled in input order.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable, Iterable, Sequence
from functools import partial
from typing import TypeVar

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict
from shapely.geometry.base import BaseGeometry

from application.config import AnalysisConfig
from domain.association.repositories import PointFeatureSource, ReferenceFeatureSource
from domain.association.services import (
    buffer_frame,
    enrichment,
    enrichment_for_percentile,
    overlap_metrics,
    sample_features,
    summarize_distances,
)
from domain.association.value_objects import (
    BufferFrame,
    DistanceSummary,
    EnrichmentResult,
    FeatureRecord,
    OverlapResult,
    PointFeature,
    ReferenceFeature,
)
from domain.terrain.errors import EmptyRegionError
from domain.terrain.repositories import ElevationSource
from domain.terrain.services import (
    cell_areas,
    distance_fields,
    fixed_threshold,
    gradient_field,
    nominal_cell_size,
    orientation_histogram,
    percentile_threshold,
    region_mask,
    zone_area,
    zone_mask,
)
from domain.terrain.value_objects import (
    ElevationGrid,
    GradientField,
    OrientationBin,
    Threshold,
    ZoneArea,
    ZoneMask,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class LineamentAnalysis(BaseModel):
    """All outputs of one analysis run (Value Object).

    When the primary threshold hits an empty region, ``empty_region`` is True
    and every derived output is None or empty.
    """

    config: AnalysisConfig
    cell_size_m: float
    threshold: Threshold | None = None
    zone_area: ZoneArea | None = None
    histogram: tuple[OrientationBin, ...] = ()
    feature_records: tuple[FeatureRecord, ...] = ()
    enrichment: EnrichmentResult | None = None
    distance_to_zone: DistanceSummary | None = None
    distance_to_edge: DistanceSummary | None = None
    distance_to_edge_nonzero: DistanceSummary | None = None
    tradeoff: tuple[EnrichmentResult, ...] = ()
    overlap: tuple[OverlapResult, ...] = ()
    distances_approximate: bool = False
    empty_region: bool = False

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Batch Dispatch
# ---------------------------------------------------------------------------
def dispatch_ordered(
    fn: Callable[[T], R],
    items: Iterable[T],
    on_error: Callable[[T, Exception], R],
    max_workers: int | None = None,
) -> list[R]:
    """Apply ``fn`` to every item concurrently; results keep input order.

    ``max_workers=1`` (or a single item) runs inline. A run that raises is
    logged and replaced by ``on_error(item, exc)``; its siblings are
    unaffected.
    """
    items = list(items)
    run = partial(_guarded, fn, on_error)
    if max_workers == 1 or len(items) <= 1:
        return [run(item) for item in items]

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(run, items))


def _guarded(fn: Callable[[T], R], on_error: Callable[[T, Exception], R], item: T) -> R:
    try:
        return fn(item)
    except Exception as e:
        logger.warning("Run for %r failed: %s", item, e)
        return on_error(item, e)


def enrichment_tradeoff(
    gradient: GradientField,
    features: Sequence[PointFeature],
    percentiles: Sequence[float],
    region: NDArray[np.bool_],
    areas: NDArray[np.float64],
    max_cell_budget: int | None = None,
    max_workers: int | None = None,
) -> tuple[EnrichmentResult, ...]:
    """Coverage vs. enrichment table, one independent run per percentile.

    Each percentile is thresholded from scratch against the same gradient
    field and feature set. Results follow the order of ``percentiles``.
    """
    run = partial(
        _enrichment_run,
        gradient=gradient,
        features=tuple(features),
        region=region,
        areas=areas,
        max_cell_budget=max_cell_budget,
    )
    results = tuple(
        dispatch_ordered(run, percentiles, EnrichmentResult.failed, max_workers)
    )
    logger.info("Trade-off computed for %d percentiles", len(results))
    return results


def _enrichment_run(
    percentile: float,
    *,
    gradient: GradientField,
    features: Sequence[PointFeature],
    region: NDArray[np.bool_],
    areas: NDArray[np.float64],
    max_cell_budget: int | None,
) -> EnrichmentResult:
    return enrichment_for_percentile(
        gradient, features, percentile, region, areas, max_cell_budget
    )


def overlap_table(
    zone: ZoneMask,
    areas: NDArray[np.float64],
    references: Sequence[ReferenceFeature],
    buffer_distances_m: Sequence[float],
    frame: BufferFrame | None = None,
    region: BaseGeometry | None = None,
    max_workers: int | None = None,
) -> tuple[OverlapResult, ...]:
    """Precision/recall/F1 of the zone per buffer distance, in input order."""
    run = partial(
        _overlap_run,
        zone=zone,
        areas=areas,
        references=tuple(references),
        frame=frame,
        region=region,
    )
    return tuple(
        dispatch_ordered(run, buffer_distances_m, OverlapResult.failed, max_workers)
    )


def _overlap_run(
    buffer_distance_m: float,
    *,
    zone: ZoneMask,
    areas: NDArray[np.float64],
    references: Sequence[ReferenceFeature],
    frame: BufferFrame | None,
    region: BaseGeometry | None,
) -> OverlapResult:
    return overlap_metrics(zone, areas, references, buffer_distance_m, frame, region)


# ---------------------------------------------------------------------------
# Main Service: run_analysis
# ---------------------------------------------------------------------------
def run_analysis(
    grid: ElevationGrid,
    deposits: Sequence[PointFeature],
    faults: Sequence[ReferenceFeature] = (),
    region: BaseGeometry | None = None,
    config: AnalysisConfig | None = None,
) -> LineamentAnalysis:
    """Run the full lineament zone analysis.

    Args:
        grid: Elevation grid (already loaded, validated)
        deposits: Point features in the grid CRS
        faults: Line/polygon reference features in the grid CRS
        region: Region of interest polygon; None = whole grid
        config: Analysis parameters; defaults to AnalysisConfig()

    Returns:
        LineamentAnalysis bundling every table

    Raises:
        ValueError: If the region is not a valid polygonal geometry

    Example:
        >>> analysis = run_analysis(grid, deposits, faults, aoi)
        >>> print(f"E = {analysis.enrichment.enrichment_index:.2f}")
        >>> for row in analysis.tradeoff:
        ...     print(row.percentile, row.zone_area_share_pct, row.enrichment_index)
    """
    config = config or AnalysisConfig()
    deposits = tuple(deposits)

    gradient = gradient_field(grid)
    roi = region_mask(grid, region)
    areas = cell_areas(grid)
    cell_size_m = config.cell_size_override_m or nominal_cell_size(grid)

    try:
        if config.threshold_value is not None:
            threshold = fixed_threshold(gradient.magnitude, config.threshold_value, roi)
        else:
            threshold = percentile_threshold(
                gradient.magnitude, config.percentile, roi, config.max_cell_budget
            )
        zone = zone_mask(gradient, threshold, roi)
        area = zone_area(zone, areas)
    except EmptyRegionError as e:
        logger.warning("Analysis region is empty: %s", e)
        return LineamentAnalysis(
            config=config, cell_size_m=cell_size_m, empty_region=True
        )

    histogram = orientation_histogram(gradient, zone, config.histogram_bin_width_deg)
    distances = distance_fields(zone, cell_size_m, config.max_cell_budget)
    records = sample_features(deposits, zone, distances)
    primary = enrichment(records, area, threshold)

    tradeoff = enrichment_tradeoff(
        gradient,
        deposits,
        config.percentile_list,
        roi,
        areas,
        config.max_cell_budget,
        config.max_workers,
    )

    overlap: tuple[OverlapResult, ...] = ()
    if faults:
        overlap = overlap_table(
            zone,
            areas,
            faults,
            config.buffer_distances_m,
            buffer_frame(grid),
            region,
            config.max_workers,
        )
    else:
        logger.info("No reference features supplied; overlap table skipped")

    logger.info(
        "P%g threshold %.6g: zone share %.2f%%, %d/%d deposits inside, E=%s",
        threshold.percentile,
        threshold.value,
        area.share_pct,
        primary.feature_inside,
        primary.feature_total,
        primary.enrichment_index,
    )
    return LineamentAnalysis(
        config=config,
        cell_size_m=cell_size_m,
        threshold=threshold,
        zone_area=area,
        histogram=histogram,
        feature_records=records,
        enrichment=primary,
        distance_to_zone=summarize_distances(r.distance_to_zone_m for r in records),
        distance_to_edge=summarize_distances(r.distance_to_edge_m for r in records),
        distance_to_edge_nonzero=summarize_distances(
            (r.distance_to_edge_m for r in records), exclude_zero=True
        ),
        tradeoff=tradeoff,
        overlap=overlap,
        distances_approximate=distances.approximate,
    )


def run_analysis_from_sources(
    elevation: ElevationSource,
    deposits: PointFeatureSource,
    faults: ReferenceFeatureSource | None = None,
    region: BaseGeometry | None = None,
    config: AnalysisConfig | None = None,
) -> LineamentAnalysis:
    """Pull inputs through the domain ports, then run_analysis."""
    grid = elevation.load_elevation()
    points = deposits.load_points()
    references = faults.load_references() if faults is not None else ()
    logger.debug(
        "Loaded %d point and %d reference features", len(points), len(references)
    )
    return run_analysis(grid, points, references, region, config)
