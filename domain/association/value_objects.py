"""Association Bounded Context - Value Objects.

Reference features (deposits, faults) and the statistics that relate them to
lineament zones. Undefined statistics are ``None``; a computed zero and "no
data" are never conflated.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from shapely.geometry.base import BaseGeometry

# ---------------------------------------------------------------------------
# Input Features
# ---------------------------------------------------------------------------
FeatureId = int | str


class PointFeature(BaseModel):
    """Point observation (e.g. a mineral deposit) in the grid CRS.

    Invariants:
        PF-1: x and y are finite
    """

    feature_id: FeatureId
    x: float
    y: float
    properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_coordinates(self) -> "PointFeature":
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Non-finite coordinates: ({self.x}, {self.y})")
        return self


class ReferenceFeature(BaseModel):
    """Line or polygon observation (e.g. a mapped fault trace).

    Invariants:
        RF-1: geometry is a non-empty, valid shapely geometry
        RF-2: geometry is not a point type
    """

    feature_id: FeatureId
    geometry: BaseGeometry
    properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @field_validator("geometry")
    @classmethod
    def validate_geometry(cls, geometry: BaseGeometry) -> BaseGeometry:
        if geometry.is_empty:
            raise ValueError("Reference geometry is empty")
        if geometry.geom_type in ("Point", "MultiPoint"):
            raise ValueError("Reference geometry must be a line or polygon")
        if not geometry.is_valid:
            raise ValueError(f"Invalid {geometry.geom_type} geometry")
        return geometry


class BufferFrame(BaseModel):
    """Where metre buffers are measured for one grid CRS (Value Object).

    Projected grids buffer in place, scaling metres by ``units_per_metre``.
    Geographic grids buffer in ``local_crs`` (azimuthal equidistant, centred
    on the grid) and the result is projected back to ``crs``.
    """

    crs: str
    units_per_metre: float = Field(default=1.0, gt=0)
    local_crs: str | None = None  # WKT

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# FeatureRecord
# ---------------------------------------------------------------------------
class SampleStatus(str, Enum):
    """Outcome of sampling one point feature against the zone raster."""

    OK = "ok"
    OUT_OF_COVERAGE = "out_of_coverage"  # Outside the raster extent
    NO_DATA = "no_data"  # Inside the extent but on an invalid / out-of-region cell


class FeatureRecord(BaseModel):
    """One sampled point feature (Value Object).

    Invariants:
        FR-1: status == OK  <=>  inside_zone is not None
        FR-2: sampled distances are None unless status == OK
        FR-3: distances are non-negative when present
    """

    feature_id: FeatureId
    x: float
    y: float
    properties: dict[str, Any] = Field(default_factory=dict)
    status: SampleStatus
    inside_zone: bool | None = None
    distance_to_zone_m: float | None = Field(default=None, ge=0)
    distance_to_edge_m: float | None = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_status(self) -> "FeatureRecord":
        sampled = self.status is SampleStatus.OK
        if sampled != (self.inside_zone is not None):
            raise ValueError(f"status={self.status.value} inconsistent with inside_zone")
        if not sampled and (
            self.distance_to_zone_m is not None or self.distance_to_edge_m is not None
        ):
            raise ValueError("Unsampled records cannot carry distances")
        return self

    @property
    def in_coverage(self) -> bool:
        return self.status is SampleStatus.OK


# ---------------------------------------------------------------------------
# EnrichmentResult
# ---------------------------------------------------------------------------
class EnrichmentResult(BaseModel):
    """Feature enrichment inside the zone for one percentile (Value Object).

    enrichment_index = feature_inside_pct / zone_area_share_pct
        E = 1: no spatial association
        E > 1: features over-represented inside the zone
        E < 1: features under-represented inside the zone

    Records that are OUT_OF_COVERAGE or NO_DATA are excluded from
    ``feature_total`` and only counted in their own fields.

    A run that raised carries its message in ``error`` and no statistics;
    its percentile is reported as requested, unvalidated.
    """

    percentile: float
    threshold_value: float | None = None
    zone_area_share_pct: float | None = Field(default=None, ge=0)
    feature_total: int = Field(default=0, ge=0)
    feature_inside: int = Field(default=0, ge=0)
    feature_inside_pct: float | None = Field(default=None, ge=0)
    enrichment_index: float | None = Field(default=None, ge=0)
    out_of_coverage_count: int = Field(default=0, ge=0)
    no_data_count: int = Field(default=0, ge=0)
    approximate: bool = False
    empty_region: bool = False
    error: str | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_counts(self) -> "EnrichmentResult":
        if self.error is None and not (0 <= self.percentile <= 100):
            raise ValueError(f"percentile must be in [0, 100], got {self.percentile}")
        if self.feature_inside > self.feature_total:
            raise ValueError(
                f"feature_inside ({self.feature_inside}) > feature_total ({self.feature_total})"
            )
        if self.empty_region and self.threshold_value is not None:
            raise ValueError("empty_region results carry no threshold")
        return self

    @classmethod
    def empty(cls, percentile: float) -> "EnrichmentResult":
        """Result for a percentile whose region held no valid cells."""
        return cls(percentile=percentile, empty_region=True)

    @classmethod
    def failed(cls, percentile: float, error: BaseException) -> "EnrichmentResult":
        """Result for a percentile whose run raised."""
        return cls(percentile=percentile, error=str(error))

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# OverlapResult
# ---------------------------------------------------------------------------
class OverlapResult(BaseModel):
    """Area agreement between the zone and one buffered reference (Value Object).

    precision = intersection / zone area
    recall = intersection / reference buffer area
    f1 = 2 * precision * recall / (precision + recall)

    All three are percentages. A ratio is None when its denominator is zero;
    f1 is None when either ratio is None or precision + recall == 0.

    A run that raised carries its message in ``error``; its areas and
    metrics are None.
    """

    buffer_distance_m: float
    zone_area_m2: float | None = Field(default=None, ge=0)
    reference_area_m2: float | None = Field(default=None, ge=0)
    intersection_area_m2: float | None = Field(default=None, ge=0)
    precision_pct: float | None = None
    recall_pct: float | None = None
    f1_pct: float | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_areas(self) -> "OverlapResult":
        if self.error is not None:
            return self
        if not (self.buffer_distance_m >= 0):
            raise ValueError(f"buffer_distance_m must be >= 0, got {self.buffer_distance_m}")
        if None in (self.zone_area_m2, self.reference_area_m2, self.intersection_area_m2):
            raise ValueError("Areas are required unless the run failed")
        return self

    @classmethod
    def failed(cls, buffer_distance_m: float, error: BaseException) -> "OverlapResult":
        """Result for a buffer distance whose run raised."""
        return cls(buffer_distance_m=buffer_distance_m, error=str(error))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def degenerate(self) -> bool:
        """True when F1 is undefined for a completed run."""
        return self.ok and self.f1_pct is None


# ---------------------------------------------------------------------------
# DistanceSummary
# ---------------------------------------------------------------------------
class DistanceSummary(BaseModel):
    """Distribution of sampled distances (Value Object).

    All statistics are None when ``count == 0``.
    """

    count: int = Field(ge=0)
    min: float | None = None
    max: float | None = None
    p25: float | None = None
    median: float | None = None
    p75: float | None = None
    zero_count: int = Field(default=0, ge=0)
    unique_count: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)
