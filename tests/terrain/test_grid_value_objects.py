"""Tests for terrain value objects (construction-time validation)."""

from __future__ import annotations

import numpy as np
import pytest

from conftest_utils import create_grid, utm_transform, zone_from_mask
from domain.terrain.value_objects import (
    BoundingBox,
    ElevationGrid,
    Threshold,
    ZoneArea,
    ZoneMask,
)


# ===========================================================================
# ElevationGrid
# ===========================================================================
def test_elevation_grid_happy_path():
    grid = create_grid(np.zeros((4, 5)))

    assert grid.shape == (4, 5)
    assert grid.pixel_size == (10.0, 10.0)
    assert grid.valid_mask.all()
    assert grid.is_geographic is False


def test_elevation_grid_bounds_from_transform():
    grid = create_grid(np.zeros((4, 5)))

    assert grid.bounds == BoundingBox(
        min_x=500_000.0, min_y=4_999_960.0, max_x=500_050.0, max_y=5_000_000.0
    )


def test_elevation_grid_data_is_read_only():
    grid = create_grid(np.zeros((3, 3)))

    with pytest.raises(ValueError):
        grid.data[0, 0] = 1.0


def test_elevation_grid_does_not_alias_caller_array():
    source = np.zeros((3, 3))
    grid = create_grid(source)

    source[1, 1] = 99.0

    assert grid.data[1, 1] == 0.0
    assert source.flags.writeable


def test_elevation_grid_nan_cells_are_invalid():
    data = np.ones((3, 3))
    data[0, 0] = np.nan

    grid = create_grid(data)

    assert not grid.valid_mask[0, 0]
    assert grid.valid_mask.sum() == 8


def test_elevation_grid_explicit_mask_blanks_invalid_cells():
    data = np.ones((3, 3))
    data[2, 2] = np.inf  # Allowed only because the mask excludes it
    mask = np.ones((3, 3), dtype=bool)
    mask[2, 2] = False

    grid = create_grid(data, valid_mask=mask)

    assert np.isnan(grid.data[2, 2])


@pytest.mark.parametrize(
    "data",
    [
        np.zeros(5),  # 1D
        np.zeros((0, 3)),  # empty
        np.full((3, 3), np.nan),  # all NoData
        np.array([[1.0, np.inf], [1.0, 1.0]]),  # infinite sample
    ],
)
def test_elevation_grid_rejects_malformed_data(data):
    with pytest.raises(ValueError):
        create_grid(data)


def test_elevation_grid_rejects_mask_shape_mismatch():
    with pytest.raises(ValueError, match="valid_mask shape"):
        create_grid(np.zeros((3, 3)), valid_mask=np.ones((2, 2), dtype=bool))


def test_elevation_grid_rejects_rotation():
    with pytest.raises(ValueError, match="Rotated"):
        ElevationGrid(
            data=np.zeros((3, 3)),
            transform=(10.0, 0.5, 0.0, 0.0, -10.0, 0.0),
            crs="EPSG:32642",
        )


def test_elevation_grid_rejects_zero_pixel_size():
    with pytest.raises(ValueError, match="zero"):
        ElevationGrid(
            data=np.zeros((3, 3)),
            transform=(0.0, 0.0, 0.0, 0.0, -10.0, 0.0),
            crs="EPSG:32642",
        )


def test_elevation_grid_rejects_unknown_crs():
    with pytest.raises(ValueError, match="CRS"):
        ElevationGrid.from_affine(np.zeros((3, 3)), utm_transform(), "EPSG:999999")


def test_elevation_grid_is_immutable():
    grid = create_grid(np.zeros((3, 3)))

    with pytest.raises(Exception):  # ValidationError or AttributeError
        grid.crs = "EPSG:4326"


# ===========================================================================
# BoundingBox
# ===========================================================================
def test_bounding_box_rejects_inverted_extent():
    with pytest.raises(ValueError, match="x ordering"):
        BoundingBox(min_x=10, min_y=0, max_x=0, max_y=10)


def test_bounding_box_contains_is_inclusive():
    bounds = BoundingBox(min_x=0, min_y=0, max_x=10, max_y=10)

    assert bounds.contains(0, 0)
    assert bounds.contains(10, 10)
    assert not bounds.contains(10.001, 5)


# ===========================================================================
# Threshold / ZoneMask / ZoneArea
# ===========================================================================
def test_threshold_rejects_percentile_out_of_range():
    with pytest.raises(ValueError):
        Threshold(percentile=101, value=1.0, valid_cell_count=1, sampled_cell_count=1)


def test_zone_mask_rejects_cells_outside_region():
    mask = np.ones((3, 3), dtype=bool)
    region = np.ones((3, 3), dtype=bool)
    region[0, 0] = False

    with pytest.raises(ValueError, match="inside the region"):
        zone_from_mask(mask, region)


def test_zone_mask_counts_cells():
    mask = np.zeros((4, 4), dtype=bool)
    mask[1:3, 1:3] = True

    zone = zone_from_mask(mask)

    assert isinstance(zone, ZoneMask)
    assert zone.cell_count == 4
    assert zone.mask.flags.writeable is False


def test_zone_area_share_and_complement_sum_to_100():
    area = ZoneArea(total_area_m2=400.0, zone_area_m2=130.0, share_pct=32.5)

    assert area.background_area_m2 == pytest.approx(270.0)
    assert area.share_pct + area.complement_share_pct == pytest.approx(100.0)


def test_zone_area_rejects_inconsistent_share():
    with pytest.raises(ValueError, match="share_pct"):
        ZoneArea(total_area_m2=400.0, zone_area_m2=100.0, share_pct=50.0)
