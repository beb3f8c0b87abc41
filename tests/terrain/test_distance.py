"""Tests for distance_fields and cell_index.

Reference layout: 11x11 grid, 10 m cells, zone = rows/cols 3..7 (5x5 block).
"""

from __future__ import annotations

import math
import warnings

import numpy as np
import pytest

from conftest_utils import cell_centre, zone_from_mask
from domain.terrain.errors import PointOutOfCoverageError
from domain.terrain.services import cell_index, distance_fields


def _block_zone(size: int = 11, start: int = 3, stop: int = 8):
    mask = np.zeros((size, size), dtype=bool)
    mask[start:stop, start:stop] = True
    return zone_from_mask(mask)


def _four_neighbour_boundary(mask: np.ndarray) -> np.ndarray:
    """Cells with at least one 4-neighbour of the opposite class."""
    padded = np.pad(mask, 1, mode="edge")
    centre = padded[1:-1, 1:-1]
    neighbours = (padded[:-2, 1:-1], padded[2:, 1:-1], padded[1:-1, :-2], padded[1:-1, 2:])
    return np.logical_or.reduce([n != centre for n in neighbours])


# ===========================================================================
# Class Zeros
# ===========================================================================
def test_distance_inside_is_zero_in_background():
    zone = _block_zone()

    fields = distance_fields(zone, 10.0)

    assert np.all(fields.dist_inside_m[~zone.mask] == 0)
    assert np.all(fields.dist_inside_m[zone.mask] > 0)


def test_distance_outside_is_zero_in_zone():
    zone = _block_zone()

    fields = distance_fields(zone, 10.0)

    assert np.all(fields.dist_outside_m[zone.mask] == 0)
    assert np.all(fields.dist_outside_m[~zone.mask] > 0)
    assert fields.distance_to_zone_m is fields.dist_outside_m


# ===========================================================================
# Edge Distance
# ===========================================================================
def test_edge_distance_zero_exactly_on_boundary_band():
    zone = _block_zone()

    fields = distance_fields(zone, 10.0)

    assert np.array_equal(fields.edge_distance_m == 0, _four_neighbour_boundary(zone.mask))


def test_edge_distance_diagonal_neighbour_is_positive():
    zone = _block_zone()

    fields = distance_fields(zone, 10.0)

    # (2, 2) touches the zone only diagonally at (3, 3)
    assert fields.edge_distance_m[2, 2] == pytest.approx((math.sqrt(2) - 1) * 10.0)


# ===========================================================================
# Scaling
# ===========================================================================
def test_distance_scaled_by_cell_size():
    zone = _block_zone()

    fields = distance_fields(zone, 10.0)

    # (0, 5) is three cells above (3, 5)
    assert fields.dist_outside_m[0, 5] == pytest.approx(30.0)
    assert fields.edge_distance_m[0, 5] == pytest.approx(20.0)
    # Zone centre is three cells from the background ring
    assert fields.dist_inside_m[5, 5] == pytest.approx(30.0)


def test_distance_cell_size_doubles_distances():
    zone = _block_zone()

    small = distance_fields(zone, 10.0)
    large = distance_fields(zone, 20.0)

    assert np.allclose(large.dist_outside_m, 2 * small.dist_outside_m)
    assert np.allclose(large.edge_distance_m, 2 * small.edge_distance_m)


# ===========================================================================
# Single-Class Masks
# ===========================================================================
def test_distance_empty_zone_uses_extent_diagonal():
    zone = zone_from_mask(np.zeros((11, 11), dtype=bool))

    fields = distance_fields(zone, 10.0)

    extent = math.hypot(11, 11) * 10.0
    assert np.allclose(fields.dist_outside_m, extent)
    assert np.allclose(fields.edge_distance_m, extent)
    assert np.all(fields.dist_inside_m == 0)


def test_distance_full_zone_uses_extent_diagonal():
    zone = zone_from_mask(np.ones((11, 11), dtype=bool))

    fields = distance_fields(zone, 10.0)

    assert np.all(fields.dist_outside_m == 0)
    assert np.allclose(fields.dist_inside_m, math.hypot(11, 11) * 10.0)


# ===========================================================================
# Budget / Validation
# ===========================================================================
def test_distance_budget_marks_approximate_and_keeps_classes():
    zone = _block_zone()

    fields = distance_fields(zone, 10.0, max_cell_budget=30)

    assert fields.approximate is True
    assert np.all(fields.dist_outside_m[zone.mask] == 0)
    assert np.all(fields.dist_inside_m[~zone.mask] == 0)
    assert np.all(fields.dist_outside_m[~zone.mask] > 0)


def test_distance_within_budget_is_exact():
    fields = distance_fields(_block_zone(), 10.0, max_cell_budget=1_000)

    assert fields.approximate is False


@pytest.mark.parametrize("cell_size", [0.0, -10.0])
def test_distance_rejects_non_positive_cell_size(cell_size):
    with pytest.raises(ValueError, match="cell_size_m"):
        distance_fields(_block_zone(), cell_size)


def test_distance_fields_are_read_only():
    fields = distance_fields(_block_zone(), 10.0)

    with pytest.raises(ValueError):
        fields.edge_distance_m[0, 0] = 1.0


# ===========================================================================
# Cell Index
# ===========================================================================
def test_cell_index_of_cell_centre():
    zone = _block_zone()
    x, y = cell_centre(4, 7)

    assert cell_index(zone, x, y) == (4, 7)


def test_cell_index_far_edges_are_inclusive():
    zone = _block_zone()
    bounds = zone.bounds

    assert cell_index(zone, bounds.max_x, bounds.min_y) == (10, 10)
    assert cell_index(zone, bounds.min_x, bounds.max_y) == (0, 0)


def test_cell_index_outside_extent_raises():
    zone = _block_zone()
    bounds = zone.bounds

    with pytest.raises(PointOutOfCoverageError) as exc_info:
        cell_index(zone, bounds.max_x + 1.0, bounds.max_y)

    assert exc_info.value.bounds == bounds


def test_cell_index_raises_no_deprecation_warning():
    zone = _block_zone()
    x, y = cell_centre(2, 9)

    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        warnings.simplefilter("error", PendingDeprecationWarning)
        index = cell_index(zone, x, y)

    assert index == (2, 9)
