"""Tests for gradient_field (Sobel derivatives and lineament strike).

Kernel arithmetic on a planar ramp z = s * col: the convolution gives
|gx| = 8 * s in the interior and 4 * s on the replicated border columns.
"""

from __future__ import annotations

import numpy as np
import pytest

from conftest_utils import create_grid, create_ramp_grid
from domain.terrain.services import gradient_field


# ===========================================================================
# Magnitude
# ===========================================================================
def test_gradient_flat_grid_has_zero_magnitude():
    grid = create_grid(np.full((10, 10), 250.0))

    gradient = gradient_field(grid)

    assert gradient.valid.all()
    assert np.all(gradient.magnitude == 0.0)


def test_gradient_ramp_interior_magnitude():
    grid = create_ramp_grid(slope_x=2.0)

    gradient = gradient_field(grid)

    assert np.allclose(gradient.magnitude[1:-1, 1:-1], 16.0)


def test_gradient_border_uses_edge_replication():
    """Border cells stay valid; the replicated edge halves the x difference."""
    grid = create_ramp_grid(slope_x=1.0)

    gradient = gradient_field(grid)

    assert gradient.valid[:, 0].all()
    assert np.allclose(gradient.magnitude[1:-1, 0], 4.0)
    assert np.allclose(gradient.magnitude[1:-1, -1], 4.0)


def test_gradient_magnitude_is_non_negative(random_grid):
    gradient = gradient_field(random_grid)

    assert (gradient.magnitude[gradient.valid] >= 0).all()


# ===========================================================================
# Orientation
# ===========================================================================
def test_gradient_orientation_in_half_circle(random_grid):
    gradient = gradient_field(random_grid)

    strike = gradient.orientation[gradient.valid]
    assert (strike >= 0).all()
    assert (strike < 180).all()


@pytest.mark.parametrize(
    ("slope_x", "slope_y", "expected"),
    [
        (1.0, 0.0, 90.0),  # Elevation changes along x: strike runs along y
        (0.0, 1.0, 0.0),  # Elevation changes along rows: strike along x
        (1.0, 1.0, 135.0),
        (-1.0, 0.0, 90.0),  # Direction of descent does not matter
    ],
)
def test_gradient_orientation_of_planar_ramps(slope_x, slope_y, expected):
    grid = create_ramp_grid(slope_x=slope_x, slope_y=slope_y)

    gradient = gradient_field(grid)

    assert np.allclose(gradient.orientation[1:-1, 1:-1], expected)


def test_gradient_orientation_is_read_only(random_grid):
    gradient = gradient_field(random_grid)

    with pytest.raises(ValueError):
        gradient.orientation[0, 0] = 0.0


# ===========================================================================
# NoData Propagation
# ===========================================================================
def test_gradient_nodata_invalidates_window():
    data = np.ones((7, 7))
    data[3, 3] = np.nan
    grid = create_grid(data)

    gradient = gradient_field(grid)

    assert (~gradient.valid).sum() == 9
    assert not gradient.valid[2:5, 2:5].any()
    assert np.isnan(gradient.orientation[3, 3])
    assert np.isnan(gradient.magnitude[2, 2])


def test_gradient_preserves_extent(random_grid):
    gradient = gradient_field(random_grid)

    assert gradient.magnitude.shape == random_grid.shape
    assert gradient.transform == random_grid.transform
