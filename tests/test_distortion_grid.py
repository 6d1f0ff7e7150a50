# -*- coding: utf-8 -*-
"""
Tests for DistortionGrid storage, filtering, interpolation and algebra.

Author
------
Duane Smalley, PhD
duane.d.smalley@gmail.com

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-03-05

Modified
--------
2026-03-13
"""

import numpy as np
import pytest

from dedistort.distortion import DistortionGrid
from dedistort.distortion.filters import (
    MAD_FLOOR,
    fill_gaps,
    gaussian_kernel_1d,
    gaussian_smooth,
    reject_global_outliers,
    scaled_mad,
)
from dedistort.exceptions import ValidationError
from dedistort.image import DisplacementVector


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def noisy_constant_grid():
    """10 x 10 fully sampled grid, dx ~ 1.0 with small noise, dy = 0."""
    rng = np.random.default_rng(11)
    grid = DistortionGrid(144, 144, 16)
    assert grid.shape == (10, 10)
    grid.dx[:] = 1.0 + 0.01 * rng.standard_normal(grid.dx.size)
    grid.sampled[:] = True
    return grid


# ── Layout ──────────────────────────────────────────────────────────────


class TestLayout:
    """Node count invariant and accessors."""

    @pytest.mark.parametrize("width,height,step,gw,gh", [
        (100, 70, 16, 8, 6),
        (64, 64, 16, 5, 5),
        (33, 1, 32, 3, 2),
    ])
    def test_dimensions(self, width, height, step, gw, gh):
        grid = DistortionGrid(width, height, step)
        assert (grid.grid_width, grid.grid_height) == (gw, gh)
        assert grid.dx.size == gw * gh
        assert grid.sampled.dtype == bool
        assert not grid.sampled.any()

    @pytest.mark.parametrize("args", [(0, 10, 4), (10, 10, 0), (10, -1, 4)])
    def test_invalid_dimensions(self, args):
        with pytest.raises(ValidationError):
            DistortionGrid(*args)

    def test_set_get(self):
        grid = DistortionGrid(64, 64, 16)
        grid.set(2, 3, 0.5, -1.25)
        assert grid.get(2, 3) == DisplacementVector(0.5, -1.25)
        assert grid.sampled_2d[3, 2]
        assert grid.dx_2d[3, 2] == 0.5
        assert grid.index(2, 3) == 3 * grid.grid_width + 2

    def test_out_of_bounds(self):
        grid = DistortionGrid(64, 64, 16)
        with pytest.raises(IndexError):
            grid.get(5, 0)
        with pytest.raises(IndexError):
            grid.set(0, -1, 0.0, 0.0)

    def test_record_to_nearest_node(self):
        grid = DistortionGrid(64, 64, 16)
        grid.record_displacement(17, 30, 0.3, 0.4)
        assert grid.get(1, 2) == DisplacementVector(0.3, 0.4)
        grid.record_displacements(np.array([0, 64]), np.array([64, 0]),
                                  np.array([1.0, 2.0]), np.array([0.0, 0.0]))
        assert grid.get(0, 4).dx == 1.0
        assert grid.get(4, 0).dx == 2.0
        assert grid.sampled_count == 3

    def test_from_arrays_shape_check(self):
        with pytest.raises(ValidationError, match="shape"):
            DistortionGrid.from_arrays(64, 64, 16, np.zeros((4, 4)),
                                       np.zeros((4, 4)))


# ── Filter pipeline ─────────────────────────────────────────────────────


class TestFilterPipeline:
    """Outlier rejection, gap filling and smoothing."""

    def test_global_outliers_rejected(self, noisy_constant_grid):
        grid = noisy_constant_grid
        outliers = [(2, 2), (7, 4), (5, 8)]
        for gx, gy in outliers:
            grid.set(gx, gy, 15.0, -9.0)
        before = grid.total_distortion()

        report = grid.filter_and_smooth(base_sigma=0.0)

        assert report.global_outliers >= len(outliers)
        for gx, gy in outliers:
            assert not grid.sampled_2d[gy, gx]
            assert abs(grid.get(gx, gy).dx - 1.0) < 0.1
            assert abs(grid.get(gx, gy).dy) < 0.1
        assert grid.total_distortion() < before

    def test_noise_not_rejected(self, noisy_constant_grid):
        report = noisy_constant_grid.filter_and_smooth(base_sigma=0.0)
        assert report.global_outliers == 0
        assert report.local_outliers == 0
        assert noisy_constant_grid.sampled_count == 100

    def test_local_outlier_rejected(self):
        grid = DistortionGrid(144, 144, 16)
        gx = np.tile(np.arange(10, dtype=np.float64), 10)
        grid.dx[:] = gx
        grid.sampled[:] = True
        grid.set(5, 5, 11.0, 0.0)

        report = grid.filter_and_smooth(base_sigma=0.0)

        assert report.global_outliers == 0
        assert report.local_outliers >= 1
        assert not grid.sampled_2d[5, 5]
        assert abs(grid.get(5, 5).dx - 5.0) < 1.0

    def test_gap_fill_inside_neighbour_hull(self):
        rng = np.random.default_rng(5)
        grid = DistortionGrid(96, 96, 16)
        grid.dx[:] = rng.uniform(-2.0, 2.0, grid.dx.size)
        grid.dy[:] = rng.uniform(-2.0, 2.0, grid.dy.size)
        grid.sampled[:] = True
        grid.sampled_2d[3, 3] = False
        sampled_dx = grid.dx[grid.sampled]
        sampled_dy = grid.dy[grid.sampled]

        report = grid.filter_and_smooth(base_sigma=0.0, mad_threshold=1e9)

        filled = grid.get(3, 3)
        assert report.filled == 1
        assert sampled_dx.min() <= filled.dx <= sampled_dx.max()
        assert sampled_dy.min() <= filled.dy <= sampled_dy.max()
        assert not grid.uninterpolated.any()

    def test_unreachable_nodes_flagged(self):
        grid = DistortionGrid(144, 144, 16)
        grid.set(0, 0, 2.0, 1.0)

        report = grid.filter_and_smooth(base_sigma=0.0)

        assert report.uninterpolated > 0
        far = grid.index(9, 9)
        assert grid.uninterpolated[far]
        assert grid.dx[far] == 0.0 and grid.dy[far] == 0.0
        near = grid.get(2, 2)
        assert near == DisplacementVector(2.0, 1.0)
        assert not grid.uninterpolated[grid.index(2, 2)]

    def test_smoothing_preserves_constant_field(self):
        grid = DistortionGrid(256, 256, 32)
        grid.dx[:] = 2.0
        grid.dy[:] = -0.5
        grid.sampled[:] = True
        grid.filter_and_smooth(base_sigma=4.0)
        np.testing.assert_allclose(grid.dx, 2.0, atol=1e-12)
        np.testing.assert_allclose(grid.dy, -0.5, atol=1e-12)

    def test_smoothing_sigma_scales_with_step(self):
        assert DistortionGrid(64, 64, 32).smoothing_sigma(1.0) == 0.5
        assert DistortionGrid(64, 64, 64).smoothing_sigma(2.0) == 2.0

    def test_all_values_finite_after_filter(self):
        grid = DistortionGrid(200, 120, 16)
        grid.set(3, 2, 1.0, 1.0)
        grid.set(10, 6, -1.0, 0.5)
        grid.filter_and_smooth()
        assert np.all(np.isfinite(grid.dx))
        assert np.all(np.isfinite(grid.dy))


class TestFilterFunctions:
    """Module-level filter helpers."""

    def test_scaled_mad_floor(self):
        assert scaled_mad(np.full(10, 3.0), 3.0) == MAD_FLOOR
        assert scaled_mad(np.array([]), 0.0) == MAD_FLOOR

    def test_global_rejection_needs_three_samples(self):
        dx = np.array([[0.0, 100.0]])
        sampled = np.array([[True, True]])
        mask = reject_global_outliers(dx, np.zeros_like(dx), sampled)
        assert not mask.any()

    def test_fill_gaps_leaves_sampled_nodes(self):
        dx = np.array([[1.0, 0.0, 3.0]])
        sampled = np.array([[True, False, True]])
        out_dx, _, uninterpolated = fill_gaps(dx, np.zeros_like(dx), sampled)
        assert out_dx[0, 0] == 1.0 and out_dx[0, 2] == 3.0
        assert out_dx[0, 1] == pytest.approx(2.0)
        assert not uninterpolated.any()

    def test_gaussian_kernel_radius(self):
        assert gaussian_kernel_1d(1.0).size == 7
        assert gaussian_kernel_1d(0.5).size == 5

    def test_zero_sigma_returns_copies(self):
        dx = np.ones((3, 3))
        out_dx, _ = gaussian_smooth(dx, dx, 0.0)
        assert out_dx is not dx
        np.testing.assert_array_equal(out_dx, dx)


# ── Interpolation ───────────────────────────────────────────────────────


class TestInterpolation:
    """Catmull-Rom displacement queries and dense fields."""

    @pytest.fixture
    def ramp_grid(self):
        grid = DistortionGrid(96, 64, 16)
        gy, gx = np.mgrid[0:grid.grid_height, 0:grid.grid_width]
        grid.dx_2d[:] = 0.1 * gx
        grid.dy_2d[:] = np.sin(gy + 0.3 * gx)
        return grid

    def test_exact_at_nodes(self, ramp_grid):
        for gx, gy in [(0, 0), (3, 2), (6, 4)]:
            vec = ramp_grid.displacement_at(gx * 16, gy * 16)
            assert isinstance(vec, DisplacementVector)
            assert vec.dx == pytest.approx(ramp_grid.get(gx, gy).dx)
            assert vec.dy == pytest.approx(ramp_grid.get(gx, gy).dy)

    def test_linear_field_reproduced_between_nodes(self, ramp_grid):
        vec = ramp_grid.displacement_at(40.0, 20.0)
        assert vec.dx == pytest.approx(0.1 * 40.0 / 16.0)

    def test_array_query(self, ramp_grid):
        px = np.array([[0.0, 8.0], [17.5, 95.0]])
        dx, dy = ramp_grid.displacement_at(px, np.full_like(px, 10.0))
        assert dx.shape == px.shape and dy.shape == px.shape

    def test_dense_field_matches_queries(self, ramp_grid):
        dense_dx, dense_dy = ramp_grid.dense_field()
        assert dense_dx.shape == (64, 96)
        yy, xx = np.mgrid[0:64, 0:96]
        dx, dy = ramp_grid.displacement_at(xx.astype(float), yy.astype(float))
        np.testing.assert_allclose(dense_dx, dx, atol=1e-10)
        np.testing.assert_allclose(dense_dy, dy, atol=1e-10)


# ── Algebra ─────────────────────────────────────────────────────────────


class TestAlgebra:
    """Negation, averaging and synthesis of grids."""

    def test_negate(self, noisy_constant_grid):
        neg = -noisy_constant_grid
        np.testing.assert_array_equal(neg.dx, -noisy_constant_grid.dx)
        np.testing.assert_array_equal(neg.sampled, noisy_constant_grid.sampled)
        assert neg is not noisy_constant_grid

    def test_copy_is_independent(self, noisy_constant_grid):
        other = noisy_constant_grid.copy()
        other.dx[:] = 0.0
        assert noisy_constant_grid.dx.max() > 0.5

    def test_average(self):
        a = DistortionGrid(64, 64, 16)
        b = DistortionGrid(64, 64, 16)
        a.dx[:] = 1.0
        b.dx[:] = 3.0
        a.set(1, 1, 1.0, 0.0)
        avg = DistortionGrid.average([a, b])
        np.testing.assert_allclose(avg.dx, 2.0)
        assert avg.sampled_count == 1

    def test_average_requires_same_step(self):
        with pytest.raises(ValidationError, match="step"):
            DistortionGrid.average([DistortionGrid(64, 64, 16),
                                    DistortionGrid(64, 64, 32)])

    def test_synthesize_on_finest_step(self):
        coarse = DistortionGrid(128, 128, 64)
        fine = DistortionGrid(128, 128, 16)
        coarse.dx[:] = 1.0
        fine.dx[:] = 0.5
        fine.dy[:] = -0.25
        total = DistortionGrid.synthesize([coarse, fine])
        assert total.step == 16
        np.testing.assert_allclose(total.dx, 1.5, atol=1e-12)
        np.testing.assert_allclose(total.dy, -0.25, atol=1e-12)
        assert total.sampled_count == 0

    def test_synthesize_size_mismatch(self):
        with pytest.raises(ValidationError, match="different image sizes"):
            DistortionGrid.synthesize([DistortionGrid(64, 64, 16),
                                       DistortionGrid(64, 32, 16)])

    def test_max_displacement_and_describe(self):
        grid = DistortionGrid(64, 64, 16)
        grid.set(1, 1, 3.0, 4.0)
        assert grid.max_displacement() == pytest.approx(5.0)
        assert grid.total_distortion() == pytest.approx(5.0)
        info = grid.describe()
        assert info['sampled'] == 1
        assert info['step'] == 16
        assert info['mean_distortion'] == pytest.approx(5.0 / 25)
