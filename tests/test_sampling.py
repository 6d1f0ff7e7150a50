# -*- coding: utf-8 -*-
"""
Tests for tile sampling strategies, sparse fields and grid assembly.

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
2026-03-09

Modified
--------
2026-03-13
"""

import numpy as np
import pytest
from scipy import ndimage

from dedistort.distortion import (
    GridSamplingStrategy,
    InterestPointSamplingStrategy,
    SamplePositions,
    SparseDistortionField,
    assemble_grid,
    extract_tiles,
    get_sampling_strategy,
)
from dedistort.distortion.builder import chunk_indices
from dedistort.exceptions import ValidationError
from dedistort.signal import SignalEvaluator
from dedistort.vocabulary import SamplingStrategyKind


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def texture():
    rng = np.random.default_rng(4)
    noise = ndimage.gaussian_filter(rng.normal(size=(256, 256)), 2.0)
    return 100.0 + 40.0 * noise / noise.std()


def _min_pairwise_distance(x, y):
    d = np.hypot(x[:, None] - x[None, :], y[:, None] - y[None, :])
    d[np.diag_indices_from(d)] = np.inf
    return d.min()


# ── Grid sampling ───────────────────────────────────────────────────────


class TestGridSampling:

    def test_lattice_centres(self):
        image = np.full((96, 128), 10.0)
        pos = GridSamplingStrategy().select_positions(
            image, 32, 16, SignalEvaluator(image), 1.0,
        )
        assert pos.count == 7 * 5
        assert set(np.unique(pos.x)) == set(range(16, 113, 16))
        assert set(np.unique(pos.y)) == set(range(16, 81, 16))
        np.testing.assert_array_equal(pos.sizes, 32)

    def test_dark_tiles_dropped(self):
        image = np.full((96, 128), 10.0)
        image[:, 64:] = 0.0
        pos = GridSamplingStrategy().select_positions(
            image, 32, 16, SignalEvaluator(image), 1.0,
        )
        assert pos.count == 4 * 5
        assert pos.x.max() == 48 + 16

    def test_image_smaller_than_tile(self):
        image = np.full((20, 20), 10.0)
        pos = GridSamplingStrategy().select_positions(
            image, 32, 16, SignalEvaluator(image), 1.0,
        )
        assert pos.count == 0

    def test_corners_and_groups(self):
        pos = SamplePositions(np.array([16, 40, 64]), np.array([16, 16, 64]),
                              np.array([32, 64, 32]))
        x0, y0 = pos.corners()
        np.testing.assert_array_equal(x0, [0, 8, 48])
        np.testing.assert_array_equal(y0, [0, -16, 48])
        groups = dict(pos.by_size())
        np.testing.assert_array_equal(groups[32], [0, 2])
        np.testing.assert_array_equal(groups[64], [1])


# ── Interest points ─────────────────────────────────────────────────────


class TestInterestPoints:

    def test_single_scale_spacing(self, texture):
        strategy = InterestPointSamplingStrategy(multiscale=False)
        pos = strategy.select_positions(texture, 32, 16,
                                        SignalEvaluator(texture), 1.0)
        assert pos.count > 10
        np.testing.assert_array_equal(pos.sizes, 32)
        assert pos.x.min() >= 16 and pos.x.max() < 240
        assert pos.y.min() >= 16 and pos.y.max() < 240
        assert _min_pairwise_distance(pos.x, pos.y) >= 16

    def test_multiscale_layers(self, texture):
        pos = InterestPointSamplingStrategy().select_positions(
            texture, 64, 32, SignalEvaluator(texture), 1.0,
        )
        assert set(np.unique(pos.sizes)) <= {32, 64, 128}
        assert 128 in pos.sizes
        assert _min_pairwise_distance(pos.x, pos.y) >= 16

    def test_max_samples(self, texture):
        strategy = InterestPointSamplingStrategy(max_samples=5)
        pos = strategy.select_positions(texture, 32, 16,
                                        SignalEvaluator(texture), 1.0)
        assert pos.count == 5

    def test_blank_image(self):
        image = np.zeros((128, 128))
        pos = InterestPointSamplingStrategy().select_positions(
            image, 32, 16, SignalEvaluator(image), 1.0,
        )
        assert pos.count == 0

    def test_factory(self):
        assert isinstance(get_sampling_strategy('grid'), GridSamplingStrategy)
        assert isinstance(
            get_sampling_strategy(SamplingStrategyKind.INTEREST_POINTS),
            InterestPointSamplingStrategy,
        )
        with pytest.raises(ValidationError, match="Unknown sampling"):
            get_sampling_strategy('random')


# ── Sparse field ────────────────────────────────────────────────────────


class TestSparseDistortionField:

    @pytest.fixture
    def scattered(self):
        rng = np.random.default_rng(9)
        return rng.uniform(0, 128, 40), rng.uniform(0, 128, 40)

    @pytest.mark.parametrize("method", ['idw', 'gaussian_rbf', 'thin_plate'])
    def test_constant_field_reproduced(self, scattered, method):
        x, y = scattered
        field = SparseDistortionField(128, 128, x, y, np.full(40, 0.7),
                                      np.full(40, -0.2), method=method)
        dx, dy = field.query(np.array([5.0, 64.0, 127.0]),
                             np.array([3.0, 70.0, 90.0]))
        np.testing.assert_allclose(dx, 0.7, atol=1e-12)
        np.testing.assert_allclose(dy, -0.2, atol=1e-12)

    def test_idw_exact_at_sample(self, scattered):
        x, y = scattered
        values = np.arange(40, dtype=np.float64)
        field = SparseDistortionField(128, 128, x, y, values, -values,
                                      method='idw')
        dx, dy = field.query(x[7], y[7])
        assert float(dx) == 7.0 and float(dy) == -7.0

    def test_empty_field(self):
        empty = np.zeros(0)
        field = SparseDistortionField(64, 64, empty, empty, empty, empty)
        dx, _ = field.query(np.zeros((2, 3)), np.zeros((2, 3)))
        assert dx.shape == (2, 3) and not dx.any()
        grid = field.to_regular_grid(16)
        assert grid.total_distortion() == 0.0

    def test_validation(self):
        with pytest.raises(ValidationError, match="same length"):
            SparseDistortionField(64, 64, [0, 1], [0], [0, 1], [0, 1])
        with pytest.raises(ValidationError, match="Unknown sparse"):
            SparseDistortionField(64, 64, [0], [0], [0], [0], method='kriging')
        with pytest.raises(ValidationError, match="neighbours"):
            SparseDistortionField(64, 64, [0], [0], [0], [0], neighbours=0)

    def test_to_regular_grid(self):
        ys, xs = np.mgrid[16:128:32, 16:128:32]
        n = xs.size
        field = SparseDistortionField(128, 128, xs.ravel(), ys.ravel(),
                                      np.full(n, 1.5), np.full(n, 0.5),
                                      tile_sizes=np.full(n, 32),
                                      tile_weighting=True)
        grid = field.to_regular_grid(16)
        assert grid.shape == (9, 9)
        assert grid.sampled_2d[1, 1] and not grid.sampled_2d[0, 0]
        np.testing.assert_allclose(grid.dx, 1.5, atol=1e-9)
        np.testing.assert_allclose(grid.dy, 0.5, atol=1e-9)
        assert field.total_distortion() == pytest.approx(
            n * np.hypot(1.5, 0.5))


# ── Grid assembly ───────────────────────────────────────────────────────


class TestAssembly:

    def test_extract_tiles(self, texture):
        tiles = extract_tiles(texture, np.array([0, 10]), np.array([5, 40]), 8)
        assert tiles.shape == (2, 8, 8)
        assert tiles.dtype == np.float64
        np.testing.assert_array_equal(tiles[1], texture[40:48, 10:18])

    def test_chunk_indices(self):
        chunks = chunk_indices(np.arange(10), 4)
        assert [c.size for c in chunks] == [4, 4, 2]
        np.testing.assert_array_equal(np.concatenate(chunks), np.arange(10))
        assert chunk_indices(np.arange(0), 4) == []

    @pytest.mark.parametrize("kind", list(SamplingStrategyKind))
    def test_offsets_are_negated_measurements(self, kind):
        xs, ys = np.meshgrid(np.arange(16, 113, 16), np.arange(16, 113, 16))
        pos = SamplePositions(xs.ravel(), ys.ravel(),
                              np.full(xs.size, 32, dtype=np.int64))
        measured = np.tile([-1.0, 0.5], (pos.count, 1))
        grid, report = assemble_grid(128, 128, 16, pos, measured, kind, 1.0)
        np.testing.assert_allclose(grid.dx, 1.0, atol=1e-9)
        np.testing.assert_allclose(grid.dy, -0.5, atol=1e-9)
        assert report.global_outliers == 0

    def test_no_measurements(self):
        grid, report = assemble_grid(
            64, 64, 16, SamplePositions.empty(), np.zeros((0, 2)),
            SamplingStrategyKind.GRID, 1.0,
        )
        assert report.sampled_before == 0
        assert grid.uninterpolated.all()
        assert grid.total_distortion() == 0.0
