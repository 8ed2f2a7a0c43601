"""
Tests for gtg.detect.
"""

import numpy as np
import pytest
import xarray as xr
from dask.base import is_dask_collection

from gtg import frame_index_from_sources, generate_random_frames, reduce_resolution, threshold_mask


class TestThresholdMask:
    """Tests for threshold_mask."""

    def test_less_equal(self):
        grid = [[240., 241., 242.],
                [np.nan, 100., 300.]]
        mask = threshold_mask(grid)
        np.testing.assert_array_equal(mask, [[1., 1., 0.], [0., 1., 0.]])
        assert mask.dtype == np.float64

    def test_comparators(self):
        grid = np.array([[240., 241., 242.]])
        np.testing.assert_array_equal(threshold_mask(grid, 241., 'lt'), [[1., 0., 0.]])
        np.testing.assert_array_equal(threshold_mask(grid, 241., 'ge'), [[0., 1., 1.]])
        np.testing.assert_array_equal(threshold_mask(grid, 241., 'gt'), [[0., 0., 1.]])

    def test_dataarray(self):
        da = xr.DataArray([[200., 300.]], dims=['lat', 'lon'])
        mask = threshold_mask(da)
        assert isinstance(mask, xr.DataArray)
        np.testing.assert_array_equal(mask.values, [[1., 0.]])

    def test_unknown_comparator(self):
        with pytest.raises(ValueError, match='comparator'):
            threshold_mask([[1.]], comparator='eq')


class TestReduceResolution:
    """Tests for reduce_resolution."""

    def test_block_mean(self):
        da = xr.DataArray(np.arange(16, dtype=float).reshape(4, 4), dims=['lat', 'lon'])
        coarse = reduce_resolution(da, 2)
        np.testing.assert_array_equal(coarse.values, [[2.5, 4.5], [10.5, 12.5]])

    def test_trims_incomplete_blocks(self):
        da = xr.DataArray(np.ones((5, 7)), dims=['lat', 'lon'])
        assert reduce_resolution(da, 2).shape == (2, 3)

    def test_factor_one_is_identity(self):
        da = xr.DataArray(np.ones((2, 2)), dims=['lat', 'lon'])
        assert reduce_resolution(da, 1) is da

    def test_invalid_factor(self):
        da = xr.DataArray(np.ones((2, 2)), dims=['lat', 'lon'])
        with pytest.raises(ValueError):
            reduce_resolution(da, 0)


class TestFrameIndexFromSources:
    """Tests for frame_index_from_sources."""

    def test_orders_by_date(self):
        sources = [
            '/data/merg_2006091103_4km-pixel.nc',
            '/data/merg_2006091100_4km-pixel.nc',
            'merg_2006091101_4km-pixel.nc',
        ]
        index = frame_index_from_sources(sources)
        assert index == {sources[0]: 2, sources[1]: 0, sources[2]: 1}

    def test_dotted_dates(self):
        sources = ['trmm_1998.01.02_x', 'trmm_1998.01.01_x']
        assert frame_index_from_sources(sources) == {sources[0]: 1, sources[1]: 0}

    def test_year_month_single_dot(self):
        sources = ['a_1998.02_x', 'a_1998.01_x']
        assert frame_index_from_sources(sources) == {sources[0]: 1, sources[1]: 0}

    def test_trailing_extension(self):
        sources = ['merg_20060912.nc', 'merg_20060911.nc']
        assert frame_index_from_sources(sources) == {sources[0]: 1, sources[1]: 0}

    def test_duplicate_dates(self):
        with pytest.raises(ValueError, match='Duplicate'):
            frame_index_from_sources(['a_2006091100_x.nc', 'b_2006091100_y.nc'])

    def test_missing_token(self):
        with pytest.raises(ValueError, match='token'):
            frame_index_from_sources(['nodate.nc'])


class TestGenerateRandomFrames:
    """Tests for generate_random_frames."""

    def test_shape_and_backing(self):
        da = generate_random_frames(5, shape=(6, 7), seed=1)
        assert da.dims == ('time', 'lat', 'lon')
        assert da.shape == (5, 6, 7)
        assert is_dask_collection(da.data)

    def test_reproducible_and_bounded(self):
        a = generate_random_frames(3, shape=(4, 4), low=200., high=250., seed=3).values
        b = generate_random_frames(3, shape=(4, 4), low=200., high=250., seed=3).values
        np.testing.assert_array_equal(a, b)
        assert a.min() >= 200.
        assert a.max() < 250.
