"""
Tests for row-band dispatch.
"""

import numpy as np
import pytest

from depth_upsampler.core.dispatch import ParallelDispatcher
from depth_upsampler.core.errors import BackendInitializationError


@pytest.mark.parametrize("rows", [1, 2, 7, 64, 101])
def test_bands_cover_every_row_once(dispatcher, rows):
    covered = np.zeros(rows, dtype=int)

    for band in dispatcher.bands(rows):
        covered[band] += 1

    assert np.all(covered == 1)


def test_band_count_respects_minimum_rows():
    with ParallelDispatcher(num_workers=8, min_rows_per_band=10) as pool:
        assert len(pool.bands(25)) == 2
        assert len(pool.bands(5)) == 1
        assert pool.bands(0) == []


def test_dispatch_waits_for_all_bands(dispatcher):
    out = np.zeros((40, 5))

    def kernel(rows):
        out[rows] = rows.start

    dispatcher.dispatch(40, kernel)

    for band in dispatcher.bands(40):
        assert np.all(out[band] == band.start)


def test_dispatch_reraises_band_errors(dispatcher):
    def kernel(rows):
        if rows.start > 0:
            raise RuntimeError("band failed")

    with pytest.raises(RuntimeError, match="band failed"):
        dispatcher.dispatch(12, kernel)


def test_single_worker_runs_inline():
    with ParallelDispatcher(num_workers=1) as pool:
        seen = []
        pool.dispatch(100, seen.append)

    assert seen == [slice(0, 100)]


@pytest.mark.parametrize("kwargs", [{"num_workers": 0}, {"min_rows_per_band": 0}])
def test_invalid_pool_settings(kwargs):
    with pytest.raises(BackendInitializationError):
        ParallelDispatcher(**kwargs)
