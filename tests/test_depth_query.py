"""
Tests for depth probes on processed rasters.
"""

import numpy as np
import pytest

from depth_upsampler.core.contracts import ConfidenceLevel
from depth_upsampler.depth.depth_query import (
    confidence_weighted_depth,
    depth_at_normalized_point,
    depth_at_point,
    depth_for_region,
)


@pytest.fixture
def depth_map():
    depth = np.arange(12, dtype=np.float32).reshape(3, 4)
    depth[0, 0] = np.nan
    return depth


def test_depth_at_point(depth_map):
    assert depth_at_point(depth_map, 1, 2) == 9.0
    assert depth_at_point(depth_map, 0, 0) is None
    assert depth_at_point(depth_map, 4, 0) is None
    assert depth_at_point(depth_map, 0, -1) is None


def test_normalized_point_is_resolution_independent(depth_map):
    assert depth_at_normalized_point(depth_map, 0.5, 0.5) == depth_map[1, 2]
    assert depth_at_normalized_point(depth_map, 1.0, 1.0) == depth_map[2, 3]


def test_region_median_ignores_holes(depth_map):
    mask = np.zeros((3, 4), dtype=np.uint8)
    mask[0, :3] = 1

    assert depth_for_region(depth_map, mask) == pytest.approx(1.5)
    assert depth_for_region(depth_map, np.zeros((3, 4))) is None
    assert depth_for_region(depth_map, np.ones((2, 2))) is None


def test_confidence_weighted_depth():
    depth = np.array([[1.0, 3.0], [5.0, np.nan]], dtype=np.float32)
    confidence = np.array([[2, 1], [0, 2]], dtype=np.uint8)

    # Zero-confidence and NaN samples drop out: (1*2 + 3*1) / 3
    assert confidence_weighted_depth(depth, confidence) == pytest.approx(5.0 / 3.0)
    assert confidence_weighted_depth(
        depth, confidence, min_level=ConfidenceLevel.HIGH
    ) == pytest.approx(1.0)

    mask = np.array([[0, 1], [1, 1]])
    assert confidence_weighted_depth(depth, confidence, mask=mask) == pytest.approx(3.0)


def test_confidence_weighted_depth_shape_mismatch():
    with pytest.raises(ValueError):
        confidence_weighted_depth(np.zeros((2, 2)), np.zeros((3, 3)))
