"""
Tests for the YCbCr 4:2:0 to RGB converter.
"""

import numpy as np
import pytest

from depth_upsampler.core.errors import ConversionError
from depth_upsampler.transforms.color_converter import ColorConverter


def test_white_reference_vector_float_planes():
    """Full luma with neutral chroma is pure white."""
    luma = np.ones((4, 6), dtype=np.float32)
    chroma = np.full((2, 3, 2), 0.5, dtype=np.float32)

    rgb = ColorConverter().convert(luma, chroma)

    assert rgb.shape == (4, 6, 3)
    assert rgb.dtype == np.float32
    assert np.allclose(rgb, 1.0, atol=1e-6)


def test_white_reference_vector_uint8_planes():
    """uint8 planes are normalised by 255; 128 chroma is just above neutral."""
    luma = np.full((4, 4), 255, dtype=np.uint8)
    chroma = np.full((2, 2, 2), 128, dtype=np.uint8)

    rgb = ColorConverter().convert(luma, chroma)

    offset = 128 / 255 - 0.5
    expected = np.array([
        1.0 + 1.4020 * offset,
        1.0 - 0.3441 * offset - 0.7141 * offset,
        1.0 + 1.7720 * offset,
    ])
    assert np.allclose(rgb.reshape(-1, 3), expected, atol=1e-5)


def test_red_chroma_vector():
    """Maximum Cr pushes red up and green down."""
    luma = np.full((2, 2), 0.5, dtype=np.float32)
    chroma = np.zeros((1, 1, 2), dtype=np.float32)
    chroma[..., 0] = 0.5
    chroma[..., 1] = 1.0

    rgb = ColorConverter().convert(luma, chroma)

    assert np.allclose(rgb[0, 0], [0.5 + 0.701, 0.5 - 0.35705, 0.5], atol=1e-5)


def test_luma_detail_is_kept_at_full_resolution():
    luma = np.zeros((4, 4), dtype=np.float32)
    luma[1, 2] = 1.0
    chroma = np.full((2, 2, 2), 0.5, dtype=np.float32)

    rgb = ColorConverter().convert(luma, chroma)

    assert np.allclose(rgb[1, 2], 1.0)
    assert np.allclose(rgb[0, 0], 0.0)


def test_parallel_dispatch_matches_single_thread(dispatcher, rng):
    luma = rng.integers(0, 256, size=(48, 64), dtype=np.uint8)
    chroma = rng.integers(0, 256, size=(24, 32, 2), dtype=np.uint8)

    single = ColorConverter().convert(luma, chroma)
    parallel = ColorConverter(dispatcher).convert(luma, chroma)

    assert np.array_equal(single, parallel)


def test_output_buffer_is_reused():
    luma = np.ones((4, 4), dtype=np.float32)
    chroma = np.full((2, 2, 2), 0.5, dtype=np.float32)
    out = np.zeros((4, 4, 3), dtype=np.float32)

    result = ColorConverter().convert(luma, chroma, out=out)

    assert result is out
    assert np.allclose(out, 1.0)


@pytest.mark.parametrize(
    "luma_shape, chroma_shape",
    [
        ((4, 4), (4, 4, 2)),   # chroma not subsampled
        ((4, 4), (2, 2)),      # chroma not interleaved
        ((4, 4), (2, 2, 3)),   # wrong channel count
        ((5, 4), (2, 2, 2)),   # odd luma height
        ((4, 4, 1), (2, 2, 2)),  # luma not 2-D
        ((0, 0), (0, 0, 2)),   # empty
    ],
)
def test_malformed_plane_geometry_raises(luma_shape, chroma_shape):
    luma = np.zeros(luma_shape, dtype=np.uint8)
    chroma = np.zeros(chroma_shape, dtype=np.uint8)

    with pytest.raises(ConversionError):
        ColorConverter().convert(luma, chroma)
