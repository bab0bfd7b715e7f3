"""
Tests for guided-filter regression and reconstruction.
"""

import numpy as np
import pytest

from depth_upsampler.core.errors import DimensionMismatchError
from depth_upsampler.depth.guided_filter import GuidedFilter, guide_luminance
from depth_upsampler.transforms.image_scaler import ImageScaler


def _clamped_window_mean(values, radius):
    """Brute-force window mean over in-bounds pixels only."""
    h, w = values.shape
    out = np.empty_like(values, dtype=np.float64)
    for y in range(h):
        for x in range(w):
            window = values[max(0, y - radius):y + radius + 1, max(0, x - radius):x + radius + 1]
            out[y, x] = window.mean()
    return out


def test_self_guided_regression_reconstructs_target(rng):
    """With the target as its own guide, a ~= 1 and b ~= 0."""
    target = rng.random((24, 32)).astype(np.float32)
    gf = GuidedFilter(kernel_diameter=5, epsilon=1e-8)

    coefficients = gf.regress(target, target)
    output = gf.reconstruct(target, coefficients)

    assert coefficients.shape == (24, 32, 2)
    assert np.allclose(coefficients[..., 0], 1.0, atol=1e-4)
    assert np.allclose(output, target, atol=1e-4)


def test_scaled_guide_recovers_linear_relation(rng):
    guide = rng.random((20, 20))
    target = (3.0 * guide + 2.0).astype(np.float32)
    gf = GuidedFilter(kernel_diameter=3, epsilon=1e-10)

    coefficients = gf.regress(target, guide)

    assert np.allclose(coefficients[..., 0], 3.0, atol=1e-3)
    assert np.allclose(coefficients[..., 1], 2.0, atol=1e-3)
    assert np.allclose(gf.reconstruct(guide, coefficients), target, atol=1e-3)


def test_huge_epsilon_flattens_to_window_mean(rng):
    """a -> 0, so the output degenerates to b = local mean of the target."""
    target = rng.random((6, 8)).astype(np.float32)
    guide = rng.random((6, 8)).astype(np.float32)
    gf = GuidedFilter(kernel_diameter=5, epsilon=1e12)

    coefficients = gf.regress(target, guide)
    output = gf.reconstruct(guide, coefficients)

    expected_mean = _clamped_window_mean(target.astype(np.float64), radius=2)
    assert np.abs(coefficients[..., 0]).max() < 1e-9
    assert np.allclose(coefficients[..., 1], expected_mean, atol=1e-5)
    assert np.allclose(output, expected_mean, atol=1e-5)


def test_flat_guide_gives_window_mean(rng):
    target = rng.random((5, 7)).astype(np.float32)
    guide = np.full((5, 7), 0.3, dtype=np.float32)

    coefficients = GuidedFilter(kernel_diameter=3, epsilon=1e-4).regress(target, guide)

    assert np.allclose(coefficients[..., 0], 0.0, atol=1e-6)
    assert np.allclose(coefficients[..., 1], _clamped_window_mean(target, radius=1), atol=1e-5)


def test_rgb_guide_is_reduced_to_luminance(rng):
    rgb = rng.random((8, 8, 3))
    target = rng.random((8, 8)).astype(np.float32)
    gf = GuidedFilter(kernel_diameter=3, epsilon=1e-3)

    from_rgb = gf.regress(target, rgb)
    from_luma = gf.regress(target, guide_luminance(rgb))

    assert np.allclose(from_rgb, from_luma)
    assert np.allclose(guide_luminance(np.ones((2, 2, 3))), 1.0)


def test_non_finite_depth_is_zeroed_before_regression():
    target = np.ones((6, 6), dtype=np.float32)
    target[2, 3] = np.nan
    guide = np.zeros((6, 6), dtype=np.float32)

    coefficients = GuidedFilter(kernel_diameter=3).regress(target, guide)

    assert np.isfinite(coefficients).all()


def test_reconstruction_at_higher_resolution():
    """Coefficients are sampled in normalised coordinates."""
    target = np.full((12, 16), 1.5, dtype=np.float32)
    guide_low = np.zeros((12, 16), dtype=np.float32)
    guide_high = np.zeros((48, 64), dtype=np.float32)

    output = GuidedFilter().upsample(target, guide_low, guide_high)

    assert output.shape == (48, 64)
    assert np.allclose(output, 1.5, atol=1e-5)


def test_step_edge_is_sharper_than_bilinear_upsampling():
    """A color edge co-located with a depth step keeps the step crisp."""
    guide_high = np.zeros((64, 64), dtype=np.float32)
    guide_high[:, 32:] = 1.0
    scaler = ImageScaler()
    guide_low = scaler.resize(guide_high, 16, 16)

    depth = np.full((16, 16), 1.0, dtype=np.float32)
    depth[:, 8:] = 3.0

    guided = GuidedFilter(kernel_diameter=5, epsilon=1e-4).upsample(depth, guide_low, guide_high)
    bilinear = scaler.resize(depth, 64, 64)

    def transitional(row):
        return int(np.sum((row > 1.1) & (row < 2.9)))

    assert transitional(bilinear[32]) == 4
    assert transitional(guided[32]) < transitional(bilinear[32])
    assert transitional(guided[32]) <= 1
    assert np.allclose(guided[32, :28], 1.0, atol=0.01)
    assert np.allclose(guided[32, 36:], 3.0, atol=0.01)


def test_parallel_dispatch_matches_single_thread(dispatcher, rng):
    target = rng.random((33, 21)).astype(np.float32)
    guide = rng.random((33, 21, 3)).astype(np.float32)
    guide_high = rng.random((66, 42, 3)).astype(np.float32)

    single = GuidedFilter().upsample(target, guide, guide_high)
    parallel = GuidedFilter(dispatcher=dispatcher).upsample(target, guide, guide_high)

    assert np.array_equal(single, parallel)


def test_regression_size_mismatch_raises():
    with pytest.raises(DimensionMismatchError):
        GuidedFilter().regress(np.zeros((10, 12)), np.zeros((10, 13)))


def test_reconstruction_rejects_malformed_coefficients():
    with pytest.raises(DimensionMismatchError):
        GuidedFilter().reconstruct(np.zeros((8, 8)), np.zeros((4, 4, 3)))


def test_reconstruction_rejects_aspect_mismatch():
    with pytest.raises(DimensionMismatchError):
        GuidedFilter().reconstruct(np.zeros((16, 64)), np.zeros((16, 16, 2)))


@pytest.mark.parametrize("diameter", [0, 4, -3])
def test_invalid_kernel_diameter(diameter):
    with pytest.raises(ValueError):
        GuidedFilter(kernel_diameter=diameter)


def test_invalid_epsilon():
    with pytest.raises(ValueError):
        GuidedFilter(epsilon=0.0)
