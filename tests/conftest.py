"""
Shared fixtures: small rasters so every test runs in milliseconds.
"""

import numpy as np
import pytest

from depth_upsampler.config import Config
from depth_upsampler.capture.frame_source import SyntheticFrameSource
from depth_upsampler.core.dispatch import ParallelDispatcher


DEPTH_SIZE = (16, 12)
COLOR_SIZE = (64, 48)
TARGET_SIZE = (32, 24)


@pytest.fixture
def small_config():
    return Config(
        upsample_enabled=False,
        depth_width=DEPTH_SIZE[0],
        depth_height=DEPTH_SIZE[1],
        color_width=COLOR_SIZE[0],
        color_height=COLOR_SIZE[1],
        upsampled_width=TARGET_SIZE[0],
        upsampled_height=TARGET_SIZE[1],
        kernel_diameter=3,
        num_workers=2,
        min_rows_per_band=4,
        profile_interval=3600.0,
    )


@pytest.fixture
def synthetic_source():
    return SyntheticFrameSource(depth_size=DEPTH_SIZE, color_size=COLOR_SIZE, fps=0)


@pytest.fixture
def make_bundle(synthetic_source):
    """Factory: make_bundle(frame_index) -> FrameBundle."""
    return synthetic_source.render


@pytest.fixture
def dispatcher():
    pool = ParallelDispatcher(num_workers=3, min_rows_per_band=2)
    yield pool
    pool.shutdown()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
