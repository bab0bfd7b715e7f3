"""
Tests for the frame queue, the pump thread and the frame sources.
"""

import numpy as np
import pytest

from depth_upsampler.capture import get_source, list_sources
from depth_upsampler.capture.frame_queue import FramePump, FrameQueue
from depth_upsampler.capture.frame_source import ReplayFrameSource, SyntheticFrameSource
from depth_upsampler.core.contracts import ConfidenceLevel


def test_full_queue_drops_oldest(make_bundle):
    frame_queue = FrameQueue(max_frames=2)

    for index in range(4):
        assert frame_queue.put(make_bundle(index))

    assert len(frame_queue) == 2
    assert frame_queue.dropped_frames == 2
    assert frame_queue.get(timeout=0).frame_id == 2
    assert frame_queue.get(timeout=0).frame_id == 3


def test_get_times_out_on_empty_queue():
    frame_queue = FrameQueue()

    assert frame_queue.get(timeout=0) is None
    assert frame_queue.get(timeout=0.01) is None


def test_closed_queue_drains_then_returns_none(make_bundle):
    frame_queue = FrameQueue()
    frame_queue.put(make_bundle(0))
    frame_queue.close()

    assert not frame_queue.put(make_bundle(1))
    assert frame_queue.get().frame_id == 0
    # Does not block once closed
    assert frame_queue.get() is None
    assert frame_queue.is_closed


def test_invalid_queue_size():
    with pytest.raises(ValueError):
        FrameQueue(max_frames=0)


def test_pump_feeds_queue_and_closes_when_source_ends():
    source = SyntheticFrameSource(depth_size=(16, 12), color_size=(64, 48), fps=0, max_frames=3)
    frame_queue = FrameQueue(max_frames=8)
    pump = FramePump(source, frame_queue)

    assert pump.start()
    received = []
    while True:
        bundle = frame_queue.get(timeout=2.0)
        if bundle is None:
            break
        received.append(bundle.frame_id)
    pump.stop()

    assert received == [0, 1, 2]
    assert pump.frames_pushed == 3
    assert frame_queue.is_closed


def test_synthetic_bundle_geometry(make_bundle):
    bundle = make_bundle(5)

    assert bundle.frame_id == 5
    assert bundle.depth.shape == (12, 16)
    assert bundle.depth.dtype == np.float32
    assert bundle.confidence.shape == (12, 16)
    assert bundle.color_luma.shape == (48, 64)
    assert bundle.color_chroma.shape == (24, 32, 2)
    assert bundle.depth_smoothed.shape == bundle.depth.shape
    assert set(np.unique(bundle.confidence)) <= {int(level) for level in ConfidenceLevel}
    assert bundle.depth.min() >= 1.0 - 1e-6
    assert bundle.depth.max() <= 3.0 + 1e-6
    assert bundle.intrinsics_resolution.shape == (48, 64)


def test_replay_source_reads_recordings_in_order(tmp_path, make_bundle):
    for index in range(2):
        bundle = make_bundle(index)
        np.savez(
            tmp_path / f"frame_{index:04d}.npz",
            depth=bundle.depth,
            confidence=bundle.confidence,
            color_luma=bundle.color_luma,
            color_chroma=bundle.color_chroma,
            intrinsics=bundle.intrinsics,
        )
    source = ReplayFrameSource(str(tmp_path))

    assert source.start()
    first = source.get_frame()
    second = source.get_frame()

    assert first.frame_id == 0 and second.frame_id == 1
    assert np.array_equal(second.depth, make_bundle(1).depth)
    # Smoothed streams fall back to the raw ones
    assert np.array_equal(first.depth_smoothed, first.depth)
    assert source.get_frame() is None
    assert source.is_exhausted
    assert source.resolution[0].shape == (12, 16)


def test_replay_source_without_recordings(tmp_path):
    assert not ReplayFrameSource(str(tmp_path)).start()
    assert not ReplayFrameSource(str(tmp_path / "missing")).start()


def test_source_registry(small_config):
    assert list_sources() == ["synthetic", "replay"]

    source = get_source("synthetic", small_config)
    assert isinstance(source, SyntheticFrameSource)

    with pytest.raises(ValueError):
        get_source("lidar", small_config)
    with pytest.raises(ValueError):
        get_source("replay", small_config)
