"""
Frame sources.

The physical sensor lives outside this package. A source only has to
produce FrameBundle values; the pipeline does not care where they come from.

To add a new source:
1. Inherit from FrameSource
2. Implement start(), stop(), get_frame() and resolution
3. Register it in capture/__init__.py SOURCES dict
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from depth_upsampler.core.contracts import ConfidenceLevel, FrameBundle, Resolution


class FrameSource(ABC):
    """Abstract base class for frame bundle producers."""

    @abstractmethod
    def start(self) -> bool:
        """Start producing frames. Returns True on success."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release the source."""
        pass

    @abstractmethod
    def get_frame(self) -> Optional[FrameBundle]:
        """
        Next frame bundle.

        Returns None when no frame is available yet or the source is
        exhausted (see ``is_exhausted``).
        """
        pass

    @property
    @abstractmethod
    def resolution(self) -> Tuple[Resolution, Resolution]:
        """(depth resolution, color resolution)."""
        pass

    @property
    def is_exhausted(self) -> bool:
        """True once a finite source has delivered its last frame."""
        return False


class SyntheticFrameSource(FrameSource):
    """
    Procedural scene: a bright box in front of a darker background.

    The box is nearer than the background, so depth has a sharp step that
    lines up exactly with the color edge. The box drifts horizontally from
    frame to frame.
    """

    def __init__(
        self,
        depth_size: Tuple[int, int] = (256, 192),
        color_size: Tuple[int, int] = (1920, 1440),
        fps: float = 0.0,
        max_frames: Optional[int] = None,
        near_depth: float = 1.0,
        far_depth: float = 3.0,
    ):
        """
        Initialize synthetic source.

        Args:
            depth_size: Depth raster (width, height)
            color_size: Color raster (width, height), must be even
            fps: Frame pacing (0 = as fast as requested)
            max_frames: Stop after this many frames (None = endless)
            near_depth: Box depth in metres
            far_depth: Background depth in metres
        """
        self.depth_res = Resolution(*depth_size)
        self.color_res = Resolution(*color_size)
        self.fps = fps
        self.max_frames = max_frames
        self.near_depth = near_depth
        self.far_depth = far_depth

        self._is_running = False
        self._frame_count = 0
        self._last_frame_time = 0.0

    def start(self) -> bool:
        self._is_running = True
        self._frame_count = 0
        logger.info(f"Synthetic source started: depth {self.depth_res}, color {self.color_res}")
        return True

    def stop(self) -> None:
        self._is_running = False
        logger.info("Synthetic source stopped")

    @property
    def resolution(self) -> Tuple[Resolution, Resolution]:
        return (self.depth_res, self.color_res)

    @property
    def is_exhausted(self) -> bool:
        return self.max_frames is not None and self._frame_count >= self.max_frames

    def _box(self, frame_index: int) -> Tuple[float, float, float, float]:
        """Box extent in normalised coordinates (x0, y0, x1, y1)."""
        shift = 0.1 * np.sin(frame_index * 0.1)
        return (0.3 + shift, 0.25, 0.6 + shift, 0.75)

    @staticmethod
    def _box_mask(res: Resolution, box: Tuple[float, float, float, float]) -> NDArray[np.bool_]:
        xs = (np.arange(res.width) + 0.5) / res.width
        ys = (np.arange(res.height) + 0.5) / res.height
        inside_x = (xs >= box[0]) & (xs < box[2])
        inside_y = (ys >= box[1]) & (ys < box[3])
        return inside_y[:, None] & inside_x[None, :]

    def render(self, frame_index: int) -> FrameBundle:
        """Render one bundle without pacing or bookkeeping."""
        box = self._box(frame_index)

        # Color: dark horizontal gradient, bright box
        color_mask = self._box_mask(self.color_res, box)
        gradient = np.linspace(40, 90, self.color_res.width, dtype=np.float32)
        luma = np.tile(gradient, (self.color_res.height, 1))
        luma[color_mask] = 220.0
        luma = luma.astype(np.uint8)

        chroma_res = Resolution(self.color_res.width // 2, self.color_res.height // 2)
        chroma = np.full(chroma_res.shape + (2,), 128, dtype=np.uint8)
        chroma[self._box_mask(chroma_res, box)] = (100, 160)

        # Depth: near box, far background, low confidence on the edge
        depth_mask = self._box_mask(self.depth_res, box)
        depth = np.where(depth_mask, self.near_depth, self.far_depth).astype(np.float32)
        depth_smoothed = cv2.GaussianBlur(depth, (5, 5), 0)

        edges = cv2.Canny(depth_mask.astype(np.uint8) * 255, 50, 150) > 0
        confidence = np.full(self.depth_res.shape, ConfidenceLevel.HIGH, dtype=np.uint8)
        confidence[edges] = ConfidenceLevel.LOW
        confidence_smoothed = np.where(edges, ConfidenceLevel.MEDIUM, ConfidenceLevel.HIGH).astype(np.uint8)

        focal = 1.2 * self.color_res.width
        intrinsics = np.array(
            [
                [focal, 0.0, self.color_res.width / 2.0],
                [0.0, focal, self.color_res.height / 2.0],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float32,
        )

        return FrameBundle(
            frame_id=frame_index,
            timestamp=time.time(),
            depth=depth,
            depth_smoothed=depth_smoothed,
            confidence=confidence,
            confidence_smoothed=confidence_smoothed,
            color_luma=luma,
            color_chroma=chroma,
            intrinsics=intrinsics,
            camera_resolution=(self.color_res.width, self.color_res.height),
        )

    def get_frame(self) -> Optional[FrameBundle]:
        if not self._is_running or self.is_exhausted:
            return None

        if self.fps > 0:
            wait = self._last_frame_time + 1.0 / self.fps - time.perf_counter()
            if wait > 0:
                time.sleep(wait)
            self._last_frame_time = time.perf_counter()

        bundle = self.render(self._frame_count)
        self._frame_count += 1
        return bundle


class ReplayFrameSource(FrameSource):
    """
    Replays recorded bundles from ``.npz`` files, in file name order.

    Array names match FrameBundle fields. ``depth_smoothed`` and
    ``confidence_smoothed`` fall back to the raw streams when absent.
    """

    REQUIRED_KEYS = ("depth", "confidence", "color_luma", "color_chroma")

    def __init__(self, directory: str, loop: bool = False):
        self.directory = Path(directory)
        self.loop = loop

        self._files: List[Path] = []
        self._index = 0
        self._is_running = False
        self._resolution: Optional[Tuple[Resolution, Resolution]] = None

    def start(self) -> bool:
        if not self.directory.is_dir():
            logger.error(f"Replay directory not found: {self.directory}")
            return False

        self._files = sorted(self.directory.glob("*.npz"))
        if not self._files:
            logger.error(f"No .npz recordings in {self.directory}")
            return False

        self._index = 0
        self._is_running = True
        logger.info(f"Replay source started: {len(self._files)} frames from {self.directory}")
        return True

    def stop(self) -> None:
        self._is_running = False
        logger.info("Replay source stopped")

    @property
    def resolution(self) -> Tuple[Resolution, Resolution]:
        if self._resolution is None:
            raise RuntimeError("Resolution unknown until the first frame is read")
        return self._resolution

    @property
    def is_exhausted(self) -> bool:
        return not self.loop and self._index >= len(self._files)

    def _load(self, path: Path, frame_id: int) -> FrameBundle:
        with np.load(path) as data:
            missing = [key for key in self.REQUIRED_KEYS if key not in data]
            if missing:
                raise KeyError(f"{path.name} is missing arrays: {', '.join(missing)}")

            depth = data["depth"].astype(np.float32)
            confidence = data["confidence"].astype(np.uint8)
            extras = {}
            for key in ("intrinsics", "extrinsics", "euler_angles"):
                if key in data:
                    extras[key] = data[key].astype(np.float32)
            if "camera_resolution" in data:
                extras["camera_resolution"] = tuple(int(v) for v in data["camera_resolution"])

            return FrameBundle(
                frame_id=int(data["frame_id"]) if "frame_id" in data else frame_id,
                timestamp=float(data["timestamp"]) if "timestamp" in data else time.time(),
                depth=depth,
                depth_smoothed=data["depth_smoothed"].astype(np.float32) if "depth_smoothed" in data else depth,
                confidence=confidence,
                confidence_smoothed=(
                    data["confidence_smoothed"].astype(np.uint8)
                    if "confidence_smoothed" in data else confidence
                ),
                color_luma=data["color_luma"],
                color_chroma=data["color_chroma"],
                **extras,
            )

    def get_frame(self) -> Optional[FrameBundle]:
        if not self._is_running:
            return None
        if self._index >= len(self._files):
            if not self.loop:
                return None
            self._index = 0

        path = self._files[self._index]
        bundle = self._load(path, self._index)
        self._index += 1

        if self._resolution is None:
            self._resolution = (bundle.depth_resolution, bundle.color_resolution)
        return bundle
