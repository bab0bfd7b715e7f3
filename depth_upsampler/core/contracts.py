"""
Core data contracts for the depth upsampling pipeline.

All components exchange these types:
- FrameBundle: one capture instant from the frame source (read-only)
- ProcessedOutput: the rasters produced by one processing cycle
- PipelineState: counters and diagnostics for the orchestrator
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from .errors import InvalidDimensionsError


# ============================================================
# ENUMERATIONS
# ============================================================

class ConfidenceLevel(IntEnum):
    """Per-texel depth confidence reported by the sensor."""
    LOW = 0
    MEDIUM = 1
    HIGH = 2


# ============================================================
# GEOMETRY
# ============================================================

@dataclass(frozen=True)
class Resolution:
    """Raster size in pixels."""
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidDimensionsError(
                f"Invalid raster size {self.width}x{self.height}"
            )

    @classmethod
    def of(cls, raster: NDArray) -> Resolution:
        """Resolution of a (H, W) or (H, W, C) raster."""
        if raster.ndim < 2:
            raise InvalidDimensionsError(f"Raster must be at least 2-D, got shape {raster.shape}")
        return cls(width=int(raster.shape[1]), height=int(raster.shape[0]))

    @property
    def shape(self) -> Tuple[int, int]:
        """Numpy shape (rows, cols)."""
        return (self.height, self.width)

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def scale_intrinsics(
    intrinsics: NDArray[np.float32],
    source: Resolution,
    target: Resolution,
) -> NDArray[np.float32]:
    """
    Rescale a 3x3 pinhole intrinsics matrix from one image size to another.

    Focal lengths and principal point scale with the image axes, using the
    same pixel-centre convention as the image scaler.
    """
    sx = target.width / source.width
    sy = target.height / source.height
    scaled = np.array(intrinsics, dtype=np.float32, copy=True)
    scaled[0, 0] *= sx
    scaled[0, 2] = (scaled[0, 2] + 0.5) * sx - 0.5
    scaled[1, 1] *= sy
    scaled[1, 2] = (scaled[1, 2] + 0.5) * sy - 0.5
    return scaled


# ============================================================
# FRAME DATA
# ============================================================

@dataclass(frozen=True)
class FrameBundle:
    """
    Everything captured at one instant.

    Owned by the orchestrator for one processing cycle and replaced, never
    mutated, by the next bundle.
    """
    frame_id: int
    timestamp: float  # seconds

    # Low resolution depth (metres) and confidence, raw and smoothed
    depth: NDArray[np.float32]  # H_d x W_d
    depth_smoothed: NDArray[np.float32]  # H_d x W_d
    confidence: NDArray[np.uint8]  # H_d x W_d, ConfidenceLevel values
    confidence_smoothed: NDArray[np.uint8]  # H_d x W_d

    # High resolution biplanar 4:2:0 color
    color_luma: NDArray  # H_c x W_c
    color_chroma: NDArray  # H_c/2 x W_c/2 x 2 (Cb, Cr)

    # Camera
    intrinsics: NDArray[np.float32] = field(
        default_factory=lambda: np.eye(3, dtype=np.float32)
    )
    extrinsics: NDArray[np.float32] = field(
        default_factory=lambda: np.eye(4, dtype=np.float32)
    )
    euler_angles: NDArray[np.float32] = field(
        default_factory=lambda: np.zeros(3, dtype=np.float32)
    )
    camera_resolution: Optional[Tuple[int, int]] = None  # (width, height)

    @property
    def depth_resolution(self) -> Resolution:
        return Resolution.of(self.depth)

    @property
    def color_resolution(self) -> Resolution:
        return Resolution.of(self.color_luma)

    @property
    def intrinsics_resolution(self) -> Resolution:
        """Image size the intrinsics refer to (camera image if known, else color)."""
        if self.camera_resolution is not None:
            return Resolution(*self.camera_resolution)
        return self.color_resolution

    def select_depth(
        self,
        smoothed: bool,
    ) -> Tuple[NDArray[np.float32], NDArray[np.uint8]]:
        """Return (depth, confidence) from the raw or smoothed stream."""
        if smoothed:
            return self.depth_smoothed, self.confidence_smoothed
        return self.depth, self.confidence


@dataclass
class ProcessedOutput:
    """
    Rasters produced by one processing cycle.

    Guide, coefficient and target-color buffers are only present when the
    cycle ran the guided filter.
    """
    frame_id: int
    timestamp: float

    color_rgb: NDArray[np.float32]  # H_c x W_c x 3
    depth: NDArray[np.float32]
    confidence: NDArray  # uint8 levels, or float32 when upscaled

    upsampled: bool = False
    depth_source: str = "raw"  # raw | smoothed

    # Upsampling intermediates
    color_rgb_low: Optional[NDArray[np.float32]] = None  # depth resolution
    color_rgb_target: Optional[NDArray[np.float32]] = None  # target resolution
    coefficients: Optional[NDArray[np.float32]] = None  # H_d x W_d x 2 (a, b)

    # Camera, intrinsics expressed at the depth raster's resolution
    intrinsics: Optional[NDArray[np.float32]] = None
    extrinsics: Optional[NDArray[np.float32]] = None

    @property
    def resolution(self) -> Resolution:
        return Resolution.of(self.depth)

    def confidence_mask(
        self,
        min_level: ConfidenceLevel = ConfidenceLevel.MEDIUM,
    ) -> NDArray[np.bool_]:
        """Pixels whose (possibly interpolated) confidence reaches min_level."""
        return np.asarray(self.confidence, dtype=np.float32) >= float(min_level)

    def copy(self) -> ProcessedOutput:
        """Deep copy, safe to keep after the buffers are recycled."""
        def _copy(array):
            return None if array is None else array.copy()

        return replace(
            self,
            color_rgb=self.color_rgb.copy(),
            depth=self.depth.copy(),
            confidence=self.confidence.copy(),
            color_rgb_low=_copy(self.color_rgb_low),
            color_rgb_target=_copy(self.color_rgb_target),
            coefficients=_copy(self.coefficients),
            intrinsics=_copy(self.intrinsics),
            extrinsics=_copy(self.extrinsics),
        )


# ============================================================
# PIPELINE STATE
# ============================================================

@dataclass
class PipelineState:
    """Diagnostics for the orchestrator."""
    frames_received: int = 0
    cycles_completed: int = 0
    last_frame_id: Optional[int] = None
    last_cycle_latency_ms: float = 0.0

    # Failure tracking
    consecutive_failures: int = 0
    last_failure_reason: Optional[str] = None
