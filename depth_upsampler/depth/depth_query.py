"""
Depth lookups on processed depth rasters.

Used to probe the distance at a pixel (e.g. the image centre) and to
summarise depth over a region while ignoring unreliable samples.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
from numpy.typing import NDArray

from depth_upsampler.core.contracts import ConfidenceLevel


def depth_at_point(
    depth_map: NDArray[np.float32],
    x: int,
    y: int,
) -> Optional[float]:
    """Depth at pixel (x, y), or None outside the raster or on a hole."""
    h, w = depth_map.shape[:2]
    if not (0 <= x < w and 0 <= y < h):
        return None
    value = float(depth_map[y, x])
    return value if np.isfinite(value) else None


def depth_at_normalized_point(
    depth_map: NDArray[np.float32],
    u: float,
    v: float,
) -> Optional[float]:
    """Depth at normalised coordinates (u, v) in [0, 1], resolution independent."""
    h, w = depth_map.shape[:2]
    x = min(int(u * w), w - 1)
    y = min(int(v * h), h - 1)
    return depth_at_point(depth_map, x, y)


def depth_for_region(
    depth_map: NDArray[np.float32],
    mask: NDArray,
) -> Optional[float]:
    """Median depth over the non-zero pixels of ``mask``."""
    if mask is None or depth_map.shape[:2] != mask.shape[:2]:
        return None

    depths = depth_map[(mask > 0) & np.isfinite(depth_map)]
    if len(depths) == 0:
        return None

    return float(np.median(depths))


def confidence_weighted_depth(
    depth_map: NDArray[np.float32],
    confidence: NDArray,
    mask: Optional[NDArray] = None,
    min_level: ConfidenceLevel = ConfidenceLevel.LOW,
) -> Optional[float]:
    """
    Mean depth weighted by confidence.

    Confidence may be categorical (0-2) or bilinearly upscaled; samples
    below ``min_level`` or with zero weight are dropped.
    """
    if depth_map.shape[:2] != confidence.shape[:2]:
        raise ValueError(
            f"Depth {depth_map.shape[:2]} and confidence {confidence.shape[:2]} differ in size"
        )

    weights = np.asarray(confidence, dtype=np.float64)
    valid = np.isfinite(depth_map) & (weights >= float(min_level)) & (weights > 0)
    if mask is not None:
        valid &= mask > 0
    if not valid.any():
        return None

    return float(np.average(depth_map[valid], weights=weights[valid]))
