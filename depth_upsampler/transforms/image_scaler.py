"""
Bilinear Image Scaler.

Resamples a raster between arbitrary sizes with one code path for both
directions. OpenCV's INTER_LINEAR samples source coordinate
(x + 0.5) * src / dst - 0.5 with edge clamping. There is no anti-aliasing
prefilter, so large downscales can alias; the pipeline only downscales
color guides where that is acceptable.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
from numpy.typing import NDArray
import cv2

from depth_upsampler.core.contracts import Resolution
from depth_upsampler.core.errors import InvalidDimensionsError


class ImageScaler:
    """
    Bilinear resampler for (H, W) and (H, W, C) rasters.

    Output is float32, or float64 when the source is float64.
    """

    def resize(
        self,
        src: NDArray,
        width: int,
        height: int,
        out: Optional[NDArray] = None,
    ) -> NDArray:
        """
        Resample ``src`` to ``width`` x ``height``.

        Args:
            src: Source raster (H, W) or (H, W, C)
            width: Destination width
            height: Destination height
            out: Optional preallocated destination buffer

        Returns:
            Resampled raster (``out`` if given)

        Raises:
            InvalidDimensionsError: On empty source or non-positive target size
        """
        if src.ndim not in (2, 3):
            raise InvalidDimensionsError(f"Expected a 2-D or 3-D raster, got shape {src.shape}")
        source = Resolution.of(src)
        target = Resolution(width, height)

        dtype = np.float64 if src.dtype == np.float64 else np.float32
        src_f = np.ascontiguousarray(src, dtype=dtype)
        out_shape = target.shape + src.shape[2:]

        if out is None:
            out = np.empty(out_shape, dtype=dtype)
        elif out.shape != out_shape or out.dtype != dtype:
            raise InvalidDimensionsError(
                f"Output buffer has shape {out.shape} ({out.dtype}), expected {out_shape} ({np.dtype(dtype)})"
            )

        if source == target:
            np.copyto(out, src_f)
            return out

        cv2.resize(src_f, (target.width, target.height), dst=out, interpolation=cv2.INTER_LINEAR)
        return out

    def resize_to(
        self,
        src: NDArray,
        resolution: Resolution,
        out: Optional[NDArray] = None,
    ) -> NDArray:
        """Resample ``src`` to ``resolution``."""
        return self.resize(src, resolution.width, resolution.height, out=out)
