"""
YCbCr 4:2:0 to RGB Format Converter.

The camera delivers color as a full-resolution luma plane plus an
interleaved Cb/Cr plane at half resolution on both axes. The guided filter
needs linear RGB, so each pixel is converted independently with a fixed
full-range BT.601 transform.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
from numpy.typing import NDArray

from depth_upsampler.core.dispatch import ParallelDispatcher
from depth_upsampler.core.errors import ConversionError
from depth_upsampler.transforms.image_scaler import ImageScaler


# Full-range BT.601, chroma centred on 0.5
CHROMA_OFFSET = 0.5
CR_TO_R = 1.4020
CB_TO_G = -0.3441
CR_TO_G = -0.7141
CB_TO_B = 1.7720


def _normalize(plane: NDArray) -> NDArray[np.float32]:
    """uint8 planes to [0, 1]; float planes are assumed normalised already."""
    if plane.dtype == np.uint8:
        return plane.astype(np.float32) * np.float32(1.0 / 255.0)
    return np.asarray(plane, dtype=np.float32)


class ColorConverter:
    """
    Converts biplanar YCbCr frames to float32 RGB.

    Chroma is sampled bilinearly at each luma pixel centre, the same way
    a linear texture sampler would read the half-resolution plane.
    """

    def __init__(
        self,
        dispatcher: Optional[ParallelDispatcher] = None,
        scaler: Optional[ImageScaler] = None,
    ):
        self._dispatcher = dispatcher or ParallelDispatcher(num_workers=1)
        self._scaler = scaler or ImageScaler()

        # Reused across frames
        self._chroma_full: Optional[NDArray[np.float32]] = None

    @staticmethod
    def validate(luma: NDArray, chroma: NDArray):
        """
        Check plane geometry.

        Raises:
            ConversionError: If the planes are not a 4:2:0 biplanar pair
        """
        if luma.ndim != 2:
            raise ConversionError(f"Luma plane must be 2-D, got shape {luma.shape}")
        h, w = luma.shape
        if h == 0 or w == 0 or h % 2 or w % 2:
            raise ConversionError(f"Luma plane must have even, non-zero size, got {w}x{h}")
        if chroma.ndim != 3 or chroma.shape[2] != 2:
            raise ConversionError(
                f"Chroma plane must be H x W x 2 (Cb, Cr), got shape {chroma.shape}"
            )
        if chroma.shape[:2] != (h // 2, w // 2):
            raise ConversionError(
                f"Chroma plane {chroma.shape[1]}x{chroma.shape[0]} does not match "
                f"luma {w}x{h} (expected {w // 2}x{h // 2})"
            )

    def convert(
        self,
        luma: NDArray,
        chroma: NDArray,
        out: Optional[NDArray[np.float32]] = None,
    ) -> NDArray[np.float32]:
        """
        Convert one frame to RGB.

        Args:
            luma: Y plane (H x W), uint8 or float in [0, 1]
            chroma: Interleaved CbCr plane (H/2 x W/2 x 2)
            out: Optional preallocated H x W x 3 float32 buffer

        Returns:
            H x W x 3 float32 RGB (not clipped)
        """
        self.validate(luma, chroma)
        h, w = luma.shape

        if out is None:
            out = np.empty((h, w, 3), dtype=np.float32)
        elif out.shape != (h, w, 3):
            raise ConversionError(f"Output buffer has shape {out.shape}, expected {(h, w, 3)}")

        if self._chroma_full is None or self._chroma_full.shape != (h, w, 2):
            self._chroma_full = np.empty((h, w, 2), dtype=np.float32)

        y = _normalize(luma)
        chroma_full = self._scaler.resize(_normalize(chroma), w, h, out=self._chroma_full)

        def kernel(band: slice):
            y_band = y[band]
            cb = chroma_full[band, :, 0] - CHROMA_OFFSET
            cr = chroma_full[band, :, 1] - CHROMA_OFFSET
            rgb = out[band]
            rgb[..., 0] = y_band + CR_TO_R * cr
            rgb[..., 1] = y_band + CB_TO_G * cb + CR_TO_G * cr
            rgb[..., 2] = y_band + CB_TO_B * cb

        self._dispatcher.dispatch(h, kernel)
        return out
