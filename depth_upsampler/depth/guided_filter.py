"""
Guided Filter Engine for joint depth upsampling.

Two phases:
- Regression: at depth resolution, fit T ~= a*G + b inside a square window
  around every pixel, where T is depth and G is the color guide.
- Reconstruction: at the target resolution, bilinearly interpolate (a, b)
  and evaluate a*G' + b against the high resolution guide G'.

Color edges in G' decide where the reconstructed depth changes sharply,
while the regression itself stays at the cheap low resolution.

Guidance is single-component: RGB guides are reduced to BT.601 luma
before either phase, and the coefficient raster always has two channels.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from depth_upsampler.core.contracts import Resolution
from depth_upsampler.core.dispatch import ParallelDispatcher
from depth_upsampler.core.errors import DimensionMismatchError, InvalidDimensionsError
from depth_upsampler.transforms.image_scaler import ImageScaler


LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def guide_luminance(guide: NDArray) -> NDArray[np.float64]:
    """Reduce a (H, W), (H, W, 1) or (H, W, 3+) guide to one float64 channel."""
    guide = np.asarray(guide, dtype=np.float64)
    if guide.ndim == 2:
        return guide
    if guide.ndim == 3 and guide.shape[2] == 1:
        return guide[..., 0]
    if guide.ndim == 3 and guide.shape[2] >= 3:
        return guide[..., :3] @ LUMA_WEIGHTS
    raise InvalidDimensionsError(f"Unsupported guide shape {guide.shape}")


class GuidedFilter:
    """
    Guided filter split into regression and reconstruction.

    Window statistics only average pixels inside the raster, so windows
    shrink at the borders instead of padding.
    """

    def __init__(
        self,
        kernel_diameter: int = 5,
        epsilon: float = 0.004,
        dispatcher: Optional[ParallelDispatcher] = None,
        scaler: Optional[ImageScaler] = None,
        aspect_tolerance: float = 0.1,
    ):
        """
        Initialize the filter.

        Args:
            kernel_diameter: Odd window width in pixels
            epsilon: Regularization added to the guide variance
            dispatcher: Row-band dispatcher for per-pixel stages
            scaler: Bilinear scaler used to sample coefficients
            aspect_tolerance: Allowed relative aspect difference between
                the coefficient raster and the reconstruction guide
        """
        if kernel_diameter < 1 or kernel_diameter % 2 == 0:
            raise ValueError(f"kernel_diameter must be a positive odd number, got {kernel_diameter}")
        if epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")

        self.kernel_diameter = kernel_diameter
        self.epsilon = epsilon
        self.aspect_tolerance = aspect_tolerance

        self._dispatcher = dispatcher or ParallelDispatcher(num_workers=1)
        self._scaler = scaler or ImageScaler()

        # Reused across frames
        self._window_counts: Optional[NDArray[np.float64]] = None
        self._coefficients_full: Optional[NDArray[np.float32]] = None

    @property
    def radius(self) -> int:
        return self.kernel_diameter // 2

    def _box_sum(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        return cv2.boxFilter(
            values,
            -1,
            (self.kernel_diameter, self.kernel_diameter),
            normalize=False,
            borderType=cv2.BORDER_CONSTANT,
        )

    def _window_mean(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        if self._window_counts is None or self._window_counts.shape != values.shape:
            self._window_counts = self._box_sum(np.ones(values.shape, dtype=np.float64))
        return self._box_sum(values) / self._window_counts

    # ============================================================
    # REGRESSION
    # ============================================================

    def regress(
        self,
        target: NDArray,
        guide: NDArray,
        out: Optional[NDArray[np.float32]] = None,
    ) -> NDArray[np.float32]:
        """
        Fit per-pixel linear coefficients relating guide to target.

        Args:
            target: Low resolution depth (H x W)
            guide: Guide at the same resolution (H x W or H x W x C)
            out: Optional preallocated H x W x 2 buffer

        Returns:
            H x W x 2 float32 raster of (a, b)

        Raises:
            DimensionMismatchError: If target and guide sizes differ
        """
        if target.ndim != 2:
            raise DimensionMismatchError(f"Target must be 2-D, got shape {target.shape}")
        target_res = Resolution.of(target)
        guide_res = Resolution.of(guide)
        if target_res != guide_res:
            raise DimensionMismatchError(
                f"Regression target {target_res} and guide {guide_res} differ in size"
            )
        if out is None:
            out = np.empty(target_res.shape + (2,), dtype=np.float32)
        elif out.shape != target_res.shape + (2,):
            raise DimensionMismatchError(
                f"Coefficient buffer has shape {out.shape}, expected {target_res.shape + (2,)}"
            )

        g = guide_luminance(guide)
        t = np.asarray(target, dtype=np.float64)
        invalid = ~np.isfinite(t)
        if invalid.any():
            logger.debug(f"Regression: zeroing {int(invalid.sum())} non-finite depth samples")
            t = np.where(invalid, 0.0, t)

        mean_g = self._window_mean(g)
        mean_t = self._window_mean(t)
        var_g = np.maximum(self._window_mean(g * g) - mean_g * mean_g, 0.0)
        cov_gt = self._window_mean(g * t) - mean_g * mean_t
        epsilon = self.epsilon

        def kernel(band: slice):
            a = cov_gt[band] / (var_g[band] + epsilon)
            out[band, :, 0] = a
            out[band, :, 1] = mean_t[band] - a * mean_g[band]

        self._dispatcher.dispatch(target_res.height, kernel)
        return out

    # ============================================================
    # RECONSTRUCTION
    # ============================================================

    def reconstruct(
        self,
        guide: NDArray,
        coefficients: NDArray,
        out: Optional[NDArray[np.float32]] = None,
    ) -> NDArray[np.float32]:
        """
        Apply interpolated coefficients to a full resolution guide.

        Coefficients are sampled in normalised coordinates, so the guide may
        have any resolution with a compatible aspect ratio.

        Args:
            guide: Reconstruction guide (H' x W' or H' x W' x C)
            coefficients: H x W x 2 raster from regress()
            out: Optional preallocated H' x W' float32 buffer

        Returns:
            H' x W' float32 reconstructed raster

        Raises:
            DimensionMismatchError: On malformed coefficients or aspect mismatch
        """
        if coefficients.ndim != 3 or coefficients.shape[2] != 2:
            raise DimensionMismatchError(
                f"Coefficients must be H x W x 2, got shape {coefficients.shape}"
            )
        coef_res = Resolution.of(coefficients)
        guide_res = Resolution.of(guide)
        if abs(guide_res.aspect / coef_res.aspect - 1.0) > self.aspect_tolerance:
            raise DimensionMismatchError(
                f"Guide {guide_res} aspect does not match coefficients {coef_res}"
            )
        if out is None:
            out = np.empty(guide_res.shape, dtype=np.float32)
        elif out.shape != guide_res.shape:
            raise DimensionMismatchError(
                f"Output buffer has shape {out.shape}, expected {guide_res.shape}"
            )

        g = guide_luminance(guide)
        if self._coefficients_full is None or self._coefficients_full.shape != guide_res.shape + (2,):
            self._coefficients_full = np.empty(guide_res.shape + (2,), dtype=np.float32)
        coef_full = self._scaler.resize_to(
            np.asarray(coefficients, dtype=np.float32),
            guide_res,
            out=self._coefficients_full,
        )

        def kernel(band: slice):
            out[band] = coef_full[band, :, 0] * g[band] + coef_full[band, :, 1]

        self._dispatcher.dispatch(guide_res.height, kernel)
        return out

    def upsample(
        self,
        target: NDArray,
        guide_low: NDArray,
        guide_full: NDArray,
    ) -> NDArray[np.float32]:
        """Regression on (target, guide_low) followed by reconstruction on guide_full."""
        coefficients = self.regress(target, guide_low)
        return self.reconstruct(guide_full, coefficients)
