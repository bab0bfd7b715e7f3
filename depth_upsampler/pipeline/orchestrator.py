"""
Pipeline Orchestrator.

Runs one processing cycle per incoming frame bundle, or per toggle change
(reusing the most recent bundle), in strict order:

1. Select raw or smoothed depth/confidence
2. Convert YCbCr color to RGB
3. Upsampling off: publish the selected depth/confidence unchanged
4. Upsampling on:
   a. Downscale RGB to depth size (regression guide)
   b. Downscale RGB to target size (reconstruction guide)
   c. Upscale confidence to target size
   d. Guided-filter regression at depth size
   e. Guided-filter reconstruction at target size
   f. Publish the reconstructed depth and upscaled confidence

Cycles never overlap. A failed cycle leaves the previous output published.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional
import numpy as np
from loguru import logger

from depth_upsampler.config import Config
from depth_upsampler.core.contracts import (
    FrameBundle,
    PipelineState,
    ProcessedOutput,
    Resolution,
    scale_intrinsics,
)
from depth_upsampler.core.dispatch import ParallelDispatcher
from depth_upsampler.core.errors import DimensionMismatchError, UpsamplingError
from depth_upsampler.capture.frame_queue import FrameQueue
from depth_upsampler.transforms.color_converter import ColorConverter
from depth_upsampler.transforms.image_scaler import ImageScaler
from depth_upsampler.depth.guided_filter import GuidedFilter
from .buffers import DoubleBuffer, WorkingBuffers
from .profiler import PipelineProfiler


class PipelineOrchestrator:
    """
    Main pipeline orchestrator.

    Guarantees:
    - At most one cycle runs at a time
    - Stages run in order, each finishing before the next starts
    - Readers only ever see complete cycles (double-buffered output)
    - Errors leave the last good output in place
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        dispatcher: Optional[ParallelDispatcher] = None,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            config: Pipeline configuration
            dispatcher: Shared row-band dispatcher (created from config if None)

        Raises:
            BackendInitializationError: If the worker pool cannot be created
        """
        self.config = config or Config()

        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher or ParallelDispatcher(
            num_workers=self.config.num_workers,
            min_rows_per_band=self.config.min_rows_per_band,
        )

        # Components
        self._scaler = ImageScaler()
        self._converter = ColorConverter(self._dispatcher, self._scaler)
        self._guided_filter = GuidedFilter(
            kernel_diameter=self.config.kernel_diameter,
            epsilon=self.config.epsilon,
            dispatcher=self._dispatcher,
            scaler=self._scaler,
            aspect_tolerance=self.config.aspect_tolerance,
        )

        # Toggles
        self._upsample_enabled = self.config.upsample_enabled
        self._use_smoothed_depth = self.config.use_smoothed_depth

        # Cycle state
        self._lock = threading.RLock()
        self._last_bundle: Optional[FrameBundle] = None
        self._output = DoubleBuffer()
        self._state = PipelineState()
        self._profiler = PipelineProfiler(interval=self.config.profile_interval)

        logger.info(
            f"Pipeline orchestrator initialized: target {self.config.upsampled_resolution}, "
            f"kernel {self.config.kernel_diameter}, eps {self.config.epsilon}, "
            f"{self._dispatcher.num_workers} workers"
        )

    def start(self) -> bool:
        """
        Prepare the pipeline.

        Returns:
            True if started successfully
        """
        logger.info(
            f"Pipeline started (upsampling {'ON' if self._upsample_enabled else 'OFF'}, "
            f"{'smoothed' if self._use_smoothed_depth else 'raw'} depth)"
        )
        return True

    def stop(self):
        """Stop the pipeline and release the worker pool."""
        if self._owns_dispatcher:
            self._dispatcher.shutdown()
        logger.info("Pipeline stopped")

    # ============================================================
    # INPUT
    # ============================================================

    def on_new_frame(self, bundle: FrameBundle) -> ProcessedOutput:
        """
        Process ``bundle`` and, once it succeeded, remember it for toggles.

        Raises:
            UpsamplingError: If the bundle cannot be processed; the
                previous output and the last good bundle are kept
        """
        with self._lock:
            self._state.frames_received += 1
            output = self._process(bundle)
            self._last_bundle = bundle
            return output

    def process_last_bundle(self) -> Optional[ProcessedOutput]:
        """Reprocess the most recent bundle with the current toggles (None if no frame yet)."""
        with self._lock:
            if self._last_bundle is None:
                return None
            return self._process(self._last_bundle)

    def run(
        self,
        frame_queue: FrameQueue,
        stop_event: Optional[threading.Event] = None,
        max_frames: Optional[int] = None,
        poll_interval: float = 0.1,
        on_output: Optional[Callable[[ProcessedOutput], None]] = None,
    ) -> int:
        """
        Consume bundles from ``frame_queue`` until it is closed and drained,
        ``stop_event`` is set, or ``max_frames`` cycles succeeded.

        Failed cycles are logged and skipped. ``on_output`` receives a copy
        of each new output, outside the output read lock, so it may toggle
        the pipeline or keep the rasters.

        Returns:
            Number of successfully processed frames
        """
        processed = 0
        while stop_event is None or not stop_event.is_set():
            if max_frames is not None and processed >= max_frames:
                break

            bundle = frame_queue.get(timeout=poll_interval)
            if bundle is None:
                if frame_queue.is_closed and len(frame_queue) == 0:
                    break
                continue

            try:
                output = self.on_new_frame(bundle)
            except UpsamplingError:
                continue
            processed += 1
            self._profiler.log_if_ready()

            if on_output is not None:
                with self.read_output() as latest:
                    snapshot = output.copy() if latest is output else None
                if snapshot is not None:
                    on_output(snapshot)

        logger.info(f"Pipeline loop finished after {processed} frames")
        return processed

    # ============================================================
    # CONFIGURATION TOGGLES
    # ============================================================

    def set_upsampling_enabled(self, enabled: bool) -> Optional[ProcessedOutput]:
        """Enable or disable guided-filter upsampling and reprocess the last bundle."""
        with self._lock:
            self._upsample_enabled = bool(enabled)
            logger.info(f"Depth upsampling: {'ON' if enabled else 'OFF'}")
            return self.process_last_bundle()

    def set_use_smoothed_depth(self, smoothed: bool) -> Optional[ProcessedOutput]:
        """Switch between raw and smoothed depth and reprocess the last bundle."""
        with self._lock:
            self._use_smoothed_depth = bool(smoothed)
            logger.info(f"Depth source: {'smoothed' if smoothed else 'raw'}")
            return self.process_last_bundle()

    @property
    def upsample_enabled(self) -> bool:
        return self._upsample_enabled

    @property
    def use_smoothed_depth(self) -> bool:
        return self._use_smoothed_depth

    # ============================================================
    # OUTPUT
    # ============================================================

    @property
    def latest_output(self) -> Optional[ProcessedOutput]:
        """Most recent complete output (copy it before keeping it around)."""
        return self._output.latest

    @contextmanager
    def read_output(self) -> Iterator[Optional[ProcessedOutput]]:
        """Hold the latest output; its buffers are not recycled until released."""
        with self._output.read() as output:
            yield output

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def profiler(self) -> PipelineProfiler:
        return self._profiler

    # ============================================================
    # PROCESSING
    # ============================================================

    def _validate(self, bundle: FrameBundle):
        """Geometry checks done before any work is dispatched."""
        ColorConverter.validate(bundle.color_luma, bundle.color_chroma)

        depth, confidence = bundle.select_depth(self._use_smoothed_depth)
        if depth.ndim != 2:
            raise DimensionMismatchError(f"Depth must be 2-D, got shape {depth.shape}")
        if depth.shape != confidence.shape[:2]:
            raise DimensionMismatchError(
                f"Depth {depth.shape} and confidence {confidence.shape} differ in size"
            )

        if self._upsample_enabled:
            depth_res = Resolution.of(depth)
            target = self.config.upsampled_resolution
            if abs(target.aspect / depth_res.aspect - 1.0) > self.config.aspect_tolerance:
                raise DimensionMismatchError(
                    f"Upsample target {target} aspect does not match depth {depth_res}"
                )

    def _process(self, bundle: FrameBundle) -> ProcessedOutput:
        smoothed = self._use_smoothed_depth
        upsample = self._upsample_enabled
        start = time.perf_counter()

        try:
            self._validate(bundle)
            buffers = self._output.acquire_back()
            try:
                output = self._run_cycle(bundle, buffers, upsample, smoothed)
            except BaseException:
                self._output.abandon()
                raise
            self._output.publish(output)
        except Exception as e:
            self._state.consecutive_failures += 1
            self._state.last_failure_reason = f"{type(e).__name__}: {e}"
            logger.error(f"Frame {bundle.frame_id} failed, keeping previous output: {e}")
            raise

        latency_ms = (time.perf_counter() - start) * 1000
        self._profiler.record("total", latency_ms)
        self._state.cycles_completed += 1
        self._state.consecutive_failures = 0
        self._state.last_frame_id = bundle.frame_id
        self._state.last_cycle_latency_ms = latency_ms
        logger.debug(
            f"Frame {bundle.frame_id}: {output.resolution} depth "
            f"({'upsampled' if upsample else 'passthrough'}) in {latency_ms:.1f}ms"
        )
        return output

    def _run_cycle(
        self,
        bundle: FrameBundle,
        buffers: WorkingBuffers,
        upsample: bool,
        smoothed: bool,
    ) -> ProcessedOutput:
        depth, confidence = bundle.select_depth(smoothed)
        depth_res = Resolution.of(depth)
        color_res = bundle.color_resolution

        with self._profiler.measure("convert"):
            color_rgb = self._converter.convert(
                bundle.color_luma,
                bundle.color_chroma,
                out=buffers.ensure_color_buffers(color_res),
            )

        if not upsample:
            depth_out = buffers.ensure("depth", depth_res.shape, np.float32)
            np.copyto(depth_out, depth)
            confidence_out = buffers.ensure("confidence", confidence.shape, confidence.dtype)
            np.copyto(confidence_out, confidence)

            return ProcessedOutput(
                frame_id=bundle.frame_id,
                timestamp=bundle.timestamp,
                color_rgb=color_rgb,
                depth=depth_out,
                confidence=confidence_out,
                upsampled=False,
                depth_source="smoothed" if smoothed else "raw",
                intrinsics=scale_intrinsics(bundle.intrinsics, bundle.intrinsics_resolution, depth_res),
                extrinsics=np.array(bundle.extrinsics, dtype=np.float32),
            )

        target = self.config.upsampled_resolution
        rgb_low, rgb_target, confidence_up, coefficients, depth_up = (
            buffers.ensure_upsampling_buffers(depth_res, target)
        )

        # Two distinct guides: regression at depth size, reconstruction at target size
        with self._profiler.measure("downscale"):
            self._scaler.resize_to(color_rgb, depth_res, out=rgb_low)
            self._scaler.resize_to(color_rgb, target, out=rgb_target)

        with self._profiler.measure("confidence"):
            self._scaler.resize_to(confidence, target, out=confidence_up)

        with self._profiler.measure("regression"):
            self._guided_filter.regress(depth, rgb_low, out=coefficients)

        with self._profiler.measure("reconstruction"):
            self._guided_filter.reconstruct(rgb_target, coefficients, out=depth_up)

        return ProcessedOutput(
            frame_id=bundle.frame_id,
            timestamp=bundle.timestamp,
            color_rgb=color_rgb,
            depth=depth_up,
            confidence=confidence_up,
            upsampled=True,
            depth_source="smoothed" if smoothed else "raw",
            color_rgb_low=rgb_low,
            color_rgb_target=rgb_target,
            coefficients=coefficients,
            intrinsics=scale_intrinsics(bundle.intrinsics, bundle.intrinsics_resolution, target),
            extrinsics=np.array(bundle.extrinsics, dtype=np.float32),
        )
