"""
Row-band parallel dispatch for per-pixel kernels.

Color conversion and the guided-filter coefficient math have no
cross-pixel dependency within a stage, so their output rows are split into
bands and run on a thread pool. numpy releases the GIL inside its inner
loops, so bands really do run concurrently. Resampling is left to
cv2.resize, which parallelises internally.

dispatch() returns only once every band has finished: it is the barrier
between pipeline stages.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from loguru import logger

from .errors import BackendInitializationError


class ParallelDispatcher:
    """
    Runs a kernel over row bands of an output raster.

    The kernel receives a ``slice`` of output rows and must only write
    those rows.
    """

    def __init__(
        self,
        num_workers: Optional[int] = None,
        min_rows_per_band: int = 32,
    ):
        """
        Initialize the dispatcher.

        Args:
            num_workers: Worker threads (None = one per CPU)
            min_rows_per_band: Smallest band handed to a worker

        Raises:
            BackendInitializationError: If the worker pool cannot be created
        """
        if num_workers is None:
            num_workers = os.cpu_count() or 1
        if num_workers < 1:
            raise BackendInitializationError(
                f"Need at least one worker thread, got {num_workers}"
            )
        if min_rows_per_band < 1:
            raise BackendInitializationError(
                f"min_rows_per_band must be positive, got {min_rows_per_band}"
            )

        self.num_workers = num_workers
        self.min_rows_per_band = min_rows_per_band

        self._executor: Optional[ThreadPoolExecutor] = None
        if num_workers > 1:
            try:
                self._executor = ThreadPoolExecutor(
                    max_workers=num_workers,
                    thread_name_prefix="depth-band",
                )
            except (RuntimeError, ValueError) as e:
                raise BackendInitializationError(f"Failed to start worker pool: {e}") from e

        logger.debug(
            f"Parallel dispatcher ready: {num_workers} workers, "
            f">= {min_rows_per_band} rows per band"
        )

    def bands(self, rows: int) -> List[slice]:
        """Split ``rows`` output rows into contiguous bands."""
        if rows <= 0:
            return []
        count = max(1, min(self.num_workers, rows // self.min_rows_per_band))
        step = -(-rows // count)
        return [slice(start, min(start + step, rows)) for start in range(0, rows, step)]

    def dispatch(self, rows: int, kernel: Callable[[slice], None]) -> None:
        """
        Run ``kernel`` on every band and wait for all of them.

        The first exception raised by a band is re-raised after every
        band has stopped, so no worker is still writing when the caller
        sees the error.
        """
        bands = self.bands(rows)
        if self._executor is None or len(bands) == 1:
            for band in bands:
                kernel(band)
            return

        futures = [self._executor.submit(kernel, band) for band in bands]
        wait(futures)
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

    def shutdown(self):
        """Stop the worker pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.debug("Parallel dispatcher shutdown complete")

    def __enter__(self) -> ParallelDispatcher:
        return self

    def __exit__(self, *exc):
        self.shutdown()
