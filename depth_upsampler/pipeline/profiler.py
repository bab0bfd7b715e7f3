"""
Per-stage timing for the upsampling pipeline.
"""

from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from typing import Deque, Dict, Iterator

from loguru import logger


STAGES = ("convert", "downscale", "confidence", "regression", "reconstruction", "total")


class PipelineProfiler:
    """Rolling average of stage durations, logged every ``interval`` seconds."""

    def __init__(self, window_size: int = 60, interval: float = 2.0):
        self.window_size = window_size
        self.interval = interval
        self.timings: Dict[str, Deque[float]] = {
            stage: deque(maxlen=window_size) for stage in STAGES
        }
        self.last_log = time.perf_counter()
        self.cycle_count = 0

    def record(self, stage: str, duration_ms: float):
        self.timings[stage].append(duration_ms)

    @contextmanager
    def measure(self, stage: str) -> Iterator[None]:
        """Time the body of a ``with`` block as ``stage``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(stage, (time.perf_counter() - start) * 1000)

    def averages(self) -> Dict[str, float]:
        return {
            stage: (sum(times) / len(times) if times else 0.0)
            for stage, times in self.timings.items()
        }

    def log_if_ready(self):
        self.cycle_count += 1
        now = time.perf_counter()
        elapsed = now - self.last_log
        if elapsed < self.interval:
            return

        avgs = self.averages()
        rate = self.cycle_count / elapsed
        logger.info(
            f"[PIPELINE] convert:{avgs['convert']:.1f}ms | downscale:{avgs['downscale']:.1f}ms | "
            f"conf:{avgs['confidence']:.1f}ms | regress:{avgs['regression']:.1f}ms | "
            f"reconstruct:{avgs['reconstruction']:.1f}ms | total:{avgs['total']:.1f}ms | "
            f"{rate:.1f} cycles/s"
        )

        # Identify bottleneck
        bottleneck = max(
            ((stage, value) for stage, value in avgs.items() if stage != "total"),
            key=lambda item: item[1],
        )
        if bottleneck[1] > 0.5 * avgs["total"] > 0:
            logger.debug(f"[BOTTLENECK] {bottleneck[0]}: {bottleneck[1]:.1f}ms")

        self.last_log = now
        self.cycle_count = 0
