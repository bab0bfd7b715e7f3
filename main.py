#!/usr/bin/env python3
"""
Guided-Filter Depth Upsampling

Main entry point: feeds frames from a source through the upsampling
pipeline and logs depth probes and stage timings.

Usage:
    python main.py [--config CONFIG_PATH] [--source synthetic|replay]

Examples:
    python main.py --preset FAST --frames 200
    python main.py --source replay --replay-dir recordings/ --smoothed
"""

from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from loguru import logger

from depth_upsampler.config import Config, load_config, parse_args
from depth_upsampler.core.contracts import ProcessedOutput
from depth_upsampler.core.errors import BackendInitializationError, InvalidDimensionsError
from depth_upsampler.capture import FrameQueue, FramePump, get_source
from depth_upsampler.depth.depth_query import (
    confidence_weighted_depth,
    depth_at_normalized_point,
)
from depth_upsampler.pipeline.orchestrator import PipelineOrchestrator


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging."""
    logger.remove()  # Remove default handler

    # Console output with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        colorize=True,
    )

    # File output
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )


# ============================================================
# APPLICATION
# ============================================================

class DepthUpsamplerApp:
    """Wires a frame source, the frame queue and the orchestrator together."""

    def __init__(self, config: Config):
        self.config = config
        self.frame_queue = FrameQueue(max_frames=config.queue_size)
        self.pump = FramePump(get_source(config.source, config), self.frame_queue)
        self.pipeline = PipelineOrchestrator(config)
        self._stop_event = threading.Event()

    def _on_output(self, output: ProcessedOutput):
        """Probe the depth at the image centre, like a range finder."""
        centre = depth_at_normalized_point(output.depth, 0.5, 0.5)
        weighted = confidence_weighted_depth(output.depth, output.confidence)
        centre_text = f"{centre:.3f}m" if centre is not None else "n/a"
        weighted_text = f"{weighted:.3f}m" if weighted is not None else "n/a"
        logger.debug(
            f"Frame {output.frame_id}: centre depth {centre_text}, "
            f"confidence-weighted mean {weighted_text} ({output.resolution})"
        )

    def request_stop(self):
        self._stop_event.set()

    def run(self) -> int:
        """Run until the source is exhausted, max_frames is reached or Ctrl-C."""
        logger.info("Starting depth upsampler")

        if not self.pipeline.start():
            logger.error("Failed to start pipeline")
            return 1
        if not self.pump.start():
            self.pipeline.stop()
            return 1

        try:
            processed = self.pipeline.run(
                self.frame_queue,
                stop_event=self._stop_event,
                max_frames=self.config.max_frames,
                on_output=self._on_output,
            )
        finally:
            self.pump.stop()
            self.pipeline.stop()

        state = self.pipeline.state
        logger.info(
            f"Processed {processed} frames ({state.frames_received} received, "
            f"{self.frame_queue.dropped_frames} dropped, last cycle {state.last_cycle_latency_ms:.1f}ms)"
        )
        if state.last_failure_reason:
            logger.warning(f"Last failure: {state.last_failure_reason}")
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except (ValueError, FileNotFoundError, InvalidDimensionsError) as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return 2

    setup_logging(config.log_level, config.log_file)

    try:
        app = DepthUpsamplerApp(config)
    except BackendInitializationError as e:
        logger.error(f"Cannot start parallel backend: {e}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 2

    def signal_handler(_sig, _frame):
        logger.info("Interrupt received, stopping")
        app.request_stop()
    signal.signal(signal.SIGINT, signal_handler)

    return app.run()


if __name__ == "__main__":
    sys.exit(main())
